from tests.conftest import auth_headers, make_user


def test_department_user_issue_flow(client, db, sent_emails):
    admin = make_user(db, "boss", is_admin=True)

    created = client.post(
        "/api/v1/departments",
        json={"name": "Electrical", "type": "Maintenance"},
        headers=auth_headers(admin),
    )
    assert created.status_code == 201

    registered = client.post("/api/v1/users/register", json={
        "fullName": "Eli Tech", "email": "eli@example.com", "username": "eli",
        "password": "wires", "department": "Electrical",
    })
    assert registered.status_code == 200

    login = client.post("/api/v1/login", json={"username": "eli", "password": "wires"})
    token = login.json()["data"]["accessToken"]
    headers = {"Authorization": f"Bearer {token}"}

    issue = client.post("/api/v1/issue-form", json={
        "issue": "Tripped breaker", "description": "Lab 3 has no power",
        "address": "Science block", "requireDepartment": "Electrical",
    }, headers=headers)
    assert issue.status_code == 200
    assert issue.json()["data"]["warning"] is None
    assert [m["to"] for m in sent_emails] == ["eli@example.com"]

    listed = client.get("/api/v1/issues/department", headers=headers)
    rows = listed.json()["data"]
    assert len(rows) == 1
    assert rows[0]["issue"] == "Tripped breaker"
    assert rows[0]["complete"] is False

    acknowledged = client.post("/api/v1/acknowledge-response", json={"issueId": rows[0]["id"]}, headers=headers)
    completed = client.post("/api/v1/complete-issue", json={"issueId": rows[0]["id"]}, headers=headers)
    assert acknowledged.status_code == 200
    assert completed.json()["data"]["complete"] is True

    report = client.get("/api/v1/fetch-report", headers=auth_headers(admin)).json()["data"]
    assert report[0]["required_department_name"] == "Electrical"
    assert report[0]["user_department_name"] == "Electrical"
    assert report[0]["complete"] is True
