import logging
from typing import Any, Callable, List, Optional

from fastapi import Request
from supabase import Client, create_client

from config import Settings, get_settings

logger = logging.getLogger(__name__)


def create_db_client(settings: Settings) -> Client:
    if not settings.supabase_url or not settings.supabase_key:
        raise RuntimeError("SUPABASE_URL and SUPABASE_KEY must be set")
    logger.info("Connecting to Supabase at %s", settings.supabase_url)
    return create_client(settings.supabase_url, settings.supabase_key)


def get_db(request: Request) -> Client:
    """Return the client owned by the running app (set up in the lifespan)."""
    return request.app.state.db


def first_row(result):
    return result.data[0] if result.data else None


def fetch_all(build_query: Callable[[], Any], page_size: Optional[int] = None) -> List[dict]:
    """
    Read every row of a select, one ``range`` page at a time.

    PostgREST caps each response at its max-rows setting, so a bare
    ``select`` silently truncates large tables. ``build_query`` must return
    a fresh, ordered query builder on every call.
    """
    page_size = page_size or get_settings().db_page_size
    rows: List[dict] = []
    start = 0
    while True:
        page = build_query().range(start, start + page_size - 1).execute().data
        rows.extend(page)
        if len(page) < page_size:
            return rows
        start += page_size
