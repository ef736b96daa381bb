from functools import lru_cache
from typing import Annotated, List, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables (and ``.env``).

    Attributes:
        supabase_url / supabase_key: Supabase project connection
        access_token_secret / refresh_token_secret: JWT signing secrets
        access_token_expire_days / refresh_token_expire_days: token lifetimes
        cookie_secure: Secure flag on auth cookies (SameSite=None when set)
        cors_origins: comma-separated allowed origins
        gmail_user / gmail_pass: SMTP credentials; email is off without them
        bcrypt_rounds: bcrypt cost factor
        db_page_size: rows per request when paging through the store
        admin_*: optional bootstrap admin created at startup
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None

    access_token_secret: str = "dev-access-secret"
    access_token_expire_days: int = 1
    refresh_token_secret: str = "dev-refresh-secret"
    refresh_token_expire_days: int = 7
    cookie_secure: bool = True

    cors_origins: Annotated[List[str], NoDecode] = [
        "https://issue-tracker-system.vercel.app",
        "http://localhost:5173",
    ]

    gmail_user: Optional[str] = None
    gmail_pass: Optional[str] = None
    smtp_host: str = "smtp.gmail.com"
    smtp_port: int = 465
    mail_from_name: str = "Issue Tracker"

    bcrypt_rounds: int = 10
    license_bucket: str = "licenses"
    # Supabase's default max-rows
    db_page_size: int = 1000

    admin_username: Optional[str] = None
    admin_password: Optional[str] = None
    admin_email: Optional[str] = None

    log_level: str = "INFO"

    @field_validator("cors_origins", mode="before")
    @classmethod
    def split_origins(cls, v):
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v

    @field_validator("bcrypt_rounds")
    @classmethod
    def bcrypt_rounds_in_range(cls, v: int) -> int:
        if not 4 <= v <= 31:
            raise ValueError("bcrypt_rounds must be between 4 and 31")
        return v

    @field_validator("db_page_size")
    @classmethod
    def page_size_must_be_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("db_page_size must be greater than 0")
        return v

    @field_validator("log_level")
    @classmethod
    def normalise_log_level(cls, v: str) -> str:
        return v.upper()

    @property
    def email_enabled(self) -> bool:
        return bool(self.gmail_user and self.gmail_pass)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
