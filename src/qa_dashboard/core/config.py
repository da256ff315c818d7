"""
Runtime configuration.

Values come from the environment (and a local .env file via python-dotenv).
"""
import logging
import os
from dataclasses import dataclass, field
from typing import List, Optional

from dotenv import load_dotenv


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"Environment variable {name} must be an integer, got '{value}'")


@dataclass
class Settings:
    """Dashboard settings"""
    client_id: str = ""
    client_secret: str = ""
    redirect_uri: str = "http://localhost:8000/auth/callback"
    frontend_url: str = "http://localhost:3000"
    oauth_scopes: str = "read:jira-work write:jira-work read:jira-user"

    # Jira instances differ in which custom field holds the Epic Link
    epic_link_field: str = "customfield_10014"
    test_case_issue_type: str = "Sub-task"

    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-4o-mini"

    request_timeout: int = 30
    read_retries: int = 2
    search_page_size: int = 100
    max_issues: int = 1000

    session_ttl_hours: int = 24
    auto_refresh_seconds: int = 60
    cookie_secure: bool = False
    cors_origins: List[str] = field(
        default_factory=lambda: ["http://localhost:3000", "http://localhost:5173"]
    )

    api_host: str = "127.0.0.1"
    api_port: int = 8000
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, dotenv: bool = True) -> "Settings":
        """
        Build settings from environment variables.

        Args:
            dotenv: Whether to load a .env file first

        Returns:
            Settings instance
        """
        if dotenv:
            load_dotenv()

        defaults = cls()
        origins = os.getenv("CORS_ORIGINS")
        return cls(
            client_id=os.getenv("CLIENT_ID", ""),
            client_secret=os.getenv("CLIENT_SECRET", ""),
            redirect_uri=os.getenv("REDIRECT_URI", defaults.redirect_uri),
            frontend_url=os.getenv("FRONTEND_URL", defaults.frontend_url),
            oauth_scopes=os.getenv("OAUTH_SCOPES", defaults.oauth_scopes),
            epic_link_field=os.getenv("EPIC_LINK_FIELD", defaults.epic_link_field),
            test_case_issue_type=os.getenv("TEST_CASE_ISSUE_TYPE", defaults.test_case_issue_type),
            openai_api_key=os.getenv("OPENAI_API_KEY") or None,
            openai_model=os.getenv("OPENAI_MODEL", defaults.openai_model),
            request_timeout=_env_int("REQUEST_TIMEOUT_SECONDS", defaults.request_timeout),
            read_retries=_env_int("READ_RETRIES", defaults.read_retries),
            search_page_size=_env_int("SEARCH_PAGE_SIZE", defaults.search_page_size),
            max_issues=_env_int("MAX_ISSUES", defaults.max_issues),
            session_ttl_hours=_env_int("SESSION_TTL_HOURS", defaults.session_ttl_hours),
            auto_refresh_seconds=_env_int("AUTO_REFRESH_SECONDS", defaults.auto_refresh_seconds),
            cookie_secure=_env_bool("COOKIE_SECURE", defaults.cookie_secure),
            cors_origins=(
                [o.strip() for o in origins.split(",") if o.strip()]
                if origins else defaults.cors_origins
            ),
            api_host=os.getenv("API_HOST", defaults.api_host),
            api_port=_env_int("API_PORT", defaults.api_port),
            log_level=os.getenv("LOG_LEVEL", defaults.log_level),
        )


def configure_logging(level: str = "INFO") -> None:
    """Set up root logging once for the service."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
