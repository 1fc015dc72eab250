# =============================================================================
# Configuration & Dependency Container
# =============================================================================
# Settings come from environment variables. AWS resources are lazy-loaded on
# first access so modules import without AWS credentials.
# =============================================================================

import logging
import os
from dataclasses import dataclass, field
from functools import cached_property
from typing import Any, Optional

import boto3

from cirrus.session.manager import DEFAULT_SESSION_TTL, SessionManager
from cirrus.session.store import DynamoDBSessionStore, SessionStore

logger = logging.getLogger(__name__)


def _get_env(key: str, default: str = "") -> str:
    return os.environ.get(key, default)


def _get_env_bool(key: str, default: bool = False) -> bool:
    return _get_env(key, str(default)).lower() == "true"


def _get_env_int(key: str, default: int = 0) -> int:
    raw = _get_env(key, "")
    try:
        return int(raw) if raw else default
    except ValueError:
        logger.warning(f"Ignoring non-integer {key}={raw!r}")
        return default


@dataclass(frozen=True)
class Settings:
    """
    Environment configuration.

    Attributes:
        api_path: Path of the operation endpoint (CIRRUS_API_PATH)
        api_version: Expected client protocol version (CIRRUS_API_VERSION)
        cors_enabled: Answer OPTIONS and add CORS headers (CIRRUS_CORS_ENABLED)
        session_table_name: DynamoDB table for sessions (SESSION_TABLE_NAME)
        session_table_region: Table region (SESSION_TABLE_REGION, else AWS_REGION)
        session_salt: Secret mixed into partition keys (SESSION_SALT)
        session_pk_name: Partition key attribute (SESSION_PK_NAME)
        session_sk_name: Sort key attribute (SESSION_SK_NAME)
        session_sliding_expiration: Extend expiry on access (SESSION_SLIDING_EXPIRATION)
        session_ttl_in_seconds: Default session lifetime (SESSION_TTL_SECONDS)
        session_token_cookie: Session cookie name (SESSION_TOKEN_COOKIE)
        session_csrf_cookie: CSRF cookie name (SESSION_CSRF_COOKIE)
        log_level: Root log level (LOG_LEVEL)
    """
    api_path: str = "/api"
    api_version: Optional[str] = None
    cors_enabled: bool = False
    session_table_name: str = ""
    session_table_region: Optional[str] = None
    session_salt: str = field(default="", repr=False)
    session_pk_name: str = "pk"
    session_sk_name: str = "sk"
    session_sliding_expiration: bool = True
    session_ttl_in_seconds: int = DEFAULT_SESSION_TTL
    session_token_cookie: str = "CRSSESSIONTKID"
    session_csrf_cookie: str = "CRSSESSIONCSTK"
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            api_path=_get_env("CIRRUS_API_PATH", "/api"),
            api_version=_get_env("CIRRUS_API_VERSION") or None,
            cors_enabled=_get_env_bool("CIRRUS_CORS_ENABLED", False),
            session_table_name=_get_env("SESSION_TABLE_NAME"),
            session_table_region=_get_env("SESSION_TABLE_REGION") or _get_env("AWS_REGION") or None,
            session_salt=_get_env("SESSION_SALT"),
            session_pk_name=_get_env("SESSION_PK_NAME", "pk"),
            session_sk_name=_get_env("SESSION_SK_NAME", "sk"),
            session_sliding_expiration=_get_env_bool("SESSION_SLIDING_EXPIRATION", True),
            session_ttl_in_seconds=_get_env_int("SESSION_TTL_SECONDS", DEFAULT_SESSION_TTL),
            session_token_cookie=_get_env("SESSION_TOKEN_COOKIE", "CRSSESSIONTKID"),
            session_csrf_cookie=_get_env("SESSION_CSRF_COOKIE", "CRSSESSIONCSTK"),
            log_level=_get_env("LOG_LEVEL", "INFO").upper(),
        )

    @property
    def sessions_configured(self) -> bool:
        return bool(self.session_table_name and self.session_salt)


@dataclass
class Deps:
    """
    Lazily-built AWS resources and session services.

    Usage:
        deps = create_deps()
        deps.session_manager.create_session("user-1")
    """
    settings: Settings = field(default_factory=Settings.from_env)

    @cached_property
    def dynamodb(self):
        """DynamoDB resource."""
        return boto3.resource("dynamodb", region_name=self.settings.session_table_region)

    @cached_property
    def session_table(self):
        """DynamoDB table holding session records."""
        if not self.settings.session_table_name:
            raise ValueError("SESSION_TABLE_NAME is not set")
        return self.dynamodb.Table(self.settings.session_table_name)

    @cached_property
    def session_store(self) -> SessionStore:
        return DynamoDBSessionStore(
            table_name=self.settings.session_table_name,
            region=self.settings.session_table_region,
            partition_key=self.settings.session_pk_name,
            sort_key=self.settings.session_sk_name,
            table=self.session_table,
        )

    @cached_property
    def session_manager(self) -> SessionManager:
        return SessionManager(
            self.session_store,
            self.settings.session_salt,
            enable_sliding_expiration=self.settings.session_sliding_expiration,
            default_ttl_in_seconds=self.settings.session_ttl_in_seconds,
        )


def create_deps(settings: Optional[Settings] = None, **overrides: Any) -> Deps:
    """Create a Deps instance; keyword overrides pre-seed cached properties."""
    deps = Deps(settings=settings or Settings.from_env())
    for name, value in overrides.items():
        deps.__dict__[name] = value
    return deps
