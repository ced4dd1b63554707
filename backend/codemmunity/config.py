"""
Codemmunity Backend: Application Configuration
================================================

What:  Centralized configuration management using Pydantic Settings.
How:   Pydantic Settings reads from environment variables (or .env file) and
       validates types/ranges. `Settings.database_config()` turns the flat
       environment into a `DatabaseConfig` for the Connection Manager.
When:  Loaded once per process; `database_config()` runs during startup so a
       bad configuration stops the service before it serves a request.

Transport Variants:
    The database link is either plain or encrypted, never "encrypted but
    missing its certificate":

        PlainTransport()                 ← USE_SSL=false
        EncryptedTransport(certificate)  ← USE_SSL=true and the bundle exists

    `EncryptedTransport` refuses to be constructed for a missing file, so the
    half-configured state can only show up as a ConfigurationError.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Union

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings
from sqlalchemy.engine import URL, make_url

from codemmunity.exceptions import ConfigurationError


# ══════════════════════════════════════════════════════════════════════════
# Database Transport & Connection Settings
# ══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class PlainTransport:
    """Unencrypted TCP link to the database server."""


@dataclass(frozen=True)
class EncryptedTransport:
    """
    Certificate-secured link to the database server.

    `certificate` is the CA bundle used to verify the server certificate.
    """

    certificate: Path

    def __post_init__(self) -> None:
        if not self.certificate.is_file():
            raise ConfigurationError(
                f"Encrypted transport requested but certificate bundle "
                f"'{self.certificate}' does not exist",
                context={"certificate": str(self.certificate)},
            )


Transport = Union[PlainTransport, EncryptedTransport]


@dataclass(frozen=True)
class DatabaseConfig:
    """
    Everything the Connection Manager needs to open the pool.

    `url_override` replaces the host/port/user/password/database fields with a
    complete SQLAlchemy URL (used for local SQLite runs and the test suite).
    """

    host: str = "localhost"
    port: int = 3306
    user: Optional[str] = None
    password: Optional[str] = None
    database: Optional[str] = None
    transport: Transport = field(default_factory=PlainTransport)
    pool_size: int = 10
    max_overflow: int = 5
    pool_timeout: float = 5.0
    pool_recycle: int = 3600
    connect_timeout: int = 10
    statement_timeout: float = 10.0
    url_override: Optional[str] = None

    @property
    def url(self) -> URL:
        if self.url_override:
            return make_url(self.url_override)
        return URL.create(
            "mysql+aiomysql",
            username=self.user,
            password=self.password,
            host=self.host,
            port=self.port,
            database=self.database,
            query={"charset": "utf8mb4"},
        )

    @property
    def backend(self) -> str:
        return self.url.get_backend_name()

    @property
    def is_encrypted(self) -> bool:
        return isinstance(self.transport, EncryptedTransport)


# ══════════════════════════════════════════════════════════════════════════
# Environment Settings
# ══════════════════════════════════════════════════════════════════════════

class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Variable names follow the deployment image (`DB_SERVER`, `DB_PASSWD`, ...),
    matched case-insensitively against the field names below.
    """

    # ── Server ────────────────────────────────────────────────────────────
    app_host: str = Field(default="0.0.0.0")
    app_port: int = Field(default=8080, ge=1, le=65535)

    # ── Database ──────────────────────────────────────────────────────────
    db_server: str = Field(default="localhost")
    db_port: int = Field(default=3306, ge=1, le=65535)
    db_user: Optional[str] = Field(default=None)
    db_passwd: Optional[str] = Field(default=None)
    db_database: Optional[str] = Field(default=None)

    # Complete SQLAlchemy URL; when set, the DB_* connection fields are ignored
    database_url: Optional[str] = Field(default=None)

    use_ssl: bool = Field(default=False)
    db_ssl_ca_path: str = Field(default="./cert/DigiCertGlobalRootCA.crt.pem")

    # Pool sizing. Acquisition and statement timeouts are always applied.
    db_pool_size: int = Field(default=10, ge=1, le=100)
    db_max_overflow: int = Field(default=5, ge=0, le=50)
    db_pool_timeout: float = Field(default=5.0, gt=0, le=120)
    db_connect_timeout: int = Field(default=10, ge=1, le=120)
    db_statement_timeout: float = Field(default=10.0, gt=0, le=600)

    db_auto_create_schema: bool = Field(default=True)

    # ── Logging ───────────────────────────────────────────────────────────
    log_level: str = Field(default="INFO")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Ensures log level is a valid Python logging level name."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper = v.upper()
        if upper not in valid_levels:
            raise ValueError(f"Invalid log_level '{v}'. Must be one of: {valid_levels}")
        return upper

    # ── CORS ──────────────────────────────────────────────────────────────
    cors_origins: str = Field(default="*")

    @property
    def cors_origins_list(self) -> List[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
    }

    def transport(self) -> Transport:
        """Resolve USE_SSL into a transport variant."""
        if not self.use_ssl:
            return PlainTransport()
        return EncryptedTransport(certificate=Path(self.db_ssl_ca_path))

    def database_config(self) -> DatabaseConfig:
        """
        Build the Connection Manager configuration.

        Raises:
            ConfigurationError: a required DB_* variable is missing, or USE_SSL
                is set but the certificate bundle is absent.
        """
        transport = self.transport()

        if not self.database_url:
            missing = [
                name
                for name, value in (
                    ("DB_USER", self.db_user),
                    ("DB_PASSWD", self.db_passwd),
                    ("DB_DATABASE", self.db_database),
                )
                if value is None
            ]
            if missing:
                raise ConfigurationError(
                    "Database configuration incomplete: " + ", ".join(missing) + " not set",
                    context={"missing": missing},
                )

        return DatabaseConfig(
            host=self.db_server,
            port=self.db_port,
            user=self.db_user,
            password=self.db_passwd,
            database=self.db_database,
            transport=transport,
            pool_size=self.db_pool_size,
            max_overflow=self.db_max_overflow,
            pool_timeout=self.db_pool_timeout,
            connect_timeout=self.db_connect_timeout,
            statement_timeout=self.db_statement_timeout,
            url_override=self.database_url,
        )


def get_settings() -> Settings:
    """Read the environment afresh."""
    return Settings()
