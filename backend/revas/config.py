import json
import os
import re
from pathlib import Path
from typing import Annotated, List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

_PROD_ENVIRONMENTS = {"prod", "production"}


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    app_name: str = Field(default="Revas API", validation_alias="PROJECT_NAME")
    environment: str = Field(default="dev", validation_alias="ENVIRONMENT")
    build_version: Optional[str] = Field(default=None, validation_alias="BUILD_VERSION")
    database_url: str = Field(
        default="sqlite+pysqlite:///./revas-dev.db",
        validation_alias="DATABASE_URL",
        validate_default=True,
    )
    # API prefix used by FastAPI router include (e.g. "/api").
    api_prefix: str = Field(default="", validation_alias="API_V1_STR")
    enable_docs: Optional[bool] = Field(
        default=None, validation_alias="ENABLE_DOCS", validate_default=True
    )
    secret_key: str = Field(default="change-me", validation_alias="SECRET_KEY")
    algorithm: str = Field(default="HS256", validation_alias="ALGORITHM")
    access_token_expire_minutes: int = Field(
        default=60, validation_alias="ACCESS_TOKEN_EXPIRE_MINUTES"
    )
    cors_origins: Annotated[List[str], NoDecode] = Field(
        default_factory=list, validation_alias="CORS_ORIGINS", validate_default=True
    )

    # Blob storage for generated and signed documents.
    storage_backend: str = Field(default="local", validation_alias="STORAGE_BACKEND")
    storage_dir: str = Field(default="storage", validation_alias="STORAGE_DIR")
    cloudinary_cloud_name: Optional[str] = Field(
        default=None, validation_alias="CLOUDINARY_CLOUD_NAME"
    )
    cloudinary_api_key: Optional[str] = Field(default=None, validation_alias="CLOUDINARY_API_KEY")
    cloudinary_api_secret: Optional[str] = Field(
        default=None, validation_alias="CLOUDINARY_API_SECRET"
    )
    signed_url_ttl_seconds: int = Field(default=300, validation_alias="SIGNED_URL_TTL_SECONDS")
    external_timeout_seconds: int = Field(default=15, validation_alias="EXTERNAL_TIMEOUT_SECONDS")

    # Document generation abuse guard.
    document_rate_limit_max: int = Field(default=3, validation_alias="DOCUMENT_RATE_LIMIT_MAX")
    document_rate_limit_window_seconds: int = Field(
        default=300, validation_alias="DOCUMENT_RATE_LIMIT_WINDOW_SECONDS"
    )
    invoice_number_max_retries: int = Field(
        default=5, validation_alias="INVOICE_NUMBER_MAX_RETRIES"
    )

    # Best-effort email for notifications.
    email_enabled: bool = Field(default=False, validation_alias="EMAIL_ENABLED")
    email_from: str = Field(default="no-reply@revas.local", validation_alias="EMAIL_FROM")
    smtp_host: Optional[str] = Field(default=None, validation_alias="SMTP_HOST")
    smtp_port: int = Field(default=587, validation_alias="SMTP_PORT")
    smtp_username: Optional[str] = Field(default=None, validation_alias="SMTP_USERNAME")
    smtp_password: Optional[str] = Field(default=None, validation_alias="SMTP_PASSWORD")
    email_timeout_seconds: int = Field(default=10, validation_alias="EMAIL_TIMEOUT_SECONDS")

    run_migrations_on_start: bool = Field(default=False, validation_alias="RUN_MIGRATIONS_ON_START")
    slow_request_ms: int = Field(default=2000, validation_alias="SLOW_REQUEST_MS")

    @property
    def is_production(self) -> bool:
        return str(self.environment or "").strip().lower() in _PROD_ENVIRONMENTS

    @field_validator("enable_docs", mode="after")
    @classmethod
    def default_enable_docs(cls, value, info):
        if value is None:
            env = str(info.data.get("environment", "dev") or "dev").lower()
            return env not in _PROD_ENVIRONMENTS
        return value

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_and_default_cors_origins(cls, value, info):
        env = str(info.data.get("environment", "dev") or "dev").lower()

        def _normalize_origin(o: str) -> str:
            s = str(o).strip().strip('"').strip("'")
            # Browsers send the Origin header without a trailing slash.
            if s.endswith("/"):
                s = s[:-1]
            return s

        if value is None or value == "" or value == []:
            if env in _PROD_ENVIRONMENTS:
                raise ValueError("CORS_ORIGINS must be explicitly set in production")
            return [
                "http://localhost:3000",
                "http://localhost:5173",
                "http://127.0.0.1:3000",
                "http://127.0.0.1:5173",
            ]

        if isinstance(value, str):
            s = value.strip()
            if (s.startswith('"') and s.endswith('"')) or (s.startswith("'") and s.endswith("'")):
                s = s[1:-1].strip()

            try:
                parsed = json.loads(s)
                if isinstance(parsed, str):
                    return [_normalize_origin(parsed)]
                if isinstance(parsed, list):
                    return [_normalize_origin(v) for v in parsed if str(v).strip()]
                return [_normalize_origin(str(parsed))]
            except json.JSONDecodeError:
                pass

            return [_normalize_origin(v) for v in s.split(",") if str(v).strip()]

        return value

    @field_validator("api_prefix", mode="before")
    @classmethod
    def normalize_api_prefix(cls, v) -> str:
        if v is None:
            return ""
        s = str(v).strip()
        if not s:
            return ""
        if s.startswith("/api/") or s == "/api":
            return s

        # Git Bash on Windows rewrites "/api/v1" into a filesystem path.
        m = re.search(r"(/api(/[^\s]*)?)$", s.replace("\\", "/"))
        if m:
            return m.group(1)
        if not s.startswith("/"):
            return f"/{s}"
        return s

    @field_validator("database_url", mode="before")
    @classmethod
    def normalize_database_url(cls, v) -> str:
        """Normalize Postgres schemes for psycopg3 and pin relative SQLite paths.

        A relative sqlite URL such as ``sqlite+pysqlite:///./revas-dev.db`` is
        resolved against the ``backend/`` folder so the database file does not
        move around with the working directory.
        """

        if v is None:
            return v

        s = str(v).strip()
        if not s:
            return s

        if s.startswith("postgres://"):
            s = "postgresql://" + s[len("postgres://") :]
        if s.startswith("postgresql://"):
            return "postgresql+psycopg://" + s[len("postgresql://") :]
        if s.startswith("postgresql+psycopg2://"):
            return "postgresql+psycopg://" + s[len("postgresql+psycopg2://") :]

        if not s.startswith("sqlite"):
            return s

        marker = ":///"
        i = s.find(marker)
        if i == -1:
            return s

        path_part = s[i + len(marker) :]
        if path_part.startswith("/") or path_part.startswith(":memory:"):
            return s
        if re.match(r"^[A-Za-z]:/", path_part):
            return s

        if path_part.startswith("./") or path_part.startswith(".\\"):
            backend_root = Path(__file__).resolve().parents[1]
            abs_path = (backend_root / path_part[2:]).resolve().as_posix()
            return f"{s[: i + len(marker)]}{abs_path}"

        return s

    @field_validator("database_url", mode="after")
    @classmethod
    def validate_database_url_for_environment(cls, v: str, info) -> str:
        env = str(info.data.get("environment", "dev") or "dev").strip().lower()
        s = str(v or "").strip()

        if env in _PROD_ENVIRONMENTS:
            if not os.getenv("DATABASE_URL"):
                raise ValueError("DATABASE_URL must be explicitly set in production")
            if s.startswith("sqlite"):
                raise ValueError("SQLite DATABASE_URL is not allowed in production")
            if "localhost" in s or "127.0.0.1" in s:
                raise ValueError("DATABASE_URL must not point to localhost in production")

        return s

    @field_validator("secret_key")
    @classmethod
    def validate_secret_key(cls, v: str) -> str:
        if not v or v.lower() in {"change-me", "secret", "changeme"}:
            raise ValueError("SECRET_KEY must be set to a strong value")
        return v

    @field_validator("storage_backend")
    @classmethod
    def validate_storage_backend(cls, v: str) -> str:
        s = str(v or "local").strip().lower()
        if s not in {"local", "cloudinary"}:
            raise ValueError("STORAGE_BACKEND must be 'local' or 'cloudinary'")
        return s


settings = Settings()
