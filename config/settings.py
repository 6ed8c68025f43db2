from pydantic_settings import BaseSettings
from pydantic import field_validator
from typing import Literal
import logging

logger = logging.getLogger(__name__)

# 128 bits of entropy is the floor for a CSRF token
MIN_TOKEN_BYTES = 16


class Settings(BaseSettings):
    # Sessions
    secret_key: str = "change-this-secret-key"
    session_cookie: str = "formguard_session"
    session_max_age: int = 14 * 24 * 60 * 60
    session_https_only: bool = False
    session_store: Literal["memory", "sql"] = "memory"

    # Database (used when session_store = "sql")
    database_url: str = "sqlite:///./database/sessions.db"

    # CSRF
    csrf_field_name: str = "csrf_token"
    csrf_header_name: str = "X-CSRF-Token"
    csrf_token_bytes: int = 32
    csrf_rotate_on_verify: bool = False
    csrf_reject_status: int = 403

    # Admin login
    admin_username: str = "admin"
    # Password hash (use: python -c "import bcrypt; print(bcrypt.hashpw(b'your_password', bcrypt.gensalt()).decode())")
    admin_password_hash: str = ""
    # Legacy plaintext password (deprecated, use admin_password_hash instead)
    admin_password: str = "admin"

    # App settings
    debug: bool = False
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 8000

    @field_validator("csrf_token_bytes")
    @classmethod
    def check_token_bytes(cls, value: int) -> int:
        if value < MIN_TOKEN_BYTES:
            raise ValueError(f"csrf_token_bytes must be at least {MIN_TOKEN_BYTES}")
        return value

    @field_validator("csrf_reject_status")
    @classmethod
    def check_reject_status(cls, value: int) -> int:
        if not 400 <= value < 500:
            raise ValueError("csrf_reject_status must be a 4xx status code")
        return value

    @property
    def is_sql_store(self) -> bool:
        return self.session_store == "sql"

    def validate_security(self) -> list[str]:
        """Validate security settings and return warnings."""
        warnings = []
        if self.secret_key == "change-this-secret-key":
            warnings.append("SECURITY: secret_key is default! Change it in .env")
        if not self.admin_password_hash and self.admin_password == "admin":
            warnings.append("SECURITY: admin_password is default! Change it in .env")
        if not self.session_https_only and not self.debug:
            warnings.append("SECURITY: session cookie is sent over plain HTTP")
        return warnings

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"  # Ignore extra fields in .env file


settings = Settings()

# Print security warnings on startup
for warning in settings.validate_security():
    logger.warning(warning)
