import os
from dataclasses import dataclass, field

from dotenv import load_dotenv


DEFAULT_ACCESS_SECRET = "change-me-in-production"
DEFAULT_REFRESH_SECRET = "change-me-refresh-in-production"


def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_list(value: str | None, default: tuple[str, ...]) -> tuple[str, ...]:
    if not value:
        return default
    return tuple(item.strip() for item in value.split(",") if item.strip())


@dataclass(frozen=True)
class Settings:
    app_env: str = "development"
    database_url: str = "sqlite:///./auth.db"
    db_timeout_seconds: int = 10
    jwt_secret: str = DEFAULT_ACCESS_SECRET
    jwt_refresh_secret: str = DEFAULT_REFRESH_SECRET
    jwt_algorithm: str = "HS256"
    jwt_expires_in: int = 60 * 60 * 24
    jwt_refresh_expires_in: int = 60 * 60 * 24 * 7
    bcrypt_rounds: int = 12
    password_hash_workers: int = 4
    cors_origins: tuple[str, ...] = field(default=("http://localhost:3000",))
    seed_admin_email: str = ""
    seed_admin_password: str = ""
    log_level: str = "INFO"

    @property
    def is_production(self) -> bool:
        return self.app_env.lower() == "production"

    @property
    def is_development(self) -> bool:
        return self.app_env.lower() == "development"

    def validate(self) -> None:
        if self.jwt_secret == self.jwt_refresh_secret:
            raise RuntimeError("JWT_SECRET and JWT_REFRESH_SECRET must differ.")
        if self.is_production:
            if self.jwt_secret == DEFAULT_ACCESS_SECRET or self.jwt_refresh_secret == DEFAULT_REFRESH_SECRET:
                raise RuntimeError("JWT_SECRET and JWT_REFRESH_SECRET must be set in production.")
        if self.jwt_expires_in <= 0 or self.jwt_refresh_expires_in <= 0:
            raise RuntimeError("Token lifetimes must be positive.")
        if not 4 <= self.bcrypt_rounds <= 31:
            raise RuntimeError("BCRYPT_ROUNDS must be between 4 and 31.")
        if self.password_hash_workers < 1:
            raise RuntimeError("PASSWORD_HASH_WORKERS must be at least 1.")


def load_settings(env_file: str | None = None) -> Settings:
    """Read the process environment (and an optional .env file) once."""
    load_dotenv(dotenv_path=env_file)
    settings = Settings(
        app_env=os.getenv("APP_ENV", "development"),
        database_url=os.getenv("AUTH_DATABASE_URL", os.getenv("DATABASE_URL", "sqlite:///./auth.db")),
        db_timeout_seconds=int(os.getenv("DB_TIMEOUT_SECONDS", "10")),
        jwt_secret=os.getenv("JWT_SECRET", DEFAULT_ACCESS_SECRET),
        jwt_refresh_secret=os.getenv("JWT_REFRESH_SECRET", DEFAULT_REFRESH_SECRET),
        jwt_algorithm=os.getenv("JWT_ALGORITHM", "HS256"),
        jwt_expires_in=int(os.getenv("JWT_EXPIRES_IN", str(60 * 60 * 24))),
        jwt_refresh_expires_in=int(os.getenv("JWT_REFRESH_EXPIRES_IN", str(60 * 60 * 24 * 7))),
        bcrypt_rounds=int(os.getenv("BCRYPT_ROUNDS", "12")),
        password_hash_workers=int(os.getenv("PASSWORD_HASH_WORKERS", "4")),
        cors_origins=_get_list(os.getenv("CORS_ORIGINS"), ("http://localhost:3000",)),
        seed_admin_email=os.getenv("SEED_ADMIN_EMAIL", ""),
        seed_admin_password=os.getenv("SEED_ADMIN_PASSWORD", ""),
        log_level=os.getenv("LOG_LEVEL", "DEBUG" if _get_bool(os.getenv("DEBUG")) else "INFO"),
    )
    settings.validate()
    return settings
