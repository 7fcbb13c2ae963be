import os
import logging
from dataclasses import dataclass
from dotenv import load_dotenv


load_dotenv()


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


@dataclass
class Settings:
    """
    Application settings read from environment variables.

    A .env file in the working directory is loaded first, so local
    overrides do not need to be exported in the shell.
    """

    database_url: str = os.getenv("DATABASE_URL", "sqlite:///./library.db")
    auth_key: str = os.getenv("AUTH_KEY", "dev-secret-key-12345")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    overdue_sweep_enabled: bool = _env_flag("OVERDUE_SWEEP_ENABLED", "True")
    overdue_sweep_interval_seconds: int = int(
        os.getenv("OVERDUE_SWEEP_INTERVAL_SECONDS", "86400")
    )


settings = Settings()


def configure_logging(level: str = settings.log_level) -> None:
    """Configure root logging once for the whole service."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
