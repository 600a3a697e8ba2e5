"""
Runtime settings read from the environment.

A .env file is loaded first when present so local runs and tests can
keep credentials out of the shell.
"""

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

DEFAULT_PROVIDER_HEADERS_PATH = Path(__file__).resolve().parent / "resources" / "provider_headers.yaml"
DEFAULT_REJECTION_REASON_MAX_LENGTH = 1024


@dataclass(frozen=True)
class Settings:
    """Connection and pipeline settings"""

    db_host: str
    db_port: int
    db_name: str
    db_user: str
    db_password: str | None
    db_pool_min: int
    db_pool_max: int
    provider_headers_path: Path
    rejection_reason_max_length: int

    def pool_kwargs(self) -> dict:
        """Keyword arguments for DatabaseConnectionPool"""
        return {
            "host": self.db_host,
            "port": self.db_port,
            "database": self.db_name,
            "user": self.db_user,
            "password": self.db_password,
            "min_size": self.db_pool_min,
            "max_size": self.db_pool_max,
        }


def load_settings(env_file: str | Path | None = None) -> Settings:
    """
    Build Settings from environment variables.

    Args:
        env_file: Optional .env file loaded before reading the environment

    Returns:
        Settings instance
    """
    if env_file is not None:
        load_dotenv(env_file, override=True)
    else:
        load_dotenv()

    return Settings(
        db_host=os.getenv("DB_HOST", "localhost"),
        db_port=int(os.getenv("DB_PORT", "5432")),
        db_name=os.getenv("DB_NAME", "billing"),
        db_user=os.getenv("DB_USER", "intake"),
        db_password=os.getenv("DB_PASSWORD"),
        db_pool_min=int(os.getenv("DB_POOL_MIN", "2")),
        db_pool_max=int(os.getenv("DB_POOL_MAX", "10")),
        provider_headers_path=Path(
            os.getenv("PROVIDER_HEADERS_PATH", str(DEFAULT_PROVIDER_HEADERS_PATH))
        ),
        rejection_reason_max_length=int(
            os.getenv("REJECTION_REASON_MAX_LENGTH", str(DEFAULT_REJECTION_REASON_MAX_LENGTH))
        ),
    )
