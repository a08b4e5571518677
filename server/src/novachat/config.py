"""Application settings loaded from the environment."""

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv

DEFAULT_MODEL = "gpt-3.5-turbo"
DEFAULT_BASE_URL = "https://api.openai.com/v1"


def load_env() -> Path | None:
    """
    Load a .env file from the working directory, falling back to src/.env.

    Returns the path that was loaded, or None if neither exists.
    """
    for candidate in (Path.cwd() / ".env", Path.cwd() / "src" / ".env"):
        if candidate.is_file() and load_dotenv(candidate):
            return candidate
    return None


@dataclass(frozen=True)
class Settings:
    """
    Explicit configuration passed to the relay and stores.

    Built once at startup; nothing downstream reads os.environ.
    """

    port: int = 3000
    host: str = "0.0.0.0"
    openai_api_key: str = ""
    openai_model: str = DEFAULT_MODEL
    openai_base_url: str = DEFAULT_BASE_URL
    daily_request_limit: int = 200
    upstream_timeout: float = 60.0
    fallback_stream_delay: float = 0.03
    data_dir: Path = Path("data")
    cors_origins: tuple[str, ...] = ("*",)
    log_level: str = "INFO"
    env_path: Path | None = None

    @property
    def upstream_enabled(self) -> bool:
        return bool(self.openai_api_key)

    @classmethod
    def from_env(cls, env_path: Path | None = None) -> "Settings":
        origins = os.getenv("CORS_ORIGINS", "*")
        return cls(
            port=int(os.getenv("PORT", "3000")),
            host=os.getenv("HOST", "0.0.0.0"),
            openai_api_key=os.getenv("OPENAI_API_KEY", ""),
            openai_model=os.getenv("OPENAI_MODEL") or DEFAULT_MODEL,
            openai_base_url=(os.getenv("OPENAI_BASE_URL") or DEFAULT_BASE_URL).rstrip("/"),
            daily_request_limit=int(
                os.getenv("SESSION_DAILY_LIMIT") or os.getenv("DAILY_REQUEST_LIMIT") or "200"
            ),
            upstream_timeout=float(os.getenv("UPSTREAM_TIMEOUT", "60")),
            fallback_stream_delay=float(os.getenv("FALLBACK_STREAM_DELAY", "0.03")),
            data_dir=Path(os.getenv("DATA_DIR", "data")).resolve(),
            cors_origins=tuple(o.strip() for o in origins.split(",") if o.strip()),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            env_path=env_path,
        )


@lru_cache
def get_settings() -> Settings:
    """Get the process-wide settings (FastAPI dependency)."""
    return Settings.from_env(env_path=load_env())
