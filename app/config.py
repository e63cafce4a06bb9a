from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

_API_KEY_VARS = ("GEMINI_API_KEY", "GOOGLE_API_KEY", "API_KEY")


def _first_env(*names: str) -> str | None:
    for name in names:
        value = os.getenv(name)
        if value is not None and value.strip():
            return value.strip()
    return None


def _parse_positive_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw.strip())
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from exc
    if value <= 0:
        raise ValueError(f"{name} must be positive, got {value}")
    return value


@dataclass(frozen=True)
class Settings:
    gemini_api_key: str | None = None
    gemini_model: str = "gemini-3-flash-preview"
    log_level: str = "INFO"
    export_filename_prefix: str = "invoice_extract_"
    max_upload_mb: int = 20
    host: str = "127.0.0.1"
    port: int = 8000
    session_ttl_minutes: int = 30
    max_sessions: int = 200

    @property
    def max_upload_bytes(self) -> int:
        return self.max_upload_mb * 1024 * 1024

    @classmethod
    def from_env(cls) -> "Settings":
        log_level = os.getenv("LOG_LEVEL", "INFO").strip().upper()
        if not isinstance(logging.getLevelName(log_level), int):
            raise ValueError(f"LOG_LEVEL must be a standard logging level, got {log_level!r}")

        gemini_model = os.getenv("GEMINI_MODEL", "gemini-3-flash-preview").strip()
        if not gemini_model:
            raise ValueError("GEMINI_MODEL must not be empty")

        return cls(
            gemini_api_key=_first_env(*_API_KEY_VARS),
            gemini_model=gemini_model,
            log_level=log_level,
            export_filename_prefix=os.getenv("EXPORT_FILENAME_PREFIX", "invoice_extract_"),
            max_upload_mb=_parse_positive_int("MAX_UPLOAD_MB", 20),
            host=os.getenv("HOST", "127.0.0.1").strip() or "127.0.0.1",
            port=_parse_positive_int("PORT", 8000),
            session_ttl_minutes=_parse_positive_int("SESSION_TTL_MINUTES", 30),
            max_sessions=_parse_positive_int("MAX_SESSIONS", 200),
        )


def load_dotenv(path: str | Path = ".env") -> None:
    env_path = Path(path)
    if not env_path.exists():
        return
    for line in env_path.read_text(encoding="utf-8").splitlines():
        entry = line.strip()
        if not entry or entry.startswith("#") or "=" not in entry:
            continue
        key, value = entry.split("=", 1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        os.environ.setdefault(key, value)
