"""Planboard backend configuration."""
import os
from pathlib import Path


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default

# Project root (one level up from planboard/)
PROJECT_ROOT = Path(__file__).resolve().parent.parent

# Persisted state
DATA_DIR = Path(os.getenv("PLANBOARD_DATA_DIR", str(PROJECT_ROOT / "data")))
SESSIONS_PATH = Path(os.getenv("PLANBOARD_SESSIONS_PATH", str(DATA_DIR / "sessions.json")))
TEMPLATE_PATH = Path(os.getenv("PLANBOARD_TEMPLATE_PATH", str(DATA_DIR / "board-data.json")))

# Session admission
ACCESS_CODE_LENGTH = _env_int("PLANBOARD_ACCESS_CODE_LENGTH", 6)
ACCESS_CODE_ATTEMPTS = _env_int("PLANBOARD_ACCESS_CODE_ATTEMPTS", 32)

# Observability
OTEL_ENABLED = _env_bool("PLANBOARD_OTEL_ENABLED", False)
OTEL_ENDPOINT = os.getenv("PLANBOARD_OTEL_ENDPOINT", "http://localhost:4318")
OTEL_SERVICE_NAME = os.getenv("PLANBOARD_OTEL_SERVICE_NAME", "planboard-backend")
PROM_PORT = _env_int("PLANBOARD_PROM_PORT", 9464)

# Server settings
HOST = os.getenv("PLANBOARD_HOST", "0.0.0.0")
PORT = _env_int("PLANBOARD_PORT", 3000)

# Static UI bundle, mounted at / when the directory exists
STATIC_DIR = Path(os.getenv("PLANBOARD_STATIC_DIR", str(PROJECT_ROOT / "public")))

# CORS
FRONTEND_ORIGIN = os.getenv("PLANBOARD_FRONTEND_ORIGIN", "http://localhost:3000")
