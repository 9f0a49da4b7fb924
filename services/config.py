# services/config.py
from __future__ import annotations
import os

# ------------------------------------------------------------------------------
# Helper: get env var with fallback
# ------------------------------------------------------------------------------
def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return v if v is not None and v != "" else default

# ------------------------------------------------------------------------------
# Database / API
# ------------------------------------------------------------------------------
DB_URL: str = _env("DB_URL", "sqlite://./db.sqlite3")
CORS_ORIGINS: list[str] = [
    o.strip() for o in _env("CORS_ORIGINS", "http://localhost:5173,http://127.0.0.1:5173").split(",") if o.strip()
]

# ------------------------------------------------------------------------------
# Remote rate override (optional JSON document with DormConfig field names)
# ------------------------------------------------------------------------------
RATE_OVERRIDE_URL: str = _env("RATE_OVERRIDE_URL", "")
RATE_OVERRIDE_TIMEOUT: float = float(_env("RATE_OVERRIDE_TIMEOUT", "3"))

# ------------------------------------------------------------------------------
# Notification delivery (empty webhook => log only)
# ------------------------------------------------------------------------------
NOTIFY_WEBHOOK_URL: str = _env("NOTIFY_WEBHOOK_URL", "")
NOTIFY_TIMEOUT: float = float(_env("NOTIFY_TIMEOUT", "5"))

# ------------------------------------------------------------------------------
# Scheduling
# ------------------------------------------------------------------------------
DEFAULT_TIMEZONE: str = _env("DEFAULT_TIMEZONE", "Asia/Bangkok")
AUTO_SEND_TICK_SECONDS: int = int(_env("AUTO_SEND_TICK_SECONDS", "60"))
AUTO_SEND_REPLAY_WINDOW_SECONDS: int = int(_env("AUTO_SEND_REPLAY_WINDOW_SECONDS", "60"))
OVERDUE_SWEEP_HOUR: int = int(_env("OVERDUE_SWEEP_HOUR", "0"))
OVERDUE_SWEEP_MINUTE: int = int(_env("OVERDUE_SWEEP_MINUTE", "15"))

# ------------------------------------------------------------------------------
# Built-in rate defaults (used when neither local nor remote config has a value)
# ------------------------------------------------------------------------------
DEFAULT_WATER_UNIT_PRICE: float = 18.0
DEFAULT_ELECTRIC_UNIT_PRICE: float = 7.0
DEFAULT_COMMON_FEE: float = 300.0
DEFAULT_DUE_DAY: int = 5

# water floor: meter-based water below this usage is billed at a fixed amount
WATER_FLOOR_UNITS: float = 5.0
WATER_FLOOR_AMOUNT: float = 35.0
