import os

from dotenv import load_dotenv


load_dotenv()


def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_int(value: str | None, default: int) -> int:
    if value is None or not value.strip():
        return default
    return int(value)


def _get_list(value: str | None, default: str) -> list[str]:
    raw = value if value is not None else default
    return [item.strip() for item in raw.split(",") if item.strip()]


APP_ENV = os.getenv("APP_ENV", "development")
DATABASE_URL = os.getenv("DATABASE_URL")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
SQL_ECHO = _get_bool(os.getenv("SQL_ECHO"), default=False)

CORS_ALLOWED_ORIGINS = _get_list(os.getenv("CORS_ALLOWED_ORIGINS"), "http://localhost:3000")

JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRES_MINUTES = _get_int(os.getenv("JWT_EXPIRES_MINUTES"), 60)

# Scheduling
CLINIC_TIMEZONE = os.getenv("CLINIC_TIMEZONE", "UTC")
SLOT_INCREMENT_MINUTES = _get_int(os.getenv("SLOT_INCREMENT_MINUTES"), 30)
SESSION_DURATION_MINUTES = _get_int(os.getenv("SESSION_DURATION_MINUTES"), 60)
MIN_BOOKING_LEAD_MINUTES = _get_int(os.getenv("MIN_BOOKING_LEAD_MINUTES"), 0)
CALENDAR_DAYS = _get_int(os.getenv("CALENDAR_DAYS"), 14)
MAX_HORIZON_DAYS = _get_int(os.getenv("MAX_HORIZON_DAYS"), 60)

# Weekday numbers follow datetime.date.weekday(): Monday is 0, Sunday is 6.
DEFAULT_WORKING_DAYS = [int(day) for day in _get_list(os.getenv("DEFAULT_WORKING_DAYS"), "0,1,2,3,4,5")]
DEFAULT_WORKING_HOURS_START = os.getenv("DEFAULT_WORKING_HOURS_START", "09:00")
DEFAULT_WORKING_HOURS_END = os.getenv("DEFAULT_WORKING_HOURS_END", "18:00")
DEFAULT_BREAK_START = os.getenv("DEFAULT_BREAK_START", "13:00")
DEFAULT_BREAK_MINUTES = _get_int(os.getenv("DEFAULT_BREAK_MINUTES"), 120)
WORKING_HOURS_BREAK_MINUTES = _get_int(os.getenv("WORKING_HOURS_BREAK_MINUTES"), 60)

STORE_READ_ATTEMPTS = _get_int(os.getenv("STORE_READ_ATTEMPTS"), 3)
WRITE_LOCK_TIMEOUT_SECONDS = _get_int(os.getenv("WRITE_LOCK_TIMEOUT_SECONDS"), 5)

PRESENCE_TTL_SECONDS = _get_int(os.getenv("PRESENCE_TTL_SECONDS"), 120)

MAX_BOOKING_NOTES_LENGTH = _get_int(os.getenv("MAX_BOOKING_NOTES_LENGTH"), 600)
MAX_FEEDBACK_COMMENT_LENGTH = _get_int(os.getenv("MAX_FEEDBACK_COMMENT_LENGTH"), 2000)


def validate_runtime_config() -> None:
    if APP_ENV.lower() == "production" and JWT_SECRET_KEY == "change-me":
        raise RuntimeError("JWT_SECRET_KEY must be set in production.")
    if not DATABASE_URL:
        raise RuntimeError("DATABASE_URL must be set.")
    if SLOT_INCREMENT_MINUTES <= 0 or 60 % SLOT_INCREMENT_MINUTES != 0:
        raise RuntimeError("SLOT_INCREMENT_MINUTES must evenly divide an hour.")
