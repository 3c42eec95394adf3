import os

from dotenv import load_dotenv


load_dotenv()


def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_list(value: str | None, default: list[str]) -> list[str]:
    if value is None:
        return default
    return [item.strip() for item in value.split(",") if item.strip()]

APP_ENV = os.getenv("APP_ENV", "development")

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./heron_booking.db")
DATABASE_ECHO = _get_bool(os.getenv("DATABASE_ECHO"), default=False)

INSTITUTION_TIMEZONE = os.getenv("INSTITUTION_TIMEZONE", "Asia/Manila")

CORS_ALLOW_ORIGINS = _get_list(os.getenv("CORS_ALLOW_ORIGINS"), ["http://localhost:4200"])

JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRES_MINUTES = int(os.getenv("JWT_EXPIRES_MINUTES", "60"))

GOOGLE_SERVICE_ACCOUNT_FILE = os.getenv("GOOGLE_SERVICE_ACCOUNT_FILE", "")
GOOGLE_CALENDAR_API_URL = os.getenv("GOOGLE_CALENDAR_API_URL", "https://www.googleapis.com/calendar/v3")
GOOGLE_CALENDAR_SCOPE = os.getenv("GOOGLE_CALENDAR_SCOPE", "https://www.googleapis.com/auth/calendar")
CALENDAR_HTTP_TIMEOUT_SECONDS = float(os.getenv("CALENDAR_HTTP_TIMEOUT_SECONDS", "10"))

# Full department name -> environment variable holding its calendar ID.
DEPARTMENT_CALENDAR_ENV_KEYS = {
    "COLLEGE OF COMPUTING AND INFORMATION SCIENCES": "CCIS_CALENDAR_ID",
    "COLLEGE OF LIBERAL ARTS AND SCIENCES": "CLAS_CALENDAR_ID",
    "COLLEGE OF HUMAN KINETICS": "CHK_CALENDAR_ID",
    "COLLEGE OF BUSINESS AND FINANCIAL SCIENCES": "CBFS_CALENDAR_ID",
    "COLLEGE OF INNOVATIVE TEACHER EDUCATION": "CITE_CALENDAR_ID",
    "COLLEGE OF GOVERNANCE AND PUBLIC POLICY": "CGPP_CALENDAR_ID",
    "COLLEGE OF CONSTRUCTION SCIENCES AND ENGINEERING": "CCSE_CALENDAR_ID",
    "COLLEGE OF ENGINEERING TECHNOLOGY": "CET_CALENDAR_ID",
    "COLLEGE OF TOURISM AND HOSPITALITY MANAGEMENT": "CTHM_CALENDAR_ID",
}

DEPARTMENT_CALENDAR_IDS = {
    department: os.getenv(env_key, "")
    for department, env_key in DEPARTMENT_CALENDAR_ENV_KEYS.items()
}

REQUEST_EXPIRATION_HOURS = int(os.getenv("REQUEST_EXPIRATION_HOURS", "48"))

DEFAULT_SLOT_DURATION_MINUTES = int(os.getenv("DEFAULT_SLOT_DURATION_MINUTES", "60"))
DEFAULT_WORK_START_HOUR = int(os.getenv("DEFAULT_WORK_START_HOUR", "9"))
DEFAULT_WORK_END_HOUR = int(os.getenv("DEFAULT_WORK_END_HOUR", "17"))


def validate_runtime_config() -> None:
    if APP_ENV.lower() == "production" and JWT_SECRET_KEY == "change-me":
        raise RuntimeError("JWT_SECRET_KEY must be set in production.")
    if APP_ENV.lower() == "production" and not GOOGLE_SERVICE_ACCOUNT_FILE:
        raise RuntimeError("GOOGLE_SERVICE_ACCOUNT_FILE must be set in production.")
