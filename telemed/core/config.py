import os
from dataclasses import dataclass

from dotenv import load_dotenv


load_dotenv()


def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_list(value: str | None, default: list[str]) -> list[str]:
    if not value:
        return default
    return [item.strip() for item in value.split(",") if item.strip()]


APP_ENV = os.getenv("APP_ENV", "development")
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./telemed.db")
CORS_ORIGINS = _get_list(os.getenv("CORS_ORIGINS"), ["http://localhost:4200"])

JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRES_MINUTES = int(os.getenv("JWT_EXPIRES_MINUTES", "60"))

# Civil zone used by doctors and patients when entering times. Asia/Dhaka is
# a fixed UTC+06:00 zone, which is also the fallback offset.
CIVIL_TIMEZONE = os.getenv("CIVIL_TIMEZONE", "Asia/Dhaka")
CIVIL_FALLBACK_OFFSET_MINUTES = int(os.getenv("CIVIL_FALLBACK_OFFSET_MINUTES", "360"))
MIN_MINUTES_PER_PATIENT = int(os.getenv("MIN_MINUTES_PER_PATIENT", "10"))
JOIN_LEAD_MINUTES = int(os.getenv("JOIN_LEAD_MINUTES", "5"))
DEFAULT_JOIN_SLOT_MINUTES = int(os.getenv("DEFAULT_JOIN_SLOT_MINUTES", "30"))
PAYMENT_CONFIRMED_STATUS = os.getenv("PAYMENT_CONFIRMED_STATUS", "completed")
PENDING_PAYMENT_TTL_HOURS = int(os.getenv("PENDING_PAYMENT_TTL_HOURS", "24"))
REQUIRE_APPROVED_SCHEDULE = _get_bool(os.getenv("REQUIRE_APPROVED_SCHEDULE"), default=False)

PAYMENT_WEBHOOK_SECRET = os.getenv("PAYMENT_WEBHOOK_SECRET", "")
INVOICE_DIR = os.getenv("INVOICE_DIR", "./invoices")
UPLOAD_DIR = os.getenv("UPLOAD_DIR", "./uploads")

SMTP_HOST = os.getenv("SMTP_HOST", "")
SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
SMTP_USERNAME = os.getenv("SMTP_USERNAME", "")
SMTP_PASSWORD = os.getenv("SMTP_PASSWORD", "")
SMTP_SENDER = os.getenv("SMTP_SENDER", "no-reply@telemed.local")
SMTP_USE_TLS = _get_bool(os.getenv("SMTP_USE_TLS"), default=True)


@dataclass(frozen=True)
class SchedulingConfig:
    timezone_name: str = "Asia/Dhaka"
    fallback_offset_minutes: int = 360
    min_minutes_per_patient: int = 10
    join_lead_minutes: int = 5
    default_join_slot_minutes: int = 30
    payment_confirmed_status: str = "completed"
    pending_payment_ttl_hours: int = 24
    require_approved_schedule: bool = False


def build_scheduling_config() -> SchedulingConfig:
    return SchedulingConfig(
        timezone_name=CIVIL_TIMEZONE,
        fallback_offset_minutes=CIVIL_FALLBACK_OFFSET_MINUTES,
        min_minutes_per_patient=MIN_MINUTES_PER_PATIENT,
        join_lead_minutes=JOIN_LEAD_MINUTES,
        default_join_slot_minutes=DEFAULT_JOIN_SLOT_MINUTES,
        payment_confirmed_status=PAYMENT_CONFIRMED_STATUS,
        pending_payment_ttl_hours=PENDING_PAYMENT_TTL_HOURS,
        require_approved_schedule=REQUIRE_APPROVED_SCHEDULE,
    )


def validate_runtime_config() -> None:
    if APP_ENV.lower() == "production" and JWT_SECRET_KEY == "change-me":
        raise RuntimeError("JWT_SECRET_KEY must be set in production.")
    if PAYMENT_CONFIRMED_STATUS not in {"completed", "awaiting_doctor_approval"}:
        raise RuntimeError(
            "PAYMENT_CONFIRMED_STATUS must be 'completed' or 'awaiting_doctor_approval'."
        )
