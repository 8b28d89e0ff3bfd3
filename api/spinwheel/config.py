import os
from pathlib import Path
from pydantic import BaseModel
from dotenv import load_dotenv

PROJECT_ROOT = Path(__file__).resolve().parents[2]
ENV_PATH = PROJECT_ROOT / ".env"
if ENV_PATH.exists():
    # ensure .env values override empty/previous env
    load_dotenv(ENV_PATH, override=True)
    # BOM-safe fallback: if key was \ufeffDATABASE_URL
    if not os.getenv("DATABASE_URL"):
        for line in ENV_PATH.read_text(encoding="utf-8").splitlines():
            line = line.lstrip("\ufeff")
            if line.startswith("DATABASE_URL="):
                os.environ["DATABASE_URL"] = line.split("=", 1)[1].strip()
                break


def _optional_int(name: str) -> int | None:
    raw = os.getenv(name, "").strip()
    return int(raw) if raw else None


class Settings(BaseModel):
    database_url: str = os.getenv("DATABASE_URL", "sqlite:///./spinwheel.db")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    allowed_origins: list[str] = [
        o.strip() for o in os.getenv("ALLOWED_ORIGINS", "").split(",") if o.strip()
    ]
    allowed_origin_regex: str | None = os.getenv("ALLOWED_ORIGIN_REGEX") or None

    # campaign policy
    campaigns_file: str | None = os.getenv("CAMPAIGNS_FILE") or None
    default_max_spins: int = int(os.getenv("DEFAULT_MAX_SPINS", "1"))
    default_starts_at: str | None = os.getenv("DEFAULT_STARTS_AT") or None
    default_ends_at: str | None = os.getenv("DEFAULT_ENDS_AT") or None
    default_open_hour: int | None = _optional_int("DEFAULT_OPEN_HOUR")
    default_close_hour: int | None = _optional_int("DEFAULT_CLOSE_HOUR")

    # mail
    gmail_user: str | None = os.getenv("GMAIL_USER") or None
    gmail_app_password: str | None = os.getenv("GMAIL_APP_PASSWORD") or None
    customer_success_user: str | None = os.getenv("CUSTOMER_SUCCESS_USER") or None
    customer_success_app_password: str | None = os.getenv("CUSTOMER_SUCCESS_APP_PASSWORD") or None
    smtp_host: str = os.getenv("SMTP_HOST", "smtp.gmail.com")
    smtp_port: int = int(os.getenv("SMTP_PORT", "465"))
    smtp_timeout_seconds: float = float(os.getenv("SMTP_TIMEOUT_SECONDS", "15"))
    mail_assets_dir: str = os.getenv(
        "MAIL_ASSETS_DIR", str(PROJECT_ROOT / "public")
    )
    team_sender_name: str = os.getenv("TEAM_SENDER_NAME", "Built Team")
    cs_sender_name: str = os.getenv("CS_SENDER_NAME", "Customer Success")

    # "background" sends from this process, "queue" hands off to the external queue
    dispatch_mode: str = os.getenv("DISPATCH_MODE", "background")
    queue_publish_url: str | None = os.getenv("QUEUE_PUBLISH_URL") or None
    queue_token: str | None = os.getenv("QUEUE_TOKEN") or None
    queue_callback_url: str | None = os.getenv("QUEUE_CALLBACK_URL") or None
    queue_signing_key: str | None = os.getenv("QUEUE_SIGNING_KEY") or None
    queue_timeout_seconds: float = float(os.getenv("QUEUE_TIMEOUT_SECONDS", "10"))

    @property
    def mail_configured(self) -> bool:
        return bool(self.gmail_user and self.gmail_app_password and self.customer_success_user)

settings = Settings()
