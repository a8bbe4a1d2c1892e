import os
import logging
from dataclasses import dataclass, field
from dotenv import load_dotenv

load_dotenv()

DEFAULT_COLORS = {
    "primary": "#0073aa",
    "secondary": "#ffffff",
    "text": "#333333",
    "background": "#f9f9f9",
}


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    database_url: str = "sqlite:///./survey.db"
    admin_api_key: str = "change-me"
    action_secret: str = "dev-secret"
    action_token_ttl: int = 86400
    site_name: str = "Surveys"
    site_url: str = "http://localhost:8000"
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_pass: str = ""
    smtp_tls: bool = True
    email_from_name: str = "Surveys"
    email_from_email: str = "admin@localhost"
    admin_email: str = ""
    admin_email_subject: str = "New Survey Submission"
    user_email_subject: str = "Thank you for your survey response"
    log_level: str = "INFO"
    cors_origins: tuple = ("http://localhost:8000",)
    default_colors: dict = field(default_factory=lambda: dict(DEFAULT_COLORS))

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the process environment (and `.env`)."""
        site_name = os.getenv("SITE_NAME", "Surveys")
        return cls(
            database_url=os.getenv("DATABASE_URL", "sqlite:///./survey.db"),
            admin_api_key=os.getenv("ADMIN_API_KEY", "change-me"),
            action_secret=os.getenv("ACTION_SECRET", "dev-secret"),
            action_token_ttl=int(os.getenv("ACTION_TOKEN_TTL", "86400")),
            site_name=site_name,
            site_url=os.getenv("SITE_URL", "http://localhost:8000").rstrip("/"),
            smtp_host=os.getenv("SMTP_HOST", ""),
            smtp_port=int(os.getenv("SMTP_PORT", "587")),
            smtp_user=os.getenv("SMTP_USER", ""),
            smtp_pass=os.getenv("SMTP_PASS", ""),
            smtp_tls=_env_bool("SMTP_TLS", True),
            email_from_name=os.getenv("EMAIL_FROM_NAME", site_name),
            email_from_email=os.getenv("EMAIL_FROM_EMAIL", "admin@localhost"),
            admin_email=os.getenv("ADMIN_EMAIL", ""),
            admin_email_subject=os.getenv("ADMIN_EMAIL_SUBJECT", "New Survey Submission"),
            user_email_subject=os.getenv("USER_EMAIL_SUBJECT", "Thank you for your survey response"),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            cors_origins=tuple(o.strip() for o in os.getenv("ORIGINS", "http://localhost:8000").split(",") if o.strip()),
        )

    @property
    def admin_recipient(self) -> str:
        return self.admin_email or self.email_from_email


def configure_logging(level: str = "INFO") -> None:
    """Console logging for the whole process."""
    logging.basicConfig(
        level=getattr(logging, (level or "INFO").upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
