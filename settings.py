import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

DEFAULT_REDIRECT_URI = "http://localhost:8000/oauth/callback"
DEFAULT_OUTPUT_DIR = Path("output/overdue_invoices")

# NetSuite's internal id for the "-System-" administrator entity
ADMIN_SENDER_ID = -5


class NetSuiteConfigError(RuntimeError):
    """Raised when required NetSuite credentials are missing."""


def require_env(name: str) -> str:
    value = os.getenv(name)
    if not value:
        raise NetSuiteConfigError(f"Missing required environment variable: {name}")
    return value


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class NetSuiteSettings:
    account_id: str
    client_id: str
    client_secret: str
    refresh_token: str = ""
    redirect_uri: str = DEFAULT_REDIRECT_URI

    @property
    def host(self) -> str:
        # NetSuite host format: 3392496_SB2 -> 3392496-sb2
        return self.account_id.lower().replace("_", "-")

    @property
    def base_url(self) -> str:
        return f"https://{self.host}.suitetalk.api.netsuite.com"

    @property
    def token_url(self) -> str:
        return f"{self.base_url}/services/rest/auth/oauth2/v1/token"


@dataclass
class SMTPSettings:
    host: str = ""
    port: int = 587
    user: str = ""
    password: str = ""
    use_tls: bool = True
    timeout: float = 30.0


@dataclass
class ReminderSettings:
    """
    Runtime options for the overdue-invoice reminder batch.
    Everything is read from the environment (and .env) by load_settings().
    """

    output_dir: Path = DEFAULT_OUTPUT_DIR
    admin_email: str = ""
    admin_sender_id: int = ADMIN_SENDER_ID
    max_workers: int = 4
    dry_run: bool = False
    test_recipient: str = ""
    summary_email: str = ""
    smtp: SMTPSettings = field(default_factory=SMTPSettings)


def load_netsuite_settings(require_refresh_token: bool = True) -> NetSuiteSettings:
    """
    Read NetSuite OAuth settings from .env / environment.
    The refresh token is optional only for the OAuth bootstrap flow.
    """
    load_dotenv()

    return NetSuiteSettings(
        account_id=require_env("NETSUITE_ACCOUNT_ID"),
        client_id=require_env("NETSUITE_CLIENT_ID"),
        client_secret=require_env("NETSUITE_CLIENT_SECRET"),
        refresh_token=(
            require_env("NETSUITE_REFRESH_TOKEN")
            if require_refresh_token
            else os.getenv("NETSUITE_REFRESH_TOKEN", "")
        ),
        redirect_uri=os.getenv("NETSUITE_REDIRECT_URI", DEFAULT_REDIRECT_URI),
    )


def load_smtp_settings() -> SMTPSettings:
    """Read SMTP settings from the environment."""
    return SMTPSettings(
        host=os.getenv("SMTP_HOST", ""),
        port=int(os.getenv("SMTP_PORT", "587")),
        user=os.getenv("SMTP_USER", ""),
        password=os.getenv("SMTP_PASSWORD", ""),
        use_tls=_env_bool("SMTP_USE_TLS", True),
        timeout=float(os.getenv("SMTP_TIMEOUT", "30")),
    )


def load_settings(output_dir: Optional[Path] = None) -> ReminderSettings:
    load_dotenv()

    return ReminderSettings(
        output_dir=output_dir or Path(os.getenv("REMINDER_OUTPUT_DIR", str(DEFAULT_OUTPUT_DIR))),
        admin_email=os.getenv("REMINDER_ADMIN_EMAIL", "").strip(),
        admin_sender_id=int(os.getenv("REMINDER_ADMIN_SENDER_ID", str(ADMIN_SENDER_ID))),
        max_workers=max(1, int(os.getenv("REMINDER_MAX_WORKERS", "4"))),
        dry_run=_env_bool("REMINDER_DRY_RUN", False),
        test_recipient=os.getenv("REMINDER_TEST_RECIPIENT", "").strip(),
        summary_email=os.getenv("REMINDER_SUMMARY_EMAIL", "").strip(),
        smtp=load_smtp_settings(),
    )
