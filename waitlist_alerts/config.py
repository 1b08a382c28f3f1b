"""
Configuration module for Waitlist Alerts.

Reads settings for Supabase, email delivery, the agent directory and the
match engine from environment variables (a local .env is loaded first).
Keys and passwords belong in .env only.
"""

import os
import json
import logging
from dataclasses import dataclass, field
from typing import Optional
from dotenv import load_dotenv

from .errors import ConfigurationError

# Load environment variables from .env file
load_dotenv()

logger = logging.getLogger(__name__)

UNASSIGNED_AGENT = "Unassigned"


@dataclass
class SupabaseConfig:
    """Supabase connection configuration."""
    url: str
    key: str  # Service role key for server-side operations

    @classmethod
    def from_env(cls) -> "SupabaseConfig":
        return cls(
            url=os.getenv("SUPABASE_URL", ""),
            key=os.getenv("SUPABASE_SERVICE_ROLE_KEY") or os.getenv("SUPABASE_KEY", ""),
        )


@dataclass
class EmailConfig:
    """Email sending configuration (SendGrid or SMTP)."""
    provider: str  # "sendgrid" or "smtp"
    # SMTP settings
    smtp_host: str
    smtp_port: int
    smtp_user: str
    smtp_password: str
    # SendGrid settings
    sendgrid_api_key: str
    # Common
    from_email: str
    from_name: str

    @property
    def sender(self) -> str:
        return f"{self.from_name} <{self.from_email}>"

    @classmethod
    def from_env(cls) -> "EmailConfig":
        return cls(
            provider=os.getenv("EMAIL_PROVIDER", "sendgrid"),
            smtp_host=os.getenv("SMTP_HOST", "smtp.gmail.com"),
            smtp_port=int(os.getenv("SMTP_PORT", "587")),
            smtp_user=os.getenv("SMTP_USER", ""),
            smtp_password=os.getenv("SMTP_PASSWORD", ""),
            sendgrid_api_key=os.getenv("SENDGRID_API_KEY", ""),
            from_email=os.getenv("FROM_EMAIL", "noreply@example.com"),
            from_name=os.getenv("FROM_NAME", "Waitlist Manager"),
        )


@dataclass
class AgentDirectory:
    """
    Static mapping of leasing agent names to email addresses.

    The fallback address receives manual alerts for entries that have
    no agent (or an agent we don't know). Automatic alerts never use it.
    """
    agents: dict[str, str] = field(default_factory=dict)
    fallback_email: str = ""

    def resolve(self, agent: Optional[str]) -> Optional[str]:
        """Get the address for a named agent, or None if unknown."""
        if not agent or agent == UNASSIGNED_AGENT:
            return None
        return self.agents.get(agent)

    def resolve_with_fallback(self, agent: Optional[str]) -> str:
        """Get the agent's address, falling back to the leasing inbox."""
        return self.resolve(agent) or self.fallback_email

    @classmethod
    def from_env(cls) -> "AgentDirectory":
        raw = os.getenv("AGENT_EMAILS", "{}")
        try:
            agents = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"AGENT_EMAILS must be a JSON object: {e}") from e

        if not isinstance(agents, dict):
            raise ConfigurationError("AGENT_EMAILS must be a JSON object of name -> email")

        return cls(
            agents={str(name): str(email) for name, email in agents.items()},
            fallback_email=os.getenv("LEASING_EMAIL", ""),
        )


@dataclass
class AppConfig:
    """Main application configuration."""
    # Grace period on either side of a requested move-in window
    flex_window_days: int = 30

    # Caller-owned throttle: skip a run if the last one was more recent than this.
    # 0 disables the check.
    min_poll_interval_minutes: int = 0

    # Interval used by the polling caller
    poll_interval_hours: int = 3

    # Availability feed (Google Sheets gviz endpoint)
    sheet_id: str = ""
    sheet_name: str = "DASH"
    request_timeout: int = 30

    # Links and auth for the HTTP entry points
    app_url: str = ""
    cron_secret: str = ""

    @classmethod
    def from_env(cls) -> "AppConfig":
        return cls(
            flex_window_days=int(os.getenv("FLEX_WINDOW_DAYS", "30")),
            min_poll_interval_minutes=int(os.getenv("MIN_POLL_INTERVAL_MINUTES", "0")),
            poll_interval_hours=int(os.getenv("POLL_INTERVAL_HOURS", "3")),
            sheet_id=os.getenv("UNIT_SHEET_ID", ""),
            sheet_name=os.getenv("UNIT_SHEET_NAME", "DASH"),
            request_timeout=int(os.getenv("REQUEST_TIMEOUT", "30")),
            app_url=os.getenv("APP_URL", ""),
            cron_secret=os.getenv("CRON_SECRET", ""),
        )


# Global configuration instances (lazy loaded)
_supabase_config: Optional[SupabaseConfig] = None
_email_config: Optional[EmailConfig] = None
_agent_directory: Optional[AgentDirectory] = None
_app_config: Optional[AppConfig] = None


def get_supabase_config() -> SupabaseConfig:
    """Get Supabase configuration (cached)."""
    global _supabase_config
    if _supabase_config is None:
        _supabase_config = SupabaseConfig.from_env()
    return _supabase_config


def get_email_config() -> EmailConfig:
    """Get email configuration (cached)."""
    global _email_config
    if _email_config is None:
        _email_config = EmailConfig.from_env()
    return _email_config


def get_agent_directory() -> AgentDirectory:
    """Get the agent email directory (cached)."""
    global _agent_directory
    if _agent_directory is None:
        _agent_directory = AgentDirectory.from_env()
        logger.debug(f"Loaded {len(_agent_directory.agents)} agent addresses")
    return _agent_directory


def get_app_config() -> AppConfig:
    """Get app configuration (cached)."""
    global _app_config
    if _app_config is None:
        _app_config = AppConfig.from_env()
    return _app_config
