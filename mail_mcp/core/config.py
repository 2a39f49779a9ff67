"""Configuration management for the mail MCP server."""

from datetime import datetime
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_GMAIL_SCOPES = [
    "https://www.googleapis.com/auth/gmail.modify",
    "https://www.googleapis.com/auth/gmail.settings.basic",
]


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=False, extra="ignore"
    )

    # MCP Server
    server_name: str = Field(default="mail-mcp", description="Name reported to MCP clients")

    # Account storage
    mail_config_dir: Path = Field(
        default=Path.home() / ".mail-mcp",
        description="Directory holding the account registry, credentials and active account",
    )

    # Gmail (REST provider)
    gmail_oauth_path: Path | None = Field(
        default=None,
        description="Path to the Google OAuth client keys file. "
        "Defaults to <mail_config_dir>/gcp-oauth.keys.json",
    )
    gmail_scopes: list[str] = Field(
        default_factory=lambda: list(DEFAULT_GMAIL_SCOPES),
        description="OAuth scopes requested when authenticating Gmail accounts",
    )
    gmail_api_base_url: str = Field(
        default="https://gmail.googleapis.com/gmail/v1/users/me",
        description="Base URL of the Gmail REST API for the authenticated user",
    )
    google_auth_url: str = Field(
        default="https://accounts.google.com/o/oauth2/v2/auth",
        description="Google OAuth authorization endpoint",
    )
    google_token_url: str = Field(
        default="https://oauth2.googleapis.com/token",
        description="Google OAuth token endpoint",
    )

    # IMAP/SMTP provider (defaults target iCloud Mail)
    imap_host: str = Field(default="imap.mail.me.com", description="IMAP server host")
    imap_port: int = Field(default=993, description="IMAP server port (implicit TLS)")
    smtp_host: str = Field(default="smtp.mail.me.com", description="SMTP server host")
    smtp_port: int = Field(
        default=587, description="SMTP server port (587 uses STARTTLS, 465 implicit TLS)"
    )

    # Transport timeouts (seconds)
    imap_timeout: float = Field(default=30.0, description="IMAP connect/command timeout")
    imap_noop_timeout: float = Field(
        default=5.0, description="Timeout for the NOOP probe on a cached IMAP session"
    )
    http_timeout: float = Field(default=30.0, description="HTTP timeout for REST calls")

    # Batch operations
    batch_size: int = Field(default=50, description="Default chunk size for batch operations")

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_dir: Path = Field(
        default=Path.home() / ".mail-mcp" / "logs",
        description="Directory for log files",
    )

    @field_validator("batch_size")
    @classmethod
    def validate_batch_size(cls, v: int) -> int:
        """Batch size must be positive."""
        if v < 1:
            raise ValueError("batch_size must be at least 1")
        return v

    def __init__(self, **kwargs):
        """Initialize settings and create necessary directories."""
        super().__init__(**kwargs)
        self.mail_config_dir.mkdir(parents=True, exist_ok=True)
        self.log_dir.mkdir(parents=True, exist_ok=True)

    @property
    def oauth_keys_path(self) -> Path:
        """Resolved location of the Google OAuth client keys file."""
        return self.gmail_oauth_path or self.mail_config_dir / "gcp-oauth.keys.json"

    def get_log_file(self, component_name: str = "mail_mcp") -> Path:
        """Get a log file path for a specific component.

        Creates log files with the format: {component_name}_{date}.log
        e.g., mail_mcp_2024-01-15.log

        Args:
            component_name: Name of the component (server, cli, etc.)

        Returns:
            Path to the log file
        """
        date_str = datetime.now().strftime("%Y-%m-%d")
        # Sanitize component name for filesystem
        safe_name = "".join(c if c.isalnum() or c in "_-" else "_" for c in component_name)
        return self.log_dir / f"{safe_name}_{date_str}.log"


# Global settings instance
settings = Settings()
