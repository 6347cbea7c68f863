"""Configuration management for mailbox-bridge.

This module handles application configuration using Pydantic settings.
Configuration can be loaded from environment variables or .env files.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support.

    All settings can be overridden via environment variables with
    the MAILBOX_BRIDGE_ prefix (e.g., MAILBOX_BRIDGE_SYNC_PAGE_SIZE).
    """

    model_config = SettingsConfigDict(
        env_prefix="MAILBOX_BRIDGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Local cache
    cache_dir: Path = Field(
        default=Path(".mailbox_bridge/cache"),
        description="Directory holding one SQLite thread cache per connection",
    )
    blob_dir: Path = Field(
        default=Path(".mailbox_bridge/blobs"),
        description="Directory used as the large-object store for full thread JSON",
    )

    # Thread synchronization
    sync_page_size: int = Field(
        default=20,
        description="Number of threads requested per page while syncing a folder",
    )
    sync_page_delay: float = Field(
        default=2.0,
        description="Seconds to wait before requesting each page during a folder sync",
    )
    sync_thread_delay: float = Field(
        default=0.5,
        description="Seconds to wait before fetching each thread during a folder sync",
    )
    sync_loop: bool = Field(
        default=True,
        description="Keep paginating until the folder is exhausted (False syncs one page)",
    )
    refresh_after_mutation: bool = Field(
        default=True,
        description="Re-sync affected threads after label, send and delete operations",
    )

    # Rate-limit retry policy
    rate_limit_max_attempts: int = Field(
        default=3,
        description="Total attempts for an operation that keeps hitting provider rate limits",
    )
    rate_limit_delay: float = Field(
        default=60.0,
        description="Fixed delay in seconds between rate-limited attempts",
    )

    # IMAP / SMTP
    imap_connect_timeout: float = Field(
        default=10.0,
        description="Timeout in seconds for establishing the IMAP connection",
    )
    imap_command_timeout: float | None = Field(
        default=60.0,
        description="Timeout in seconds for one IMAP command sequence (None disables it)",
    )
    imap_save_sent_copy: bool = Field(
        default=True,
        description="Append a copy of every sent message to the Sent folder",
    )
    smtp_timeout: float = Field(
        default=30.0,
        description="Timeout in seconds for SMTP connections",
    )

    # Google
    google_client_id: str | None = Field(
        default=None,
        description="OAuth client id used to refresh Gmail access tokens",
    )
    google_client_secret: str | None = Field(
        default=None,
        description="OAuth client secret used to refresh Gmail access tokens",
    )
    google_token_uri: str = Field(
        default="https://oauth2.googleapis.com/token",
        description="OAuth token endpoint",
    )
    gmail_credentials_path: Path = Field(
        default=Path("credentials.json"),
        description="Path to the OAuth client secrets file used by `mailbox-bridge auth google`",
    )
    gmail_scope: str = Field(
        default="https://www.googleapis.com/auth/gmail.modify",
        description="OAuth scope requested for Gmail access",
    )

    # Default connection (used by the CLI)
    provider: str = Field(
        default="imapAndSmtp",
        description="Provider id of the default connection (google, microsoft, imapAndSmtp)",
    )
    connection_id: str = Field(
        default="default",
        description="Identifier of the default connection; scopes the cache and blob keys",
    )
    email: str = Field(default="", description="Mailbox address of the default connection")
    access_token: str = Field(default="", description="OAuth access token (Gmail)")
    refresh_token: str = Field(
        default="",
        description="OAuth refresh token (Gmail) or account password (IMAP/SMTP)",
    )
    imap_host: str | None = Field(default=None, description="IMAP server host")
    imap_port: int | None = Field(default=None, description="IMAP server port (default 993)")
    imap_secure: bool | None = Field(
        default=None, description="Use implicit TLS for IMAP (inferred from port)"
    )
    smtp_host: str | None = Field(default=None, description="SMTP server host")
    smtp_port: int | None = Field(default=None, description="SMTP server port")
    smtp_secure: bool | None = Field(
        default=None, description="Use implicit TLS for SMTP (inferred from port)"
    )

    # Application Configuration
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode",
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings.

    Returns:
        Settings: Application settings instance.
    """
    return Settings()
