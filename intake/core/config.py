"""
Configuration module - loads all env vars using pydantic-settings.
This is the SINGLE SOURCE OF TRUTH for all config values.
"""

from functools import lru_cache
from typing import Literal, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # MongoDB
    mongodb_uri: str = "mongodb://localhost:27017"
    mongodb_db: str = "recruitment_intake"

    # Google Sheets
    spreadsheet_id: str = ""
    google_credentials_file: str = "credentials.json"
    google_credentials_json: str = ""  # inline service-account JSON wins over the file

    # Manual export target (POST /add-users-to-sheet)
    export_spreadsheet_id: str = ""  # falls back to spreadsheet_id
    export_sheet_name: str = "Final Users"

    # Sync job
    sync_enabled: bool = True
    sync_interval_minutes: int = 40
    # "newest": a row with a missing/unparseable timestamp is treated as written now
    # "skip": such rows are ignored by sheet -> mongo passes
    sync_unparseable_timestamp_policy: Literal["newest", "skip"] = "newest"

    # Sheets rate limiting / retries
    sheets_batch_size: int = 50
    sheets_batch_delay_seconds: float = 1.0
    sheets_max_attempts: int = 5
    sheets_backoff_seconds: float = 0.5

    # Admin read cache (seconds)
    cache_users_ttl_seconds: int = 300
    cache_applications_ttl_seconds: int = 604800

    # Mail (SMTP over SSL)
    smtp_host: str = "smtp.zeptomail.in"
    smtp_port: int = 465
    smtp_user: str = ""
    smtp_password: str = ""
    mail_sender_name: str = "MTTN Team"
    mail_template: str = "email-template.html"
    mail_subject: str = "We’ve received your application ✅"

    # App
    debug: bool = False
    log_level: str = "INFO"
    log_json: bool = False

    @property
    def export_spreadsheet(self) -> str:
        """Spreadsheet used for manual exports."""
        return self.export_spreadsheet_id or self.spreadsheet_id

    @property
    def mail_from(self) -> Optional[str]:
        if not self.smtp_user:
            return None
        return f'"{self.mail_sender_name}" <{self.smtp_user}>'

    # Pydantic v2 config
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8"
    )


@lru_cache()
def get_settings() -> Settings:
    return Settings()
