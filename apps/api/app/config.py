from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
  model_config = SettingsConfigDict(env_file=".env", extra="ignore")

  database_url: str = "postgresql+asyncpg://dailydesk:dailydesk@db:5432/dailydesk"
  app_version: str = "v2026-10-17+reminders"
  build_sha: str = "dev"
  api_docs_enabled: bool = True

  log_level: str = "INFO"
  log_json: bool = False

  reminders_enabled: bool = True
  reminder_minutes: int = 1440
  overdue_grace_minutes: int = 0
  job_poll_interval_ms: int = 60_000
  reminder_batch_size: int = 50
  reminder_base_backoff_ms: int = 60_000
  reminder_max_attempts: int = 5
  reminder_send_timeout_seconds: float = 30.0

  smtp_host: str | None = None
  smtp_port: int = 587
  smtp_user: str | None = None
  smtp_pass: str | None = None
  smtp_secure: bool | None = None  # None: implicit TLS only on port 465
  from_email: str | None = None
  # Log reminder emails instead of sending them. Jobs are still marked sent.
  reminder_dry_run: bool = False

  def smtp_use_tls(self) -> bool:
    if self.smtp_secure is None:
      return int(self.smtp_port) == 465
    return bool(self.smtp_secure)


settings = Settings()
