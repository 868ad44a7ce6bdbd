"""
Configuration management for the AdScale suggestion pipeline
"""
from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    """Application settings"""

    # Application
    app_name: str = "AdScale Budget Suggestion Pipeline"
    environment: str = "development"
    debug: bool = True
    log_level: str = "INFO"
    log_dir: str = "logs"
    log_to_file: bool = True
    log_retention_days: int = 30
    audit_log_retention_days: int = 365

    # Database
    database_url: str = "sqlite:///./adscale.db"

    # Meta Marketing API
    meta_graph_url: str = "https://graph.facebook.com"
    meta_api_version: str = "v19.0"
    meta_access_token: Optional[str] = None
    meta_export_url: str = "https://www.facebook.com/ads/ads_insights/export_report"
    meta_request_timeout_seconds: int = 60

    # Insights reports
    report_grain: str = "aggregate"  # aggregate | daily
    report_batch_size: int = 1000  # Records per storage write
    report_poll_interval_seconds: float = 20.0
    report_poll_max_attempts: int = 60
    report_ready_delay_seconds: float = 3.0  # Wait after "Job Completed" before download
    report_lookback_days: int = 30
    report_download_timeout_seconds: int = 300

    # Links
    ads_manager_url: str = "https://business.facebook.com/adsmanager/manage"
    frontend_url: Optional[str] = None

    # Alerts
    slack_webhook_url: Optional[str] = None

    # Sync Schedules (cron, evaluated in scheduler_timezone)
    sync_entities_schedule: str = "0 1 * * *"
    sync_insights_schedule: str = "0 2 * * *"
    analyze_suggestions_schedule: str = "30 3 * * *"
    scheduler_timezone: str = "UTC"

    class Config:
        env_file = ".env"
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
