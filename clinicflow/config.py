from typing import List

from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv()


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_env: str = "dev"
    database_url: str = "sqlite:///./clinicflow.db"
    sql_echo: bool = False
    log_level: str = "INFO"
    cors_origins: List[str] = ["http://localhost:5173", "http://localhost:3000"]

    # automation defaults
    default_duplicate_prevention_days: int = 30
    recent_trigger_window_days: int = 7

    # scheduled-action queue
    scheduler_batch_limit: int = 50
    scheduled_action_max_attempts: int = 3
    scheduled_action_retry_delay_seconds: int = 300
    worker_poll_interval_seconds: float = 60.0


settings = Settings()  # reads from env
