from typing import Optional
from urllib.parse import quote_plus

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    ENV: str = "local"
    log_level: str = "INFO"

    postgres_user: str = "bookshare"
    postgres_password: str = "bookshare"
    postgres_db: str = "bookshare"
    postgres_host: str = "localhost"
    postgres_port: str = "5432"

    # full SQLAlchemy URL, takes precedence over the postgres_* parts
    sqlalchemy_url: Optional[str] = None

    secret_key: str
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 60

    cors_origins: list[str] = [
        "http://localhost:5173",
        "http://localhost:3000",
        "http://127.0.0.1:5173",
    ]

    # shared secret for the scheduler hitting /cancellations/expire-old-requests
    scheduler_key: Optional[str] = None

    # cancellation protocol
    cancellation_window_hours: int = 48
    partial_refund_ratio: float = 0.5

    # report adjudication
    confidence_threshold: float = 70.0
    min_signal_count: int = 2
    trust_score_weight: float = 0.3
    signal_combine_weight: float = 0.7
    trust_combine_weight: float = 0.3
    duplicate_window_hours: int = 24
    max_reports_per_day: int = 10
    report_cooldown_minutes: int = 15
    default_trust_score: float = 50.0
    trust_flag_threshold: float = 20.0
    valid_report_trust_bonus: float = 5.0
    false_report_trust_penalty: float = 10.0

    penalty_spam: int = 50
    penalty_abuse: int = 100
    penalty_scam: int = 200
    penalty_other: int = 25

    @property
    def database_url(self):
        if self.sqlalchemy_url:
            return self.sqlalchemy_url
        encoded_password = quote_plus(self.postgres_password)
        return (
            f"postgresql+psycopg2://{self.postgres_user}:"
            f"{encoded_password}@{self.postgres_host}:"
            f"{self.postgres_port}/{self.postgres_db}"
        )

    @property
    def penalties(self) -> dict[str, int]:
        return {
            "spam": self.penalty_spam,
            "abuse": self.penalty_abuse,
            "scam": self.penalty_scam,
            "other": self.penalty_other,
        }

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "allow"


settings = Settings()
