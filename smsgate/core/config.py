from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = Field(default="SMS Gateway Dispatcher", alias="APP_NAME")
    app_env: str = Field(default="local", alias="APP_ENV")
    debug: bool = Field(default=True, alias="DEBUG")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    database_url: str | None = Field(default=None, alias="DATABASE_URL")
    db_host: str = Field(default="localhost", alias="DB_HOST")
    db_port: int = Field(default=3306, alias="DB_PORT")
    db_user: str = Field(default="notification_user", alias="DB_USER")
    db_password: str = Field(default="notification_pass", alias="DB_PASSWORD")
    db_name: str = Field(default="notification_db", alias="DB_NAME")
    db_pool_size: int = Field(default=5, alias="DB_POOL_SIZE")
    db_max_overflow: int = Field(default=5, alias="DB_MAX_OVERFLOW")

    admin_login: str = Field(default="admin", alias="ADMIN_LOGIN")
    admin_password: str = Field(default="change-me", alias="ADMIN_PASSWORD")

    sms_gateway_url: str | None = Field(default=None, alias="SMS_GATEWAY_URL")
    sms_gateway_login: str | None = Field(default=None, alias="SMS_GATEWAY_LOGIN")
    sms_gateway_password: str | None = Field(default=None, alias="SMS_GATEWAY_PASSWORD")
    sms_gateway_timeout: float = Field(default=10.0, alias="SMS_GATEWAY_TIMEOUT")
    sms_sender_name: str = Field(default="", alias="SMS_SENDER_NAME")
    sms_messages_count_tick: int = Field(default=100, alias="SMS_MESSAGES_COUNT_TICK")

    sms_scheduler_enabled: bool = Field(default=True, alias="SMS_SCHEDULER_ENABLED")
    sms_admission_limit: int = Field(default=600, alias="SMS_ADMISSION_LIMIT")
    sms_admission_cron_seconds: str = Field(default="15,45", alias="SMS_ADMISSION_CRON_SECONDS")
    sms_dispatch_interval_seconds: float = Field(
        default=1.0,
        alias="SMS_DISPATCH_INTERVAL_SECONDS",
    )
    sms_reconcile_cron_seconds: str = Field(
        default="0,12,24,36,48",
        alias="SMS_RECONCILE_CRON_SECONDS",
    )
    sms_reconcile_max_attempts: int = Field(default=720, alias="SMS_RECONCILE_MAX_ATTEMPTS")
    sms_sent_max_age_minutes: int = Field(default=4320, alias="SMS_SENT_MAX_AGE_MINUTES")

    sms_phone_country_code: str = Field(default="380", alias="SMS_PHONE_COUNTRY_CODE")
    sms_blacklist: list[str] = Field(default_factory=list, alias="SMS_BLACKLIST")

    model_config = SettingsConfigDict(
        env_file=(".env", ),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @property
    def sqlalchemy_url(self) -> str:
        if self.database_url:
            return self.database_url
        return (
            f"mysql+pymysql://{self.db_user}:{self.db_password}"
            f"@{self.db_host}:{self.db_port}/{self.db_name}"
            f"?charset=utf8mb4"
        )


settings = Settings()
