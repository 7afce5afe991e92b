from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    APP_NAME: str = "IndoWater Payments"
    version: str = "1.0.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    APP_DATABASE_DSN: str = "sqlite:////tmp/indowater.db"
    REDIS_URL: str = "redis://localhost:6379"

    # Gateway credentials used when no payment_gateways row is configured
    midtrans_server_key: str = ""
    midtrans_client_key: str = ""
    midtrans_environment: str = "sandbox"  # "sandbox" or "production"
    doku_client_id: str = ""
    doku_secret_key: str = ""
    doku_environment: str = "sandbox"  # "sandbox" or "production"
    doku_notification_target: str = "/checkout/v1/payment/notification"

    # Outbound gateway calls
    gateway_http_timeout: float = 30.0

    # Webhook retry policy
    webhook_retry_base_delay_seconds: int = 60
    webhook_retry_max_delay_seconds: int = 3600
    webhook_retry_max_attempts: int = 10
    webhook_retry_claim_timeout_seconds: int = 600
    webhook_retry_batch_size: int = 100

    # CORS
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:5173"


settings = Settings()
