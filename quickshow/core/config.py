from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    PROJECT_NAME: str = "QuickShow API"
    API_V1_STR: str = "/api/v1"
    LOG_LEVEL: str = "INFO"

    # Tokens are issued by the identity provider; we only verify them
    SECRET_KEY: str = "changeme"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24 * 8

    # Database
    POSTGRES_SERVER: str = "localhost"
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = "12345"
    POSTGRES_DB: str = "quickshow_db"
    POSTGRES_PORT: int = 5432
    DATABASE_URL: str = ""

    # Seat holds
    BOOKING_HOLD_MINUTES: int = 10
    MAX_SEATS_PER_BOOKING: int = 5
    SEAT_WRITE_MAX_RETRIES: int = 3

    # Expiry scheduler
    EXPIRY_POLL_SECONDS: int = 15
    EXPIRY_RETRY_SECONDS: int = 30
    EXPIRY_BATCH_SIZE: int = 100

    # Payments (Stripe Checkout)
    STRIPE_SECRET_KEY: str = ""
    STRIPE_WEBHOOK_SECRET: str = ""
    PAYMENT_CURRENCY: str = "usd"
    CHECKOUT_SESSION_MINUTES: int = 30
    FRONTEND_ORIGIN: str = "http://localhost:5173"

    # Notifications
    REMINDER_LEAD_HOURS: int = 8
    REMINDER_POLL_SECONDS: int = 600

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore"
    )

    def assemble_db_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return f"postgresql://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}@{self.POSTGRES_SERVER}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"


settings = Settings()
settings.DATABASE_URL = settings.assemble_db_url()
