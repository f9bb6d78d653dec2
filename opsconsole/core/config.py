from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    PROJECT_NAME: str = "Operations Console"
    LOG_LEVEL: str = "INFO"

    # Hosted backend (empty URL selects the in-memory backend)
    BACKEND_URL: str = ""
    BACKEND_KEY: str = ""
    BACKEND_TIMEOUT: float = 15.0

    # Session blob: 7 days in milliseconds
    SESSION_TTL_MS: int = 7 * 24 * 60 * 60 * 1000
    SESSION_COOKIE: str = "user_session"
    SESSION_HEADER: str = "X-Session-Token"

    # Marketplace edge function proxy
    MARKETPLACE_FUNCTION: str = "binance-ads"
    MARKETPLACE_THROTTLE_SECONDS: float = 0.2
    SALES_SYNC_WINDOW_HOURS: int = 24

    # Storage buckets
    KYC_BUCKET: str = "kyc-documents"
    OFFER_BUCKET: str = "sales_attachments"
    AVATAR_BUCKET: str = "avatars"

    QUERY_CACHE_TTL: int = 60
    ALLOW_MANUAL_ACCOUNT_DELETE: bool = False

    class Config:
        case_sensitive = True

settings = Settings()
