"""
Runtime settings for the shop API.

Every value comes from an environment variable so the same image runs
locally, in CI and in production.
"""
import os
from typing import Optional

from pydantic import BaseModel, Field


class Settings(BaseModel):
    database_url: str = Field("mongodb://localhost:27017", description="MongoDB connection string")
    database_name: str = Field("multivendor_shop", description="MongoDB database name")

    stripe_secret_key: str = ""
    client_url: str = "http://localhost:3000"

    email_user: str = ""
    email_pass: str = ""
    smtp_host: str = "smtp.gmail.com"
    smtp_port: int = 465

    cloudinary_url: str = ""

    twilio_account_sid: str = ""
    twilio_auth_token: str = ""
    twilio_phone_number: str = ""
    default_country_code: str = "91"
    sms_notifications_enabled: bool = False

    tax_rate: float = Field(0.18, ge=0)
    free_shipping_threshold: float = Field(500, ge=0)
    shipping_fee: float = Field(50, ge=0)

    auth_salt: str = "multivendor_shop"
    port: int = 8000


def load_settings(env: Optional[dict] = None) -> Settings:
    """Build settings from the process environment (or an explicit mapping)."""
    source = os.environ if env is None else env

    def get(name: str, default: str = "") -> str:
        return source.get(name, default)

    return Settings(
        database_url=get("DATABASE_URL", "mongodb://localhost:27017"),
        database_name=get("DATABASE_NAME", "multivendor_shop"),
        stripe_secret_key=get("STRIPE_SECRET_KEY"),
        client_url=get("CLIENT_URL", "http://localhost:3000"),
        email_user=get("EMAIL_USER"),
        email_pass=get("EMAIL_PASS"),
        smtp_host=get("SMTP_HOST", "smtp.gmail.com"),
        smtp_port=int(get("SMTP_PORT", "465")),
        cloudinary_url=get("CLOUDINARY_URL"),
        twilio_account_sid=get("TWILIO_ACCOUNT_SID"),
        twilio_auth_token=get("TWILIO_AUTH_TOKEN"),
        twilio_phone_number=get("TWILIO_PHONE_NUMBER"),
        default_country_code=get("DEFAULT_COUNTRY_CODE", "91"),
        sms_notifications_enabled=get("SMS_NOTIFICATIONS_ENABLED", "0").strip().lower() in ("1", "true", "yes", "on"),
        tax_rate=float(get("TAX_RATE", "0.18")),
        free_shipping_threshold=float(get("FREE_SHIPPING_THRESHOLD", "500")),
        shipping_fee=float(get("SHIPPING_FEE", "50")),
        auth_salt=get("AUTH_SALT", "multivendor_shop"),
        port=int(get("PORT", "8000")),
    )
