from functools import lru_cache
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Configuración de la aplicación (variables de entorno o archivo .env)
    """

    model_config = SettingsConfigDict(
        env_file=".env", extra="ignore", case_sensitive=False
    )

    environment: str = "development"

    database_url: str = "postgresql://postgres:root@db:5432/projectsign"

    # Sesiones de propietario (JWT)
    secret_key: str = "your-secret-key-here"
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 30

    # Enlaces de firma
    app_url: str = "http://localhost:3000"
    signing_token_expiry_hours: int = 48

    # Almacenamiento de imágenes de firma
    signature_storage_dir: str = "signatures"
    signature_public_base_url: str = "http://localhost:8000/signatures"

    # Envío por email (Resend) y SMS (Twilio)
    resend_api_key: Optional[str] = None
    email_from: str = "ProjectSign <noreply@projectsign.co.il>"
    twilio_account_sid: Optional[str] = None
    twilio_auth_token: Optional[str] = None
    twilio_phone_number: Optional[str] = None
    dispatch_timeout_seconds: float = 10.0

    # PDF
    pdf_render_timeout_seconds: float = 30.0
    image_fetch_timeout_seconds: float = 10.0

    # Logging
    log_level: str = "INFO"
    log_json: bool = True

    cors_origins: List[str] = ["http://localhost:3000", "http://127.0.0.1:3000"]

    # Job de limpieza de tokens
    enable_maintenance_job: bool = True
    token_retention_days: int = 30


@lru_cache
def get_settings() -> Settings:
    return Settings()
