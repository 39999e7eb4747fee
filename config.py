from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # --- DATABASE ---
    DATABASE_URL: str = "sqlite:///./atelier.db"
    DB_POOL_SIZE: int = 5
    DB_MAX_OVERFLOW: int = 10
    DB_POOL_RECYCLE: int = 300  # secondi

    LOG_LEVEL: str = "INFO"
    CORS_ORIGINS: List[str] = ["*"]

    # Superadmin creato al primo avvio se non esiste
    ADMIN_USERNAME: str = "admin"
    ADMIN_PASSWORD: str = "admin123"

    TELEGRAM_BOT_TOKEN: str = ""
    TELEGRAM_CHAT_ID: str = ""

    # Serie settimanali: un anno di appuntamenti
    RECURRENCE_WEEKS: int = 52
    # Quota del dipendente sugli incassi (il resto va al titolare)
    EMPLOYEE_SHARE: float = 0.4

    # Costo bcrypt per le nuove password
    BCRYPT_ROUNDS: int = 12


settings = Settings()
