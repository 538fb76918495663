import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        csrf_secret: str,
        user_id: int,
        log_level: str,
        telegram_bot_token: str,
        whatsapp_token: str,
        whatsapp_phone_number_id: str,
        whatsapp_verify_token: str,
        intent_endpoint: str,
        http_timeout_secs: float,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.csrf_secret = csrf_secret
        self.user_id = user_id
        self.log_level = log_level
        self.telegram_bot_token = telegram_bot_token
        self.whatsapp_token = whatsapp_token
        self.whatsapp_phone_number_id = whatsapp_phone_number_id
        self.whatsapp_verify_token = whatsapp_verify_token
        self.intent_endpoint = intent_endpoint
        self.http_timeout_secs = http_timeout_secs


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("CELENGAN_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "celengan.db"
    return Settings(
        database_url=os.getenv("CELENGAN_DATABASE_URL", f"sqlite:///{default_db}"),
        timezone=os.getenv("CELENGAN_TIMEZONE", "Asia/Jakarta"),
        csrf_secret=os.getenv(
            "CELENGAN_CSRF_SECRET",
            "5d0c6f1e9a8b47f2b3c1d7e4a6f9082c1b3e5d7f9a2c4e6b8d0f1a3c5e7b9d2f",
        ),
        user_id=int(os.getenv("CELENGAN_USER_ID", "1")),
        log_level=os.getenv("CELENGAN_LOG_LEVEL", "INFO").upper(),
        telegram_bot_token=os.getenv("CELENGAN_TELEGRAM_BOT_TOKEN", ""),
        whatsapp_token=os.getenv("CELENGAN_WHATSAPP_TOKEN", ""),
        whatsapp_phone_number_id=os.getenv("CELENGAN_WHATSAPP_PHONE_NUMBER_ID", ""),
        whatsapp_verify_token=os.getenv("CELENGAN_WHATSAPP_VERIFY_TOKEN", ""),
        intent_endpoint=os.getenv("CELENGAN_INTENT_ENDPOINT", ""),
        http_timeout_secs=float(os.getenv("CELENGAN_HTTP_TIMEOUT_SECS", "5")),
    )
