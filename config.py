from typing import Optional

from pydantic import PrivateAttr
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    app_name: str = "Boreal Financial API"
    debug: bool = False
    log_level: str = "INFO"

    database_url: str = "sqlite+aiosqlite:///./boreal.db"
    cors_origins: str = "http://localhost:5173,http://127.0.0.1:5173"

    # Public client portal; used in SMS links
    client_portal_url: str = "https://client.boreal.financial"

    # Twilio SMS. When any credential is missing, SMS is logged instead of sent.
    twilio_account_sid: Optional[str] = None
    twilio_auth_token: Optional[str] = None
    twilio_from_number: Optional[str] = None
    twilio_base_url: str = "https://api.twilio.com/2010-04-01"
    sms_timeout_seconds: float = 10.0

    # Notification outbox
    outbox_worker_enabled: bool = True
    outbox_dispatch_inline: bool = True
    outbox_poll_seconds: float = 15.0
    outbox_batch_size: int = 50
    outbox_max_attempts: int = 5
    outbox_backoff_seconds: float = 30.0
    outbox_lock_timeout_seconds: float = 300.0

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    _is_sqlite: bool = PrivateAttr(default=False)
    _is_postgresql: bool = PrivateAttr(default=False)

    def model_post_init(self, __context: object) -> None:
        _scheme = self.database_url.split(":")[0].lower()
        object.__setattr__(self, "_is_sqlite", "sqlite" in _scheme)
        object.__setattr__(self, "_is_postgresql", "postgresql" in _scheme)

    @property
    def is_sqlite(self) -> bool:
        return self._is_sqlite

    @property
    def is_postgresql(self) -> bool:
        return self._is_postgresql

    @property
    def sms_enabled(self) -> bool:
        return bool(self.twilio_account_sid and self.twilio_auth_token and self.twilio_from_number)


settings = Settings()
