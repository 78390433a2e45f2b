from typing import Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    APP_NAME: str = "birthlink"
    ENV: Literal["local", "dev", "prod"] = "local"

    # Conversation state
    CONVERSATION_TIMEOUT_MINUTES: int = 30
    MATCHING_WINDOW_MINUTES: int = 5  # wait for volunteer ETA replies before re-matching

    # Relay
    RELAY_IO_TIMEOUT_SECONDS: float = 5.0

    CASE_ID_PREFIX: str = "HR"

    # Direct carrier transport, used when no relay is connected
    TWILIO_ACCOUNT_SID: str | None = None
    TWILIO_AUTH_TOKEN: str | None = None
    TWILIO_PHONE_NUMBER: str | None = None

    @field_validator(
        "CONVERSATION_TIMEOUT_MINUTES", "MATCHING_WINDOW_MINUTES", "RELAY_IO_TIMEOUT_SECONDS"
    )
    @classmethod
    def _must_be_positive(cls, v):
        if v <= 0:
            raise ValueError("timeouts must be positive")
        return v

    @model_validator(mode="after")
    def _window_shorter_than_timeout(self):
        if self.MATCHING_WINDOW_MINUTES >= self.CONVERSATION_TIMEOUT_MINUTES:
            raise ValueError(
                "MATCHING_WINDOW_MINUTES must be shorter than CONVERSATION_TIMEOUT_MINUTES"
            )
        return self

    @property
    def twilio_configured(self) -> bool:
        return bool(
            self.TWILIO_ACCOUNT_SID and self.TWILIO_AUTH_TOKEN and self.TWILIO_PHONE_NUMBER
        )


settings = Settings()
