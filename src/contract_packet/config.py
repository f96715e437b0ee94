"""Configuration management for the Contract Packet Wizard."""

from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

from contract_packet.persistence import DEFAULT_STATE_KEY
from contract_packet.submission import DEFAULT_RECIPIENTS


class Settings(BaseSettings):
    """Contract Packet Wizard configuration.

    Values come from ``CONTRACT_PACKET_*`` environment variables or a
    ``.env`` file.
    """

    model_config = SettingsConfigDict(
        env_prefix="CONTRACT_PACKET_",
        env_file=".env",
        extra="ignore",
    )

    # Service identity
    service_name: str = "contract-packet-wizard"
    service_version: str = "0.1.0"
    environment: str = "development"
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 8015

    # Persistence; an empty path keeps state in memory
    state_store_path: str = ""
    state_key: str = DEFAULT_STATE_KEY
    autosave_debounce_seconds: float = 0.8

    # Submission
    submission_recipients: list[str] = list(DEFAULT_RECIPIENTS)


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""
    return Settings()
