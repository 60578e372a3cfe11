"""
core/config.py -- Centralized configuration via pydantic-settings.

All environment variable reads for duneauth happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from DUNEAUTH_* environment
      variables and an optional .env file. Field names map to env var names
      with the prefix applied (e.g. db_path -> DUNEAUTH_DB_PATH).

  @model_validator(mode="after"): Normalizes the store path after all fields
      are resolved. The bridge API key is checked by auth/dependencies.py, its
      only consumer, so a weak key never stops the backend or the CLI.

The store path is deliberately allowed to be empty here. An unconfigured path
is not a startup crash: the auth backend marks itself unavailable and fails
closed on every call, which is what the host expects from an auth plugin that
cannot reach its data source.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
import os
from functools import lru_cache

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("duneauth.config")


class Settings(BaseSettings):
    """Adapter settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file.
    """

    model_config = SettingsConfigDict(
        env_prefix="DUNEAUTH_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False
    log_level: str = "INFO"

    # ------------------------------------------------------------------
    # Credential store
    # ------------------------------------------------------------------

    # Filesystem path to the AUTHD SQLite file. Empty string means "not
    # configured" and leaves the backend unavailable.
    db_path: str = ""
    # Seconds the driver waits on a locked database before giving up.
    db_timeout: float = 5.0
    # False reproduces the legacy deployment, which never rejected a
    # password for being expired.
    enforce_password_expiry: bool = True

    # ------------------------------------------------------------------
    # HTTP bridge
    # ------------------------------------------------------------------

    # Shared secret for the X-API-Key header. An empty key, or one shorter
    # than 16 characters, locks every protected route (401).
    api_key: str = ""
    check_rate_limit: str = "10/minute"
    trusted_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost"]

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def normalize(self) -> "Settings":
        """Strip surrounding whitespace from db_path and expand a leading ~."""
        self.db_path = os.path.expanduser(self.db_path.strip()) if self.db_path.strip() else ""
        if self.debug:
            logger.debug("Settings loaded (db_path=%r)", self.db_path)
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the Settings singleton.

    All modules should call get_settings() rather than constructing Settings()
    directly. In tests: call get_settings.cache_clear() after changing
    environment variables.
    """
    return Settings()
