"""Runtime settings, read from ``NESTWIRE_*`` environment variables."""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class DISettings(BaseSettings):
    """Settings of the container runtime.

    Attributes:
        root_container_id: Id given to the process-wide root container.
        warn_on_replace: Log provider replacement at WARNING (DEBUG otherwise).
    """

    model_config = SettingsConfigDict(env_prefix="NESTWIRE_", case_sensitive=False, extra="ignore")

    root_container_id: str = Field(default="ROOT", min_length=1)
    warn_on_replace: bool = True


@lru_cache(maxsize=1)
def get_settings() -> DISettings:
    """Return the process settings, loaded once."""
    return DISettings()
