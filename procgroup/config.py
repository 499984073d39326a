"""Global configuration — loaded from environment variables."""

from pydantic_settings import BaseSettings


class ProcGroupSettings(BaseSettings):
    shell: str = "/bin/sh"
    default_limit: int | None = None  # CLI --limit default, None = unlimited
    log_level: str = "WARNING"

    model_config = {"env_prefix": "PROCGROUP_"}


settings = ProcGroupSettings()
