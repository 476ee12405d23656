"""Application configuration loaded from environment variables."""

from pathlib import Path
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Worksheet templates (relative to project root)
    templates_dir: str = "templates"

    # Logging
    log_level: str = "INFO"

    # Upper bound for generic title and identifier disambiguation
    max_disambiguation_attempts: int = 10000

    @property
    def project_root(self) -> Path:
        return Path(__file__).parent.parent.parent

    model_config = {"env_file": ".env", "env_prefix": "SHEETMODEL_", "extra": "ignore"}


settings = Settings()
