"""Settings and configuration."""
from typing import Optional
from dotenv import load_dotenv
from pydantic_settings import BaseSettings

# Load .env file if it exists; ENCRYPTION_KEY_<ID> variables are read from os.environ
load_dotenv()


class Settings(BaseSettings):
    # Core
    DEV_MODE: bool = False
    LOG_LEVEL: str = "INFO"

    # Database
    DATABASE_URL: Optional[str] = None

    # Security
    ENCRYPTION_MASTER_KEY: Optional[str] = None
    ENCRYPTION_KEY_ID: str = "default"
    ENCRYPTION_CURRENT_KEY_ID: Optional[str] = None

    model_config = {
        "case_sensitive": True,
        "env_file": ".env",
        "extra": "ignore"
    }


def load_settings() -> Settings:
    """Read settings from the environment (and .env) at call time."""
    return Settings()
