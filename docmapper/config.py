"""
Mapper configuration
"""
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Mapper settings"""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    # Database (MongoDB)
    MONGODB_URI: str = "mongodb://localhost:27017"
    MONGODB_DB_NAME: str = "docmapper"

    # Create declared indexes (in the background) whenever a repository is built
    AUTO_INDEX: bool = False

    # Logging
    LOG_FORMAT: str = "text"
    LOG_LEVEL: str = "INFO"


settings = Settings()
