from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from loguru import logger


class Environment(BaseSettings):
    mongo_uri: str = Field("mongodb://localhost:27017")
    mongo_db: str = Field("labresult")

    # minimum rapidfuzz partial ratio for the test type search box
    catalog_search_threshold: int = Field(80)

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


environment = Environment()

logger.info("Environment variables loaded successfully.")
