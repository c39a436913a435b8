from beanie import init_beanie
from loguru import logger
from motor.motor_asyncio import AsyncIOMotorClient

from labresult.environment import environment
from labresult.modules.catalog.model import Category, TestParameter, TestType
from labresult.modules.result.model import PatientResult, ResultValue

document_models = [
    Category,
    TestType,
    TestParameter,
    PatientResult,
    ResultValue,
]


async def init_db(database=None) -> None:
    logger.info("Initializing database connection...")
    if database is None:
        client = AsyncIOMotorClient(environment.mongo_uri)
        database = client[environment.mongo_db]
    await init_beanie(database=database, document_models=document_models)
    logger.info("Database connection initialized successfully.")
