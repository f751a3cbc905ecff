import logging
import re
from typing import Optional

import motor.motor_asyncio
from beanie import init_beanie

from agency_backend.core.config import settings
from agency_backend.database.models import DOCUMENT_MODELS

logger = logging.getLogger(__name__)

# Global database instance
database = None
_client: Optional[motor.motor_asyncio.AsyncIOMotorClient] = None


# Never log full connection URIs, they may contain credentials
def mask_mongo_uri(uri: str) -> str:
    m = re.match(r"(?P<prefix>mongodb(?:\+srv)?://)(?:(?P<creds>[^@]+)@)?(?P<rest>.+)", uri or "")
    if not m:
        return "mongodb://<redacted>"
    host_part = m.group("rest").split("/")[0]
    return f"{m.group('prefix')}***@{host_part}"


async def init_db(db=None):
    """Connect to MongoDB and register the document models with Beanie.

    ``db`` lets callers (tests, scripts) hand in an already created database.
    """
    global database, _client
    if db is None:
        if not settings.MONGODB_URI:
            raise RuntimeError("Configuration error: MONGODB_URI is not set in environment variables")
        if not settings.MONGODB_DB_NAME:
            raise RuntimeError("Configuration error: MONGODB_DB_NAME is not set in environment variables")

        logger.info("Attempting to connect to MongoDB at: %s", mask_mongo_uri(settings.MONGODB_URI))
        logger.info("Database name: %s", settings.MONGODB_DB_NAME)

        client_kwargs = {
            "serverSelectionTimeoutMS": 30000,
            "connectTimeoutMS": 30000,
            "socketTimeoutMS": 30000,
            "retryWrites": True,
        }
        if settings.MONGODB_TLS:
            client_kwargs["tls"] = True
        _client = motor.motor_asyncio.AsyncIOMotorClient(settings.MONGODB_URI, **client_kwargs)

        try:
            await _client.admin.command("ping")
        except Exception as e:
            logger.error("Database initialization failed: %s", e)
            raise
        logger.info("Successfully connected to MongoDB!")
        db = _client[settings.MONGODB_DB_NAME]

    await init_beanie(database=db, document_models=DOCUMENT_MODELS)
    database = db
    logger.info("Beanie initialized with %d document models", len(DOCUMENT_MODELS))
    return database


async def close_db():
    global _client
    if _client is not None:
        _client.close()
        _client = None
