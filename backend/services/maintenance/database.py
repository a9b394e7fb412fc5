"""
QrBites Maintenance - Document store connection

One motor client per run: opened at the start, verified with a ping and
closed in a finally block by the caller (see `maintenance_database`).
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Tuple

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo.errors import PyMongoError

from .exceptions import DatabaseConnectionError

logger = logging.getLogger(__name__)


async def connect(
    mongodb_uri: str,
    db_name: str,
    server_selection_timeout_ms: int = 5000,
) -> Tuple[AsyncIOMotorClient, AsyncIOMotorDatabase]:
    """
    Open a client and verify the server is reachable.

    The database named in the URI wins over db_name.
    Raises DatabaseConnectionError on failure.
    """
    try:
        client = AsyncIOMotorClient(
            mongodb_uri,
            maxPoolSize=10,
            serverSelectionTimeoutMS=server_selection_timeout_ms,
            socketTimeoutMS=45000,
        )
    except PyMongoError as e:
        raise DatabaseConnectionError(f"Invalid MongoDB configuration: {e}") from e

    try:
        await client.admin.command("ping")
    except PyMongoError as e:
        client.close()
        raise DatabaseConnectionError(f"MongoDB connection failed: {e}") from e

    db = client.get_default_database(default=db_name)
    logger.info(f"Connected to MongoDB database {db.name}")
    return client, db


@asynccontextmanager
async def maintenance_database(settings) -> AsyncIterator[AsyncIOMotorDatabase]:
    """Yield a connected database and always close the client afterwards."""
    client, db = await connect(
        settings.mongodb_uri,
        settings.db_name,
        settings.server_selection_timeout_ms,
    )
    try:
        yield db
    finally:
        client.close()
        logger.info("MongoDB connection closed")
