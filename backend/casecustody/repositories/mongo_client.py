"""
MongoDB access for the custody store

One lazily created client per process. Reports, case folders and audit
events each live in their own collection; INDEXES lists what every
collection needs and create_indexes() applies it idempotently.
"""
from typing import Any, Dict, List, Optional, Tuple, Union
from pymongo import MongoClient as PyMongoClient
from pymongo.database import Database
from pymongo.collection import Collection
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import ConnectionFailure, PyMongoError

from ..config.settings import settings
from ..utils.logger import get_logger

logger = get_logger(__name__)

REPORTS_COLLECTION = "reports"
CASE_FOLDERS_COLLECTION = "case_folders"
AUDIT_EVENTS_COLLECTION = "audit_events"

IndexKeys = Union[str, List[Tuple[str, int]]]

# collection -> [(keys, unique)]
INDEXES: Dict[str, List[Tuple[IndexKeys, bool]]] = {
    REPORTS_COLLECTION: [
        ("id", True),
        ([("case_key", ASCENDING), ("sequence_number", DESCENDING)], False),
        ("status", False),
        ("deleted_at", False),
    ],
    CASE_FOLDERS_COLLECTION: [
        ("case_key", True),
        ("closed_at", False),
    ],
    AUDIT_EVENTS_COLLECTION: [
        ("audit_event_id", True),
        ([("report_id", ASCENDING), ("timestamp", DESCENDING)], False),
        ([("case_key", ASCENDING), ("timestamp", DESCENDING)], False),
        ("correlation_id", False),
    ],
}

_client: Optional[PyMongoClient] = None
_database: Optional[Database] = None


def get_client() -> PyMongoClient:
    """Get or create the MongoDB client, pinging once on creation"""
    global _client
    if _client is not None:
        return _client

    logger.info(f"Connecting to MongoDB: {settings.mongo_uri}")
    client = PyMongoClient(
        settings.mongo_uri,
        tz_aware=True,
        serverSelectionTimeoutMS=5000,
        connectTimeoutMS=5000,
        socketTimeoutMS=30000,
    )
    try:
        client.admin.command("ping")
    except ConnectionFailure as e:
        logger.error(f"MongoDB connection failed: {e}")
        client.close()
        raise
    _client = client
    return _client


def get_database() -> Database:
    global _database
    if _database is None:
        _database = get_client()[settings.mongo_db]
        logger.info(f"Using database: {settings.mongo_db}")
    return _database


def get_collection(name: str) -> Collection:
    return get_database()[name]


def close_connection() -> None:
    """Close the client; the next call to get_client() reconnects"""
    global _client, _database
    if _client is None:
        return
    _client.close()
    _client = None
    _database = None
    logger.info("MongoDB connection closed")


def create_indexes() -> None:
    db = get_database()
    for collection_name, specs in INDEXES.items():
        collection = db[collection_name]
        for keys, unique in specs:
            collection.create_index(keys, unique=unique)
    logger.info(f"Ensured indexes on {len(INDEXES)} collections")


def health_check() -> Dict[str, Any]:
    """Ping the server and describe the result"""
    status: Dict[str, Any] = {"database": settings.mongo_db}
    try:
        get_client().admin.command("ping")
    except PyMongoError as e:
        logger.error(f"MongoDB health check failed: {e}")
        status.update(status="unhealthy", error=str(e))
        return status
    status.update(status="healthy", connection="ok")
    return status
