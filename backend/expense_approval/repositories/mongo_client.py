"""MongoDB Client - Connection, collections and indexes

One process-wide synchronous client. Created with tz_aware=True so dates
come back as UTC-aware datetimes and compare cleanly with utc_now().
"""
from typing import Any, Dict, Optional
from pymongo import MongoClient as PyMongoClient
from pymongo.database import Database
from pymongo.collection import Collection
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import ConnectionFailure, PyMongoError

from ..config.settings import settings
from ..domain.enums import NotificationStatus
from ..utils.logger import get_logger

logger = get_logger(__name__)

EXPENSES = "expenses"
EXPENSE_LOGS = "expense_logs"
NOTIFICATION_OUTBOX = "notification_outbox"

COLLECTIONS = (EXPENSES, EXPENSE_LOGS, NOTIFICATION_OUTBOX)

_client: Optional[PyMongoClient] = None
_database: Optional[Database] = None


def get_client() -> PyMongoClient:
    """Get or create the MongoDB client (pings on first use)"""
    global _client
    if _client is None:
        logger.info(f"Connecting to MongoDB database {settings.mongo_db}")
        client = PyMongoClient(
            settings.mongo_uri,
            serverSelectionTimeoutMS=5000,
            connectTimeoutMS=5000,
            socketTimeoutMS=30000,
            tz_aware=True,
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
    return _database


def get_collection(name: str) -> Collection:
    """Get one of the workflow collections"""
    if name not in COLLECTIONS:
        raise ValueError(f"Unknown collection: {name}")
    return get_database()[name]


def close_connection() -> None:
    global _client, _database
    if _client is not None:
        _client.close()
        _client = None
        _database = None
        logger.info("MongoDB connection closed")


def create_indexes() -> None:
    """Create the indexes the expense queries rely on"""
    db = get_database()

    expenses = db[EXPENSES]
    expenses.create_index("expense_id", unique=True)
    # pending queue and manager views
    expenses.create_index([("company_id", ASCENDING), ("status", ASCENDING), ("created_at", DESCENDING)])
    expenses.create_index([("company_id", ASCENDING), ("approvals.approver_role", ASCENDING), ("approvals.status", ASCENDING)])
    # employee listing
    expenses.create_index([("employee_id", ASCENDING), ("company_id", ASCENDING), ("date", DESCENDING)])
    expenses.create_index([("company_id", ASCENDING), ("category", ASCENDING)])

    expense_logs = db[EXPENSE_LOGS]
    expense_logs.create_index("log_id", unique=True)
    expense_logs.create_index([("expense_id", ASCENDING), ("timestamp", DESCENDING)])
    expense_logs.create_index("correlation_id")

    outbox = db[NOTIFICATION_OUTBOX]
    outbox.create_index("notification_id", unique=True)
    outbox.create_index([("status", ASCENDING), ("created_at", ASCENDING)])
    outbox.create_index("recipient_id")

    logger.info("MongoDB indexes created")


def health_check() -> Dict[str, Any]:
    """Ping plus collection sizes and the undelivered notification backlog"""
    try:
        db = get_database()
        get_client().admin.command("ping")
        return {
            "status": "healthy",
            "database": settings.mongo_db,
            "collections": {name: db[name].estimated_document_count() for name in COLLECTIONS},
            "pending_notifications": db[NOTIFICATION_OUTBOX].count_documents(
                {"status": NotificationStatus.PENDING.value}
            ),
        }
    except PyMongoError as e:
        logger.error(f"MongoDB health check failed: {e}")
        return {
            "status": "unhealthy",
            "database": settings.mongo_db,
            "error": str(e)
        }
