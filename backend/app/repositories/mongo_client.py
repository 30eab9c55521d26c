"""MongoDB Client - Connection and Collection Management"""
from typing import Any, Dict, Optional
from pymongo import MongoClient as PyMongoClient
from pymongo.database import Database
from pymongo.collection import Collection
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import ConnectionFailure, PyMongoError

from ..config.settings import settings
from ..utils.logger import get_logger

logger = get_logger(__name__)

# Global client instance
_client: Optional[PyMongoClient] = None
_database: Optional[Database] = None


def get_client() -> PyMongoClient:
    """Get or create MongoDB client"""
    global _client
    if _client is None:
        logger.info(f"Connecting to MongoDB: {settings.mongo_uri}")
        _client = PyMongoClient(
            settings.mongo_uri,
            serverSelectionTimeoutMS=5000,
            connectTimeoutMS=5000,
            socketTimeoutMS=30000,
        )
        try:
            _client.admin.command("ping")
            logger.info("MongoDB connection successful")
        except ConnectionFailure as e:
            logger.error(f"MongoDB connection failed: {e}")
            raise
    return _client


def get_database() -> Database:
    """Get the application database"""
    global _database
    if _database is None:
        client = get_client()
        _database = client[settings.mongo_db]
        logger.info(f"Using database: {settings.mongo_db}")
    return _database


def get_collection(name: str) -> Collection:
    """Get a collection from the database"""
    db = get_database()
    return db[name]


def close_connection() -> None:
    """Close MongoDB connection"""
    global _client, _database
    if _client is not None:
        _client.close()
        logger.info("MongoDB connection closed")
    _client = None
    _database = None


def create_indexes() -> None:
    """Create all required indexes, including the unique keys the workflow relies on"""
    db = get_database()
    logger.info("Creating MongoDB indexes...")

    # Organizations
    organizations = db["organizations"]
    organizations.create_index("org_id", unique=True)
    organizations.create_index("slug", unique=True)

    # Memberships - one role per user per org
    memberships = db["memberships"]
    memberships.create_index("membership_id", unique=True)
    memberships.create_index([("org_id", ASCENDING), ("user_id", ASCENDING)], unique=True)
    memberships.create_index("user_id")

    # Profiles
    profiles = db["profiles"]
    profiles.create_index("user_id", unique=True)
    profiles.create_index("email")

    # Expenses
    expenses = db["expenses"]
    expenses.create_index("expense_id", unique=True)
    expenses.create_index([("org_id", ASCENDING), ("status", ASCENDING)])
    expenses.create_index([("org_id", ASCENDING), ("user_id", ASCENDING)])
    expenses.create_index([("approver_id", ASCENDING), ("status", ASCENDING)])
    expenses.create_index("created_at", background=True)

    # Comments and history
    comments = db["expense_comments"]
    comments.create_index("comment_id", unique=True)
    comments.create_index([("expense_id", ASCENDING), ("created_at", ASCENDING)])

    history = db["expense_history"]
    history.create_index("history_id", unique=True)
    history.create_index([("expense_id", ASCENDING), ("created_at", DESCENDING)])

    # Policies
    policies = db["policies"]
    policies.create_index("policy_id", unique=True)
    policies.create_index([("org_id", ASCENDING), ("position", ASCENDING)])

    # Vouchers - one per expense
    vouchers = db["vouchers"]
    vouchers.create_index("voucher_id", unique=True)
    vouchers.create_index("expense_id", unique=True)

    # Invitations
    invites = db["invites"]
    invites.create_index("invite_id", unique=True)
    invites.create_index([("org_id", ASCENDING), ("email", ASCENDING)])

    invite_links = db["invite_links"]
    invite_links.create_index("link_id", unique=True)
    invite_links.create_index("org_id")

    # An email may redeem a given link only once
    link_usage = db["invite_link_usage"]
    link_usage.create_index("usage_id", unique=True)
    link_usage.create_index([("link_id", ASCENDING), ("email", ASCENDING)], unique=True)

    # Notification outbox
    notification_outbox = db["notification_outbox"]
    notification_outbox.create_index("notification_id", unique=True)
    notification_outbox.create_index([("status", ASCENDING), ("next_retry_at", ASCENDING)])
    notification_outbox.create_index("expense_id")
    notification_outbox.create_index("locked_until")

    logger.info("MongoDB indexes created successfully")


def health_check() -> Dict[str, Any]:
    """Check MongoDB health"""
    try:
        get_database().command("ping")
        return {
            "status": "healthy",
            "database": settings.mongo_db,
            "connection": "ok"
        }
    except PyMongoError as e:
        logger.error(f"MongoDB health check failed: {e}")
        return {
            "status": "unhealthy",
            "database": settings.mongo_db,
            "error": str(e)
        }
