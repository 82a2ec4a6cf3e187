"""
Database helpers for the Barbershop Booking API

A single module-level MongoDB handle (`db`) plus small helpers used by the
directory and booking modules. Collection names are the lowercase of the
schema class names in schemas.py (Barber -> "barber", Appointment ->
"appointment").
"""
import logging
from datetime import datetime, timezone
from typing import Optional, Union

from pydantic import BaseModel
from pymongo import ASCENDING, MongoClient
from pymongo.database import Database

from config import DATABASE_NAME, DATABASE_URL

logger = logging.getLogger(__name__)

client: Optional[MongoClient] = None
db: Optional[Database] = None

if DATABASE_URL and DATABASE_NAME:
    # MongoClient connects lazily; reachability is checked by ping() at startup
    client = MongoClient(DATABASE_URL, serverSelectionTimeoutMS=5000)
    db = client[DATABASE_NAME]


def ping(database: Database) -> None:
    """Round-trip to the server. Raises if the store is unreachable."""
    database.client.admin.command("ping")
    logger.info(f"Connected to MongoDB database '{database.name}'")


def ensure_indexes(database: Database) -> None:
    # Unique email closes the gap between the registration pre-check and insert
    database["barber"].create_index([("email", ASCENDING)], unique=True)
    database["barber"].create_index([("first_name", ASCENDING), ("last_name", ASCENDING)])
    database["appointment"].create_index([("barber", ASCENDING)])
    database["appointment"].create_index([("barber_id", ASCENDING)])
    database["appointment"].create_index([("email", ASCENDING)])


def create_document(database: Database, collection_name: str, data: Union[BaseModel, dict]) -> str:
    """Insert a document with created/updated timestamps and return its id as a string."""
    if isinstance(data, BaseModel):
        data_dict = data.model_dump()
    else:
        data_dict = data.copy()

    now = datetime.now(timezone.utc)
    data_dict.setdefault("created_at", now)
    data_dict["updated_at"] = now

    result = database[collection_name].insert_one(data_dict)
    return str(result.inserted_id)


def get_documents(database: Database, collection_name: str, filter_dict: Optional[dict] = None) -> list:
    """Fetch documents in store order."""
    return list(database[collection_name].find(filter_dict or {}))


# Helper to convert Mongo _id to string
def serialize(doc: Optional[dict]) -> Optional[dict]:
    if not doc:
        return doc
    doc = dict(doc)
    if doc.get("_id"):
        doc["id"] = str(doc.pop("_id"))
    return doc


def get_db() -> Database:
    if db is None:
        raise RuntimeError("Database not available. Check DATABASE_URL and DATABASE_NAME.")
    return db
