"""
Database Helpers

MongoDB connection plus the small document helpers the API uses.
Connection settings come from DATABASE_URL and DATABASE_NAME.
"""
import os
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from dotenv import load_dotenv
from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING, MongoClient

load_dotenv()

logger = logging.getLogger(__name__)

DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME")

client = None
db = None

if DATABASE_URL and DATABASE_NAME:
    client = MongoClient(DATABASE_URL)
    db = client[DATABASE_NAME]


def create_document(collection_name: str, data: Union[BaseModel, Dict[str, Any]]) -> str:
    """Insert a document with timestamps and return its id as a string."""
    if db is None:
        raise RuntimeError("Database not available. Check DATABASE_URL and DATABASE_NAME environment variables.")

    if isinstance(data, BaseModel):
        data_dict = data.model_dump()
    else:
        data_dict = dict(data)

    now = datetime.now(timezone.utc)
    data_dict["created_at"] = now
    data_dict["updated_at"] = now

    result = db[collection_name].insert_one(data_dict)
    return str(result.inserted_id)


def get_documents(collection_name: str, filter_dict: Optional[Dict[str, Any]] = None,
                  limit: Optional[int] = None) -> List[Dict[str, Any]]:
    if db is None:
        raise RuntimeError("Database not available. Check DATABASE_URL and DATABASE_NAME environment variables.")

    cursor = db[collection_name].find(filter_dict or {})
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def ensure_indexes():
    if db is None:
        return
    db["category"].create_index([("name", ASCENDING)], unique=True)
    db["product"].create_index([("category", ASCENDING)])
    db["order"].create_index([("created_at", DESCENDING)])
    logger.info("Indexes ensured on %s", db.name)
