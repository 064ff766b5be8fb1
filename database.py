"""
MongoDB access for the PetMarket API.

Every request gets its own client through the ``get_db`` dependency, and the
client is closed once the response is sent. Collections are addressed by
name; see ``schemas.py`` for the document shapes.
"""
import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Optional, Union

from dotenv import load_dotenv
from fastapi import HTTPException
from pydantic import BaseModel
from pymongo import MongoClient
from pymongo.database import Database

load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_DATABASE_NAME = "petmarket"


def get_db() -> Iterator[Database]:
    mongo_uri = os.getenv("MONGO_URI")
    if not mongo_uri:
        logger.error("MONGO_URI not found in environment variables.")
        raise HTTPException(status_code=500, detail="Server configuration error.")

    client = MongoClient(mongo_uri)
    try:
        yield client.get_default_database(default=os.getenv("DATABASE_NAME", DEFAULT_DATABASE_NAME))
    finally:
        client.close()


def now() -> datetime:
    return datetime.now(timezone.utc)


def create_document(db: Database, collection_name: str, data: Union[BaseModel, Dict[str, Any]]) -> str:
    """Insert a document stamped with ``createdAt`` and return its id as a string."""
    doc = data.model_dump() if isinstance(data, BaseModel) else dict(data)
    doc.setdefault("createdAt", now())
    result = db[collection_name].insert_one(doc)
    return str(result.inserted_id)


def get_documents(db: Database, collection_name: str, filter_dict: Optional[Dict[str, Any]] = None, limit: Optional[int] = None) -> List[dict]:
    cursor = db[collection_name].find(filter_dict or {})
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)
