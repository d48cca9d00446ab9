"""
Database operations - Generic CRUD functions for all collections
"""
import asyncio
from datetime import datetime, timezone
from typing import Any, Awaitable, Dict, List, Optional, Tuple

from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from motel.config.database import DatabaseConfig
from motel.config.settings import settings
from motel.utils.exceptions import DependencyError, StorageTimeoutError


def to_object_id(doc_id: Any) -> Optional[ObjectId]:
    """Return an ObjectId for a valid id string, None otherwise"""
    if isinstance(doc_id, ObjectId):
        return doc_id
    if isinstance(doc_id, str) and ObjectId.is_valid(doc_id):
        return ObjectId(doc_id)
    return None


class DBOperations:
    """Generic database operations for MongoDB collections.

    Every storage call is bounded by ``timeout`` seconds. A timeout surfaces as
    StorageTimeoutError and any other driver failure as DependencyError, so
    callers can tell "storage is unavailable" apart from "document not found".
    DuplicateKeyError is passed through untouched for uniqueness handling.
    """

    def __init__(self, db_config: DatabaseConfig, timeout: Optional[float] = None):
        self.db_config = db_config
        self.timeout = timeout if timeout is not None else settings.STORAGE_TIMEOUT_SECONDS

    async def _run(self, awaitable: Awaitable):
        try:
            return await asyncio.wait_for(awaitable, timeout=self.timeout)
        except asyncio.TimeoutError as exc:
            raise StorageTimeoutError(f"Storage call exceeded {self.timeout:.1f}s") from exc
        except DuplicateKeyError:
            raise
        except PyMongoError as exc:
            raise DependencyError(f"Storage unavailable: {exc}") from exc

    def _collection(self, collection_name: str):
        try:
            return self.db_config.get_collection(collection_name)
        except RuntimeError as exc:
            raise DependencyError(str(exc)) from exc

    async def get_all(self, collection_name: str, filter_query: Dict = None, skip: int = 0, limit: int = 100,
                      sort: Optional[List[Tuple[str, int]]] = None) -> List[Dict]:
        """Get all documents from a collection with optional filtering"""
        collection = self._collection(collection_name)
        cursor = collection.find(filter_query or {})
        if sort:
            cursor = cursor.sort(sort)
        cursor = cursor.skip(skip).limit(limit)
        return await self._run(cursor.to_list(length=limit))

    async def get_by_id(self, collection_name: str, doc_id: str) -> Optional[Dict]:
        """Get a single document by ID"""
        oid = to_object_id(doc_id)
        if oid is None:
            return None
        collection = self._collection(collection_name)
        return await self._run(collection.find_one({"_id": oid}))

    async def get_one(self, collection_name: str, filter_query: Dict) -> Optional[Dict]:
        """Get a single document by filter query"""
        collection = self._collection(collection_name)
        return await self._run(collection.find_one(filter_query))

    async def create(self, collection_name: str, document: Dict) -> Dict:
        """Create a new document"""
        collection = self._collection(collection_name)
        now = datetime.now(timezone.utc)
        document.setdefault("created_at", now)
        document["updated_at"] = now
        result = await self._run(collection.insert_one(document))
        document["_id"] = result.inserted_id
        return document

    async def update(self, collection_name: str, doc_id: str, update_data: Dict,
                     unset: Optional[List[str]] = None) -> Optional[Dict]:
        """Update a document by ID and return the updated document"""
        oid = to_object_id(doc_id)
        if oid is None:
            return None
        return await self.update_where(collection_name, {"_id": oid}, update_data, unset=unset)

    async def update_where(self, collection_name: str, filter_query: Dict, update_data: Dict,
                           unset: Optional[List[str]] = None) -> Optional[Dict]:
        """Update the first document matching filter_query; None when nothing matched"""
        collection = self._collection(collection_name)
        update_data["updated_at"] = datetime.now(timezone.utc)
        update = {"$set": update_data}
        if unset:
            update["$unset"] = {field: "" for field in unset}
        return await self._run(collection.find_one_and_update(
            filter_query,
            update,
            return_document=ReturnDocument.AFTER,
        ))

    async def increment(self, collection_name: str, doc_id: str, increments: Dict[str, float],
                        extra_set: Optional[Dict] = None, conditions: Optional[Dict] = None) -> Optional[Dict]:
        """Atomically increment numeric fields of a document.
        With ``conditions`` the update only applies when the document also matches them;
        None is returned otherwise.
        """
        oid = to_object_id(doc_id)
        if oid is None:
            return None
        collection = self._collection(collection_name)
        update_set = dict(extra_set or {})
        update_set["updated_at"] = datetime.now(timezone.utc)
        return await self._run(collection.find_one_and_update(
            {"_id": oid, **(conditions or {})},
            {"$inc": increments, "$set": update_set},
            return_document=ReturnDocument.AFTER,
        ))

    async def delete(self, collection_name: str, doc_id: str) -> bool:
        """Delete a document by ID"""
        oid = to_object_id(doc_id)
        if oid is None:
            return False
        collection = self._collection(collection_name)
        result = await self._run(collection.delete_one({"_id": oid}))
        return result.deleted_count > 0

    async def count(self, collection_name: str, filter_query: Dict = None) -> int:
        """Count documents in a collection"""
        collection = self._collection(collection_name)
        return await self._run(collection.count_documents(filter_query or {}))
