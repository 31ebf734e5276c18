# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
MongoDB service layer with officer-scoped operations and connection pooling.
"""

import os
import logging
from typing import List, Dict, Optional, Any, Tuple
from pymongo import MongoClient, ASCENDING, DESCENDING
from pymongo.collection import Collection
from pymongo.database import Database
from pymongo.errors import (
    ConnectionFailure,
    ServerSelectionTimeoutError,
    DuplicateKeyError
)
from bson import ObjectId
from bson.errors import InvalidId

from models.base import utc_now

logger = logging.getLogger(__name__)

DOB_ENTRIES_COLLECTION = "dob_entries"


class MongoDBService:
    """MongoDB service with officer-scoped operations and connection pooling."""

    def __init__(self, connection_string: str = None, database_name: str = None):
        """Initialize MongoDB service with connection pooling."""
        self.connection_string = connection_string or os.getenv(
            'MONGODB_URI',
            'mongodb://localhost:27017/dob_dev'
        )
        self.database_name = database_name or os.getenv('MONGODB_DATABASE', 'dob_dev')
        self._client: Optional[MongoClient] = None
        self._database: Optional[Database] = None

        # Connection pool settings
        self.max_pool_size = int(os.getenv('MONGODB_MAX_POOL_SIZE', '10'))
        self.min_pool_size = int(os.getenv('MONGODB_MIN_POOL_SIZE', '1'))
        self.max_idle_time_ms = int(os.getenv('MONGODB_MAX_IDLE_TIME_MS', '30000'))
        self.server_selection_timeout_ms = int(os.getenv('MONGODB_SERVER_SELECTION_TIMEOUT_MS', '5000'))

        logger.info(f"MongoDB service initialized for database: {self.database_name}")

    @property
    def client(self) -> MongoClient:
        """Get MongoDB client with connection pooling."""
        if self._client is None:
            try:
                self._client = MongoClient(
                    self.connection_string,
                    maxPoolSize=self.max_pool_size,
                    minPoolSize=self.min_pool_size,
                    maxIdleTimeMS=self.max_idle_time_ms,
                    serverSelectionTimeoutMS=self.server_selection_timeout_ms,
                    tz_aware=True,
                    retryReads=True
                )
                # Test connection
                self._client.admin.command('ping')
                logger.info("MongoDB connection established successfully")
            except (ConnectionFailure, ServerSelectionTimeoutError) as e:
                logger.error(f"Failed to connect to MongoDB: {e}")
                self._client = None
                raise

        return self._client

    @property
    def database(self) -> Database:
        """Get MongoDB database."""
        if self._database is None:
            self._database = self.client[self.database_name]
        return self._database

    def get_collection(self, collection_name: str) -> Collection:
        """Get MongoDB collection."""
        return self.database[collection_name]

    def close_connection(self) -> None:
        """Close MongoDB connection."""
        if self._client:
            self._client.close()
            self._client = None
            self._database = None
            logger.info("MongoDB connection closed")

    def health_check(self) -> Dict[str, Any]:
        """Check MongoDB connection health."""
        try:
            # Ping the database
            result = self.client.admin.command('ping')

            # Get server info
            server_info = self.client.server_info()

            return {
                'status': 'healthy',
                'ping': result.get('ok') == 1,
                'version': server_info.get('version'),
                'database': self.database_name,
                'connection_pool_size': self.max_pool_size
            }
        except Exception as e:
            logger.error(f"MongoDB health check failed: {e}")
            return {
                'status': 'unhealthy',
                'error': str(e),
                'database': self.database_name
            }

    def _validate_object_id(self, doc_id: str) -> ObjectId:
        """Validate and convert string ID to ObjectId."""
        try:
            return ObjectId(doc_id)
        except (InvalidId, TypeError):
            raise ValueError(f"Invalid ObjectId format: {doc_id}")

    def _build_cpo_query(self, cpo_id: str, filters: Dict = None) -> Dict:
        """Build officer-scoped query with optional filters."""
        query = {"cpoId": cpo_id}

        # Add additional filters
        if filters:
            query.update(filters)

        return query

    def _add_timestamps(self, document: Dict, is_update: bool = False) -> Dict:
        """Add creation and update timestamps to document."""
        now = utc_now()

        if not is_update:
            document["createdAt"] = now

        document["updatedAt"] = now

        return document

    @staticmethod
    def _stringify_id(document: Dict) -> Dict:
        if "_id" in document:
            document["id"] = str(document["_id"])
            del document["_id"]
        return document

    # CRUD Operations with Officer Scoping

    def create(self, collection: str, document: Dict) -> Dict:
        """Insert a new document; an existing ``_id`` is never overwritten."""
        try:
            document = self._add_timestamps(document)

            # Ensure document has an ID
            if "_id" not in document:
                document["_id"] = ObjectId()

            collection_obj = self.get_collection(collection)
            result = collection_obj.insert_one(document)

            logger.info(f"Created document in {collection}: {result.inserted_id}")
            return document

        except DuplicateKeyError as e:
            logger.error(f"Duplicate key error in {collection}: {e}")
            raise
        except Exception as e:
            logger.error(f"Failed to create document in {collection}: {e}")
            raise

    def find_one(self, collection: str, doc_id: str) -> Optional[Dict]:
        """Find a single document by ID, regardless of owner."""
        try:
            object_id = self._validate_object_id(doc_id)
        except ValueError as e:
            logger.debug(f"Invalid document ID {doc_id}: {e}")
            return None

        try:
            document = self.get_collection(collection).find_one({"_id": object_id})

            if document:
                logger.debug(f"Found document {doc_id} in {collection}")
                return self._stringify_id(document)

            logger.debug(f"Document {doc_id} not found in {collection}")
            return None

        except Exception as e:
            logger.error(f"Failed to find document {doc_id} in {collection}: {e}")
            raise

    def find_by_cpo(self, collection: str, cpo_id: str, filters: Dict = None,
                    sort: List[Tuple[str, int]] = None, limit: int = 0) -> List[Dict]:
        """Find documents owned by an officer with optional filters and sort."""
        try:
            query = self._build_cpo_query(cpo_id, filters)
            cursor = self.get_collection(collection).find(query)

            if sort:
                cursor = cursor.sort(sort)
            if limit:
                cursor = cursor.limit(limit)

            documents = [self._stringify_id(doc) for doc in cursor]

            logger.debug(f"Found {len(documents)} documents in {collection} for officer {cpo_id}")
            return documents

        except Exception as e:
            logger.error(f"Failed to find documents in {collection}: {e}")
            raise

    def update_where(self, collection: str, doc_id: str, conditions: Dict,
                     updates: Dict) -> bool:
        """
        Conditionally update a document.

        The update applies only if the document matches ``conditions`` at
        write time; returns whether a document was modified.
        """
        try:
            object_id = self._validate_object_id(doc_id)
        except ValueError as e:
            logger.error(f"Invalid document ID {doc_id}: {e}")
            return False

        try:
            query = {"_id": object_id}
            query.update(conditions)

            updates = self._add_timestamps(dict(updates), is_update=True)

            result = self.get_collection(collection).update_one(query, {"$set": updates})

            if result.modified_count > 0:
                logger.info(f"Updated document {doc_id} in {collection}")
                return True

            logger.warning(f"No document updated for {doc_id} in {collection}")
            return False

        except Exception as e:
            logger.error(f"Failed to update document {doc_id} in {collection}: {e}")
            raise

    def count_by_cpo(self, collection: str, cpo_id: str, filters: Dict = None) -> int:
        """Count documents owned by an officer with optional filters."""
        try:
            query = self._build_cpo_query(cpo_id, filters)
            count = self.get_collection(collection).count_documents(query)
            logger.debug(f"Counted {count} documents in {collection} for officer {cpo_id}")
            return count

        except Exception as e:
            logger.error(f"Failed to count documents in {collection}: {e}")
            raise

    # Index Management

    def create_indexes(self) -> None:
        """Create performance indexes for the DOB collection."""
        try:
            logger.info("Creating MongoDB indexes...")

            entries = self.get_collection(DOB_ENTRIES_COLLECTION)
            entries.create_index([("cpoId", ASCENDING), ("timestamp", DESCENDING)])
            entries.create_index([("cpoId", ASCENDING), ("assignmentId", ASCENDING), ("timestamp", DESCENDING)])
            entries.create_index([("cpoId", ASCENDING), ("eventType", ASCENDING)])
            entries.create_index([("cpoId", ASCENDING), ("entryType", ASCENDING)])

            logger.info("MongoDB indexes created successfully")

        except Exception as e:
            logger.error(f"Failed to create MongoDB indexes: {e}")
            raise


# Singleton instance for application use
_mongodb_service: Optional[MongoDBService] = None


def get_mongodb_service() -> MongoDBService:
    """Get singleton MongoDB service instance."""
    global _mongodb_service
    if _mongodb_service is None:
        _mongodb_service = MongoDBService()
    return _mongodb_service


def close_mongodb_connection() -> None:
    """Close MongoDB connection (for cleanup)."""
    global _mongodb_service
    if _mongodb_service:
        _mongodb_service.close_connection()
        _mongodb_service = None
