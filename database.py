"""
MongoDB access

A Database object owns the MongoClient for the process. It is built once
(``Database.from_env()``) and handed to every operation, so tests can inject a
different client. Collection names are the lowercase schema names.
"""
import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Optional

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ASCENDING, TEXT, MongoClient
from pymongo.errors import PyMongoError
from pymongo.read_concern import ReadConcern
from pymongo.write_concern import WriteConcern

import config
from errors import ConfigurationError, InvalidRequestError

logger = logging.getLogger(__name__)


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTED = "connected"
    FAILED = "failed"


class Database:
    def __init__(self, url: Optional[str] = None, name: Optional[str] = None, client: Any = None):
        self.url = url
        self.name = name
        self._client = client
        self._db = None
        self.state = ConnectionState.DISCONNECTED

    @classmethod
    def from_env(cls) -> "Database":
        return cls(url=config.DATABASE_URL, name=config.DATABASE_NAME)

    def connect(self) -> "Database":
        """Open the connection once; later calls are no-ops."""
        if self.state is ConnectionState.CONNECTED:
            return self
        if not self.name:
            self.state = ConnectionState.FAILED
            raise ConfigurationError("DATABASE_NAME is not set")
        if self._client is None:
            if not self.url:
                self.state = ConnectionState.FAILED
                raise ConfigurationError("DATABASE_URL is not set")
            try:
                self._client = MongoClient(self.url, tz_aware=True)
                self._client.admin.command("ping")
            except PyMongoError:
                self.state = ConnectionState.FAILED
                self._client = None
                logger.exception("Error connecting to database")
                raise
        self._db = self._client[self.name]
        self.state = ConnectionState.CONNECTED
        logger.info("MongoDB connected (database=%s)", self.name)
        return self

    @property
    def client(self):
        self.connect()
        return self._client

    @property
    def db(self):
        self.connect()
        return self._db

    def __getitem__(self, collection_name: str):
        return self.db[collection_name]

    @contextmanager
    def transaction(self) -> Iterator[Any]:
        """Run the body inside a multi-document transaction.

        Commits when the body finishes, aborts on any exception and always ends
        the session.
        """
        session = self.client.start_session()
        try:
            session.start_transaction(
                read_concern=ReadConcern("snapshot"),
                write_concern=WriteConcern("majority"),
            )
            logger.debug("MongoDB transaction started")
            try:
                yield session
                session.commit_transaction()
                logger.debug("MongoDB transaction committed")
            except Exception:
                if session.in_transaction:
                    session.abort_transaction()
                    logger.info("MongoDB transaction aborted")
                raise
        finally:
            session.end_session()

    def run_in_transaction(self, callback: Callable[[Any], Any]) -> Any:
        """Run ``callback(session)`` in a transaction and return its result.

        Write conflicts and unknown commit results are retried by pymongo, so
        ``callback`` must be safe to run again from the start.
        """
        with self.client.start_session() as session:
            return session.with_transaction(
                callback,
                read_concern=ReadConcern("snapshot"),
                write_concern=WriteConcern("majority"),
            )

    def ensure_indexes(self):
        db = self.db
        db["product"].create_index("barcode", unique=True)
        db["product"].create_index([("category", ASCENDING), ("brand", ASCENDING)])
        db["product"].create_index([("title", TEXT), ("description", TEXT)])
        db["stock"].create_index("product_id", unique=True)
        db["category"].create_index("slug", unique=True)
        db["type"].create_index("slug", unique=True)
        db["user"].create_index("email", unique=True)
        db["order"].create_index("tracking_number")
        db["cart"].create_index("user_id")

    def create_document(self, collection_name: str, data: Any, session=None) -> ObjectId:
        doc = data.model_dump() if hasattr(data, "model_dump") else dict(data)
        now = datetime.now(timezone.utc)
        doc.setdefault("created_at", now)
        doc["updated_at"] = now
        result = self.db[collection_name].insert_one(doc, session=session)
        return result.inserted_id

    def get_documents(self, collection_name: str, filter_dict: Optional[dict] = None, limit: Optional[int] = None) -> List[dict]:
        cursor = self.db[collection_name].find(filter_dict or {})
        if limit:
            cursor = cursor.limit(limit)
        return list(cursor)

    def status(self) -> Dict[str, Any]:
        response = {
            "backend": "✅ Running",
            "database": "❌ Not Available",
            "database_url": "✅ Set" if self.url else "❌ Not Set",
            "database_name": self.name or "❌ Not Set",
            "connection_status": self.state.value,
            "collections": [],
        }
        try:
            response["collections"] = self.db.list_collection_names()[:10]
            response["database"] = "✅ Connected & Working"
        except ConfigurationError as e:
            response["database"] = f"⚠️ {e.message}"
        except PyMongoError as e:
            response["database"] = f"⚠️ Connected but Error: {str(e)[:50]}"
        response["connection_status"] = self.state.value
        return response


def to_object_id(value: Any, label: str = "id") -> ObjectId:
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        raise InvalidRequestError(f"Invalid {label}: {value!r}")


def serialize(value: Any) -> Any:
    """Make a Mongo document JSON-friendly: ``_id`` -> ``id``, ObjectId/datetime -> str."""
    if isinstance(value, dict):
        out = {}
        for k, v in value.items():
            out["id" if k == "_id" else k] = serialize(v)
        return out
    if isinstance(value, list):
        return [serialize(v) for v in value]
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    return value
