"""MongoDB connection lifecycle for the identity record store."""

from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.collection import Collection
from pymongo.errors import PyMongoError

from id_scanner.utils.config import DatabaseConfig
from id_scanner.utils.logger import get_logger

logger = get_logger(__name__)


def mask_connection_string(uri: str) -> str:
    """Hide the password in a MongoDB URI so it can be logged."""
    if "://" not in uri:
        return uri
    scheme, rest = uri.split("://", 1)
    if "@" not in rest:
        return uri
    credentials, host = rest.rsplit("@", 1)
    if ":" not in credentials:
        return uri
    username = credentials.split(":", 1)[0]
    return f"{scheme}://{username}:***@{host}"


def ensure_indexes(collection: Collection) -> None:
    """Create the indexes the list and search queries rely on."""
    collection.create_index([("lastName", ASCENDING), ("firstName", ASCENDING)])
    collection.create_index([("id", ASCENDING)])
    collection.create_index([("extractedAt", DESCENDING)])
    collection.create_index([("isManuallyEdited", ASCENDING)])


class Database:
    """Owns the MongoDB client and hands out the records collection.

    Args:
        config: Database section of the application configuration.
        client: Existing client to use instead of connecting from
            ``config.uri``.
    """

    def __init__(self, config: DatabaseConfig, client: MongoClient | None = None) -> None:
        self.config = config
        self._client = client

    @property
    def client(self) -> MongoClient:
        if self._client is None:
            logger.info(
                "Connecting to MongoDB at %s", mask_connection_string(self.config.uri)
            )
            self._client = MongoClient(
                self.config.uri,
                serverSelectionTimeoutMS=self.config.server_selection_timeout_ms,
                tz_aware=True,
            )
        return self._client

    @property
    def records(self) -> Collection:
        return self.client[self.config.database_name][self.config.collection_name]

    def connect(self) -> None:
        """Verify connectivity and prepare indexes.

        Raises:
            PyMongoError: If the server cannot be reached.
        """
        self.client.admin.command("ping")
        ensure_indexes(self.records)
        logger.info("Connected to MongoDB successfully")

    def ping(self) -> bool:
        """Return whether the server currently answers a ping."""
        try:
            self.client.admin.command("ping")
        except PyMongoError as exc:
            logger.warning("MongoDB ping failed: %s", exc)
            return False
        return True

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None
            logger.info("MongoDB connection closed")
