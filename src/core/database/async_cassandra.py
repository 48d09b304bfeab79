"""Async Cassandra connection using cassandra-asyncio-driver.

The driver extends cassandra-driver with ``session.aexecute()``. A
``CassandraDatabase`` instance owns one cluster + session pair; it is opened
in the application lifespan and handed to services explicitly, so nothing
holds a module-level connection.
"""

import structlog
from cassandra.auth import PlainTextAuthProvider
from cassandra.policies import DCAwareRoundRobinPolicy, TokenAwarePolicy
from cassandra_asyncio.cluster import Cluster

from src.auth.models import AUTH_TABLES_CQL
from src.config.settings import Settings, get_settings
from src.courses.models import COURSES_TABLES_CQL
from src.progress.models import PROGRESS_TABLES_CQL


logger = structlog.get_logger(__name__)

SCHEMA: dict[str, list[str]] = {
    "auth": AUTH_TABLES_CQL,
    "courses": COURSES_TABLES_CQL,
    "progress": PROGRESS_TABLES_CQL,
}


class CassandraDatabase:
    """Owns the Cassandra cluster and session for one application instance."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self.keyspace = settings.cassandra_keyspace
        self._cluster: Cluster | None = None
        self._session = None

    @property
    def session(self):
        """Active session with aexecute(); raises if not connected."""
        if self._session is None:
            raise RuntimeError("Cassandra session is not open")
        return self._session

    def connect(self):
        """Open the cluster connection.

        Raises:
            ConnectionError: If the cluster cannot be reached.
        """
        if self._session is not None:
            return self._session

        auth_provider = None
        if self.settings.cassandra_username and self.settings.cassandra_password:
            auth_provider = PlainTextAuthProvider(
                username=self.settings.cassandra_username,
                password=self.settings.cassandra_password,
            )

        self._cluster = Cluster(
            contact_points=self.settings.cassandra_hosts,
            port=self.settings.cassandra_port,
            auth_provider=auth_provider,
            protocol_version=self.settings.cassandra_protocol_version,
            load_balancing_policy=TokenAwarePolicy(DCAwareRoundRobinPolicy()),
            connect_timeout=self.settings.cassandra_connect_timeout,
        )

        try:
            self._session = self._cluster.connect()
        except Exception as e:
            logger.error("cassandra_connection_failed", error=str(e))
            self._cluster.shutdown()
            self._cluster = None
            raise ConnectionError(f"Failed to connect to Cassandra: {e}") from e

        self._session.default_timeout = self.settings.cassandra_request_timeout
        logger.info(
            "cassandra_connected",
            hosts=self.settings.cassandra_hosts,
            port=self.settings.cassandra_port,
        )
        return self._session

    async def create_schema(self) -> None:
        """Create the keyspace and every module's tables if missing."""
        if self.settings.is_production:
            replication = "'class': 'NetworkTopologyStrategy', 'datacenter1': 3"
        else:
            replication = "'class': 'SimpleStrategy', 'replication_factor': 1"

        session = self.session
        await session.aexecute(
            f"CREATE KEYSPACE IF NOT EXISTS {self.keyspace} "
            f"WITH replication = {{{replication}}} AND durable_writes = true"
        )
        session.set_keyspace(self.keyspace)

        for module, statements in SCHEMA.items():
            for cql_template in statements:
                await session.aexecute(cql_template.format(keyspace=self.keyspace))
            logger.info("tables_created", module=module, keyspace=self.keyspace)

    def is_connected(self) -> bool:
        return self._session is not None and not self._session.is_shutdown

    def close(self) -> None:
        """Close session and cluster."""
        if self._session is not None:
            self._session.shutdown()
            self._session = None
        if self._cluster is not None:
            self._cluster.shutdown()
            self._cluster = None
        logger.info("cassandra_closed")


async def init_async_cassandra(settings: Settings | None = None) -> CassandraDatabase:
    """Connect and create the schema; returns the opened database handle."""
    database = CassandraDatabase(settings or get_settings())
    database.connect()
    await database.create_schema()
    logger.info("cassandra_initialized", keyspace=database.keyspace)
    return database


async def shutdown_async_cassandra(database: CassandraDatabase | None) -> None:
    if database is not None:
        database.close()
