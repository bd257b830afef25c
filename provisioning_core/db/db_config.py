"""
Database configuration and the partition-aware database manager.

The global partition holds the shared catalog (institutions, plans, permissions).
Each institution owns a tenant partition holding its users. On PostgreSQL a
partition is a schema and tenant tables are routed to it with a schema
translate map; on SQLite each partition is its own database.
"""

import os
import re
import threading
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict
from sqlalchemy import MetaData, create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from ..constants import GLOBAL_PARTITION, SESSION_PARTITION_KEY, TENANT_SCHEMA_PLACEHOLDER
from ..exceptions import ErrorCode, ServiceError, ValidationError
from ..utils.logger import get_logger

# Shared catalog tables
GlobalBase: Any = declarative_base()

# Tenant tables; the placeholder schema is translated per partition
TenantBase: Any = declarative_base(metadata=MetaData(schema=TENANT_SCHEMA_PLACEHOLDER))

PARTITION_NAME_PATTERN = re.compile(r"^[a-z_][a-z0-9_]{0,62}$")


def validate_partition_name(partition_name: Optional[str]) -> str:
    """
    Ensure a partition name is a safe SQL identifier.

    Raises:
        ValidationError: If the name is empty or contains unsafe characters
    """
    if not partition_name or not PARTITION_NAME_PATTERN.match(partition_name):
        raise ValidationError(
            f"Invalid partition name: {partition_name!r}",
            field="partition_name",
            error_code=ErrorCode.INVALID_FORMAT,
            value=partition_name,
        )
    if partition_name == GLOBAL_PARTITION:
        raise ValidationError(
            "The global partition cannot hold tenant data",
            field="partition_name",
            error_code=ErrorCode.CONSTRAINT_VIOLATION,
            value=partition_name,
        )
    return partition_name


class DatabaseConfig(BaseModel):
    db_type: str = "postgres"
    database: str
    host: Optional[str] = None
    port: str = "5432"
    username: Optional[str] = None
    password: Optional[str] = None
    pool_size: int = 5
    max_overflow: int = 10
    pool_timeout: int = 30
    echo: bool = False
    development_mode: bool = False

    model_config = ConfigDict(arbitrary_types_allowed=True)

    @property
    def is_sqlite(self) -> bool:
        return self.db_type.lower() == "sqlite"

    @property
    def is_memory(self) -> bool:
        return self.is_sqlite and self.database in ("", ":memory:")

    def get_connection_string(self, partition_name: Optional[str] = None) -> str:
        """
        Build the SQLAlchemy URL.

        For SQLite a partition gets its own database file next to the global one.
        """
        if self.db_type.lower() == "postgres":
            if not all([self.host, self.database, self.username, self.password]):
                raise ValidationError(
                    "Missing required Postgres configuration parameters",
                    error_code=ErrorCode.MISSING_REQUIRED,
                    field="database_config",
                    value={"host": self.host, "database": self.database, "username": self.username},
                )
            return (
                f"postgresql://{self.username}:{self.password}@"
                f"{self.host}:{self.port}/{self.database}"
            )
        elif self.is_sqlite:
            if self.is_memory:
                return "sqlite://"
            if partition_name is None:
                return f"sqlite:///{self.database}"
            path = Path(self.database)
            suffix = path.suffix or ".db"
            return f"sqlite:///{path.with_name(f'{path.stem}_{partition_name}{suffix}')}"
        raise ValidationError(
            f"Unsupported database type: {self.db_type}",
            error_code=ErrorCode.INVALID_FORMAT,
            field="db_type",
            value=self.db_type,
        )

    def __repr__(self) -> str:
        """String representation with masked password."""
        return (
            f"DatabaseConfig("
            f"db_type='{self.db_type}', "
            f"host='{self.host}', "
            f"port='{self.port}', "
            f"database='{self.database}', "
            f"username='{self.username}', "
            f"password='***')"
        )


def _configure_sqlite_engine(engine: Engine) -> None:
    """Enable foreign keys and let SQLAlchemy own BEGIN so savepoints work."""

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


class DatabaseManager:
    """
    Owns the global engine and lazily builds one engine per tenant partition.

    Sessions are tagged with the partition they are bound to in
    ``session.info["partition"]``; repositories check the tag before use.
    """

    def __init__(self, config: DatabaseConfig):
        self.config = config
        self.logger = get_logger()
        self.engine = self._create_engine(config.get_connection_string())
        self.session_factory = sessionmaker(
            bind=self.engine,
            expire_on_commit=False,
            info={SESSION_PARTITION_KEY: GLOBAL_PARTITION},
        )
        self._partition_engines: Dict[str, Engine] = {}
        self._partition_factories: Dict[str, sessionmaker] = {}
        self._lock = threading.Lock()

    @property
    def supports_concurrent_writes(self) -> bool:
        """SQLite takes one writer at a time; in-memory partitions share one connection."""
        return not self.config.is_sqlite

    def _create_engine(self, connection_string: str) -> Engine:
        if self.config.is_sqlite:
            connect_args = {"check_same_thread": False}
            kwargs: Dict[str, Any] = {}
            if self.config.is_memory:
                kwargs["poolclass"] = StaticPool
            engine = create_engine(
                connection_string, echo=self.config.echo, connect_args=connect_args, **kwargs
            )
            _configure_sqlite_engine(engine)
            return engine
        return create_engine(
            connection_string,
            echo=self.config.echo,
            pool_size=self.config.pool_size,
            max_overflow=self.config.max_overflow,
            pool_timeout=self.config.pool_timeout,
        )

    def _partition_engine(self, partition_name: str) -> Engine:
        validate_partition_name(partition_name)
        with self._lock:
            engine = self._partition_engines.get(partition_name)
            if engine is not None:
                return engine

            if self.config.is_sqlite:
                engine = self._create_engine(
                    self.config.get_connection_string(partition_name)
                ).execution_options(schema_translate_map={TENANT_SCHEMA_PLACEHOLDER: None})
            else:
                engine = self.engine.execution_options(
                    schema_translate_map={TENANT_SCHEMA_PLACEHOLDER: partition_name}
                )

            self._partition_engines[partition_name] = engine
            self._partition_factories[partition_name] = sessionmaker(
                bind=engine,
                expire_on_commit=False,
                info={SESSION_PARTITION_KEY: partition_name},
            )
            self.logger.debug(
                "Partition engine created",
                extra={"partition": partition_name, "dialect": engine.dialect.name},
            )
            return engine

    def create_tables(self) -> None:
        """Create the global catalog tables."""
        from . import db_global_models  # noqa: F401

        GlobalBase.metadata.create_all(self.engine)

    def drop_tables(self) -> None:
        if not self.config.development_mode:
            raise ServiceError(
                "Cannot drop tables: not in development mode",
                error_code=ErrorCode.CONFIGURATION_ERROR,
                operation="drop_tables",
                development_mode=self.config.development_mode,
            )
        GlobalBase.metadata.drop_all(self.engine)

    def provision_partition(self, partition_name: str) -> None:
        """Create the partition (schema on PostgreSQL) and its tenant tables."""
        from . import db_tenant_models  # noqa: F401

        engine = self._partition_engine(partition_name)
        with engine.begin() as conn:
            if conn.dialect.name == "postgresql":
                conn.execute(text(f'CREATE SCHEMA IF NOT EXISTS "{partition_name}"'))
            TenantBase.metadata.create_all(conn)

        self.logger.info("Partition provisioned", extra={"partition": partition_name})

    def get_global_session(self) -> Session:
        return self.session_factory()

    def get_partition_session(self, partition_name: str) -> Session:
        self._partition_engine(partition_name)
        return self._partition_factories[partition_name]()

    def close(self) -> None:
        with self._lock:
            if self.config.is_sqlite:
                for engine in self._partition_engines.values():
                    engine.dispose()
            self._partition_engines.clear()
            self._partition_factories.clear()
        self.engine.dispose()


def get_development_config() -> DatabaseConfig:
    """SQLite configuration for development."""
    return DatabaseConfig(
        db_type="sqlite",
        database=os.environ.get("DEV_DB_PATH", ":memory:"),
        echo=os.environ.get("DB_ECHO", "False").lower() == "true",
        development_mode=True,
    )


def get_production_config() -> DatabaseConfig:
    """Postgres configuration for production from environment variables."""
    return DatabaseConfig(
        db_type="postgres",
        host=os.environ.get("DB_HOST", "localhost"),
        port=os.environ.get("DB_PORT", "5432"),
        database=os.environ.get("DB_NAME", "provisioning"),
        username=os.environ.get("DB_USER", "postgres"),
        password=os.environ.get("DB_PASSWORD", ""),
        pool_size=int(os.environ.get("DB_POOL_SIZE", "5")),
        max_overflow=int(os.environ.get("DB_MAX_OVERFLOW", "10")),
        pool_timeout=int(os.environ.get("DB_POOL_TIMEOUT", "30")),
        echo=os.environ.get("DB_ECHO", "False").lower() == "true",
        development_mode=False,
    )


def import_all_models():
    """Import all models so they are registered with their metadata."""
    from sqlalchemy.orm import configure_mappers

    from .db_global_models import Institution, Permission, Plan, PlanPermission  # noqa
    from .db_tenant_models import (  # noqa
        AuditLog,
        ParentProfile,
        Role,
        StaffProfile,
        StudentProfile,
        TeacherProfile,
        User,
        UserPermission,
        UserRole,
    )

    configure_mappers()


def initialize_db(config: Optional[DatabaseConfig] = None) -> DatabaseManager:
    """
    Build a database manager and create the global catalog tables.

    Args:
        config: Optional DatabaseConfig. If None, uses production config from environment.
    """
    if config is None:
        config = get_production_config()

    manager = DatabaseManager(config)
    get_logger().info("Initializing DB", extra={"db_type": config.db_type})
    import_all_models()
    manager.create_tables()
    return manager
