"""
Codemmunity Backend: Connection Manager
=========================================

What:  Async SQLAlchemy engine, pooled sessions and transaction scopes.
How:   One `ConnectionManager` is constructed from a `DatabaseConfig` during
       the FastAPI lifespan, stored on `app.state.db` and disposed at
       shutdown. Repositories receive it explicitly; there is no module-level
       engine.
Who:   Used by the repositories (sessions/transactions), main.py (lifecycle)
       and the health route (ping).

Connection Pooling Strategy:
    pool_size / max_overflow:  DB_POOL_SIZE / DB_MAX_OVERFLOW
    pool_timeout:              DB_POOL_TIMEOUT, seconds to wait for a free
                               connection before DatabaseTimeoutError
    pool_pre_ping:             stale connections are replaced before use
    pool_recycle=3600:         connections are recycled every hour

Timeouts:
    Every statement issued through `execute()` / `flush()` is bounded by
    DB_STATEMENT_TIMEOUT. On MySQL the same limit is also installed
    server-side (MAX_EXECUTION_TIME) through the driver's init_command.

Failure Classification:
    Driver errors are translated into the DatabaseConnectionError family:
        1044/1045/1698                → AuthenticationFailedError
        2002/2003/2005/2006/2013, OS  → DatabaseUnreachableError
        SSL verification              → CertificateValidationError
        pool/statement timeouts, 1205 → DatabaseTimeoutError
    A single failed attempt surfaces immediately; nothing is retried here.
"""

import asyncio
import logging
import ssl
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Iterator, Optional

from sqlalchemy import event, text
from sqlalchemy import exc as sa_exc
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import StaticPool

from codemmunity.config import DatabaseConfig, EncryptedTransport
from codemmunity.exceptions import (
    AuthenticationFailedError,
    CertificateValidationError,
    CodemmunityError,
    ConfigurationError,
    DatabaseConnectionError,
    DatabaseError,
    DatabaseTimeoutError,
    DatabaseUnreachableError,
)

logger = logging.getLogger(__name__)


# ── Base Model ────────────────────────────────────────────────────────────
class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy ORM models.

    All table classes in `codemmunity.models` inherit from this class and
    share its metadata, which `ConnectionManager.create_schema()` emits.
    """
    pass


# ══════════════════════════════════════════════════════════════════════════
# Failure Classification
# ══════════════════════════════════════════════════════════════════════════

_AUTH_ERROR_CODES = frozenset({1044, 1045, 1698})
_UNREACHABLE_ERROR_CODES = frozenset({2002, 2003, 2005, 2006, 2013})
_TIMEOUT_ERROR_CODES = frozenset({1205, 3024})


def _error_chain(exc: BaseException) -> Iterator[BaseException]:
    """Walk an exception, its DBAPI `orig` and its cause/context chain once."""
    seen = set()
    pending = [exc]
    while pending:
        current = pending.pop(0)
        if current is None or id(current) in seen:
            continue
        seen.add(id(current))
        yield current
        pending.append(getattr(current, "orig", None))
        pending.append(current.__cause__)
        pending.append(current.__context__)


def _driver_error_code(exc: BaseException) -> Optional[int]:
    # PyMySQL/aiomysql errors carry the MySQL error number as args[0]
    if exc.args and isinstance(exc.args[0], int):
        return exc.args[0]
    return None


def classify_connection_failure(exc: BaseException) -> Optional[DatabaseConnectionError]:
    """
    Map a driver/pool exception to a DatabaseConnectionError subclass.

    Returns None when the exception is not an infrastructure failure (for
    example an IntegrityError), so callers can treat it differently.
    """
    chain = list(_error_chain(exc))
    context = {"error_type": type(exc).__name__}

    for err in chain:
        if isinstance(err, ssl.SSLError):
            return CertificateValidationError(
                message="The database server certificate could not be verified.",
                context=context,
            )

    for err in chain:
        code = _driver_error_code(err)
        if code in _AUTH_ERROR_CODES:
            return AuthenticationFailedError(
                message="The database rejected the configured credentials.",
                context={**context, "code": code},
            )
        if code in _UNREACHABLE_ERROR_CODES:
            return DatabaseUnreachableError(context={**context, "code": code})
        if code in _TIMEOUT_ERROR_CODES:
            return DatabaseTimeoutError(
                message="The database did not answer in time. Please try again later.",
                context={**context, "code": code},
            )

    for err in chain:
        if isinstance(err, (asyncio.TimeoutError, sa_exc.TimeoutError)):
            return DatabaseTimeoutError(
                message="The database did not answer in time. Please try again later.",
                context=context,
            )

    for err in chain:
        if isinstance(err, (ConnectionError, OSError)):
            return DatabaseUnreachableError(context=context)

    if isinstance(exc, (sa_exc.OperationalError, sa_exc.InterfaceError, sa_exc.DisconnectionError)):
        return DatabaseConnectionError(context=context)

    return None


def translate_error(exc: BaseException) -> BaseException:
    """
    Convert infrastructure exceptions into the application hierarchy.

    Application errors (NotFoundError, AuthorizationError, ...) and anything
    that is neither a SQLAlchemy, OS nor timeout error are returned unchanged.
    """
    if isinstance(exc, CodemmunityError):
        return exc
    if not isinstance(exc, (sa_exc.SQLAlchemyError, OSError, asyncio.TimeoutError)):
        return exc
    failure = classify_connection_failure(exc)
    if failure is not None:
        return failure
    if isinstance(exc, sa_exc.SQLAlchemyError):
        return DatabaseError(context={"error_type": type(exc).__name__})
    return exc


# ══════════════════════════════════════════════════════════════════════════
# Connection Manager
# ══════════════════════════════════════════════════════════════════════════

class ConnectionManager:
    """
    Owns the engine and hands out one session per logical operation.

    Lifecycle:
        manager = ConnectionManager(config)
        await manager.connect()        # builds the pool, probes once
        async with manager.transaction() as session:
            ...
        await manager.dispose()        # closes every pooled connection

    Concurrency:
        The engine's pool is the only shared state. Each `session()` /
        `transaction()` call checks out its own connection, so concurrent
        requests never share a transaction.
    """

    def __init__(self, config: DatabaseConfig):
        self.config = config
        self._engine: Optional[AsyncEngine] = None
        self._session_factory: Optional[async_sessionmaker[AsyncSession]] = None

    # ── Properties ────────────────────────────────────────────────────────
    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            raise RuntimeError("ConnectionManager.connect() has not been called")
        return self._engine

    @property
    def is_connected(self) -> bool:
        return self._engine is not None

    @property
    def statement_timeout(self) -> float:
        return self.config.statement_timeout

    # ── Engine Construction ───────────────────────────────────────────────
    def build_connect_args(self) -> Dict[str, Any]:
        """
        Driver keyword arguments for new connections.

        Raises:
            ConfigurationError: the certificate bundle cannot be loaded.
        """
        config = self.config
        if config.backend == "sqlite":
            # sqlite3 busy timeout: how long a writer waits for the file lock
            return {"timeout": config.statement_timeout}

        connect_args: Dict[str, Any] = {
            "connect_timeout": config.connect_timeout,
            "init_command": "SET SESSION MAX_EXECUTION_TIME=%d"
            % int(config.statement_timeout * 1000),
        }
        if isinstance(config.transport, EncryptedTransport):
            certificate = config.transport.certificate
            try:
                context = ssl.create_default_context(cafile=str(certificate))
            except (ssl.SSLError, OSError) as e:
                raise ConfigurationError(
                    f"Certificate bundle '{certificate}' could not be loaded: {e}",
                    context={"certificate": str(certificate)},
                ) from e
            connect_args["ssl"] = context
        return connect_args

    def build_engine_options(self) -> Dict[str, Any]:
        config = self.config
        options: Dict[str, Any] = {
            "connect_args": self.build_connect_args(),
            "pool_pre_ping": True,
        }
        url = config.url
        if config.backend == "sqlite" and url.database in (None, "", ":memory:"):
            # A private in-memory database only exists on a single connection
            options["poolclass"] = StaticPool
            return options

        options.update(
            pool_size=config.pool_size,
            max_overflow=config.max_overflow,
            pool_timeout=config.pool_timeout,
            pool_recycle=config.pool_recycle,
        )
        return options

    @staticmethod
    def _install_sqlite_hooks(engine: AsyncEngine) -> None:
        """
        Make SQLite behave like the production engine for the test suite.

        Foreign keys are enforced, and every transaction starts with
        BEGIN IMMEDIATE so concurrent writers queue on the file lock instead
        of failing halfway through.
        """

        @event.listens_for(engine.sync_engine, "connect")
        def _on_connect(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        @event.listens_for(engine.sync_engine, "begin")
        def _on_begin(conn):
            conn.exec_driver_sql("BEGIN IMMEDIATE")

    # ── Lifecycle ─────────────────────────────────────────────────────────
    async def connect(self) -> None:
        """
        Create the engine and verify the link with a single probe query.

        Raises:
            ConfigurationError: TLS material could not be loaded.
            DatabaseConnectionError: the probe failed (subclass tells why).
        """
        if self._engine is not None:
            return

        engine = create_async_engine(self.config.url, **self.build_engine_options())
        if self.config.backend == "sqlite":
            self._install_sqlite_hooks(engine)

        try:
            await asyncio.wait_for(
                self._probe(engine),
                timeout=self.config.connect_timeout + self.config.statement_timeout,
            )
        except Exception as e:
            await engine.dispose()
            translated = translate_error(e)
            logger.error(
                "Database connection to %s failed: %s",
                self._describe(),
                getattr(translated, "message", str(translated)),
            )
            if translated is e:
                raise
            raise translated from e

        self._engine = engine
        self._session_factory = async_sessionmaker(
            engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )
        logger.info(
            "Connected to %s (transport=%s)",
            self._describe(),
            "encrypted" if self.config.is_encrypted else "plain",
        )

    @staticmethod
    async def _probe(engine: AsyncEngine) -> None:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))

    async def create_schema(self) -> None:
        """Create any missing tables. Existing tables are left untouched."""
        import codemmunity.models  # noqa: F401  (registers tables on Base)

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database schema verified")

    async def ping(self) -> None:
        """
        Health probe.

        Raises:
            DatabaseConnectionError: the database cannot answer SELECT 1.
        """
        try:
            await asyncio.wait_for(self._probe(self.engine), timeout=self.statement_timeout)
        except Exception as e:
            translated = translate_error(e)
            if translated is e:
                raise
            raise translated from e

    async def dispose(self) -> None:
        """Close every pooled connection. Safe to call more than once."""
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            self._session_factory = None
            logger.info("Database connections closed")

    def _describe(self) -> str:
        url = self.config.url
        if self.config.backend == "sqlite":
            return f"sqlite:{url.database or ':memory:'}"
        return f"{url.host}:{url.port}/{url.database}"

    # ── Scoped Access ─────────────────────────────────────────────────────
    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """
        Check out a session for one logical operation.

        The connection returns to the pool on every exit path. Driver errors
        raised inside the block are translated; application errors pass
        through unchanged.
        """
        if self._session_factory is None:
            raise RuntimeError("ConnectionManager.connect() has not been called")

        async with self._session_factory() as session:
            try:
                yield session
            except Exception as e:
                translated = translate_error(e)
                if translated is e:
                    raise
                raise translated from e

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncSession]:
        """
        Session wrapped in a single transaction.

        Commits when the block exits normally; rolls back when it raises,
        including when the surrounding task is cancelled.
        """
        async with self.session() as session:
            try:
                async with session.begin():
                    yield session
            except BaseException as e:
                logger.debug("Transaction rolled back (%s)", type(e).__name__)
                raise

    async def execute(self, session: AsyncSession, statement, params=None):
        """Execute `statement` on `session`, bounded by the statement timeout."""
        try:
            return await asyncio.wait_for(
                session.execute(statement, params),
                timeout=self.statement_timeout,
            )
        except asyncio.TimeoutError as e:
            raise DatabaseTimeoutError(
                message="The database did not answer in time. Please try again later.",
                context={"timeout": self.statement_timeout},
            ) from e

    async def flush(self, session: AsyncSession) -> None:
        """Flush pending ORM changes, bounded by the statement timeout."""
        try:
            await asyncio.wait_for(session.flush(), timeout=self.statement_timeout)
        except asyncio.TimeoutError as e:
            raise DatabaseTimeoutError(
                message="The database did not answer in time. Please try again later.",
                context={"timeout": self.statement_timeout},
            ) from e
