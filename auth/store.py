"""
auth/store.py -- SQLAlchemy Core persistence for users and applications.

Pattern: Repository + Data Mapper. SqlStore satisfies both UserDirectory and
ApplicationRegistry (auth/ports.py); _row_to_user / _row_to_app are the
mappers. AuthService never sees SQL or rows.

Engine: async SQLAlchemy over aiosqlite, so store calls are awaited by the
service and honour its asyncio deadlines. Any SQLAlchemy URL with an async
driver works; SQLite is the default deployment.

Security:
  All queries use bound parameters. No f-strings in SQL.

Classified failures:
  save_user          -> StorageError(USER_EXISTS) on the UNIQUE(email) violation
  find_user_by_email -> StorageError(USER_NOT_FOUND)
  is_admin           -> StorageError(USER_NOT_FOUND)
  find_application   -> StorageError(APP_NOT_FOUND)
Everything else (driver errors, a locked DB) propagates unchanged.

Schema: created by create_schema(), which is idempotent. Run it once via
`python main.py migrate` or let the API lifespan call it.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from sqlalchemy import Column, Integer, LargeBinary, MetaData, String, Table, Text, event, text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import StaticPool

from auth.errors import ErrorKind, StorageError
from auth.models import Application, User

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), nullable=False, unique=True),  # case-sensitive, as stored
    Column("pass_hash", LargeBinary, nullable=False),
    Column("is_admin", Integer, nullable=False, server_default="0"),
)

_apps = Table(
    "apps",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(255), nullable=False, unique=True),
    Column("secret", Text, nullable=False),
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers do not block on a writer.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool. In-memory databases ignore it.
    """
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.close()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class SqlStore:
    """Repository for User and Application entities.

    Usage:
        store = SqlStore("sqlite+aiosqlite:///sso.db")
        await store.create_schema()
        app_id = await store.save_app("web", "app-secret")
        user_id = await store.save_user("alice@example.com", pass_hash)
        await store.close()
    """

    def __init__(self, db_url: str) -> None:
        kwargs: dict = {}
        if ":memory:" in db_url:
            # One shared connection, otherwise every pooled connection sees a blank DB.
            kwargs["poolclass"] = StaticPool
        self.engine: AsyncEngine = create_async_engine(db_url, **kwargs)
        if db_url.startswith("sqlite") and ":memory:" not in db_url:
            event.listen(self.engine.sync_engine, "connect", _set_wal_mode)

    async def create_schema(self) -> None:
        """Create the users and apps tables if they do not exist."""
        async with self.engine.begin() as conn:
            await conn.run_sync(_metadata.create_all)

    # ------------------------------------------------------------------
    # UserDirectory
    # ------------------------------------------------------------------

    async def save_user(self, email: str, pass_hash: bytes) -> int:
        async with self.engine.connect() as conn:
            try:
                result = await conn.execute(_users.insert().values(email=email, pass_hash=pass_hash))
                await conn.commit()
            except IntegrityError as err:
                raise StorageError(ErrorKind.USER_EXISTS, "user already exists") from err
        return result.inserted_primary_key[0]

    async def find_user_by_email(self, email: str) -> User:
        async with self.engine.connect() as conn:
            row = (await conn.execute(_users.select().where(_users.c.email == email))).fetchone()
        if row is None:
            raise StorageError(ErrorKind.USER_NOT_FOUND, "user not found")
        return _row_to_user(row)

    async def is_admin(self, user_id: int) -> bool:
        if not _storable_id(user_id):
            raise StorageError(ErrorKind.USER_NOT_FOUND, "user not found")
        async with self.engine.connect() as conn:
            row = (await conn.execute(_users.select().where(_users.c.id == user_id))).fetchone()
        if row is None:
            raise StorageError(ErrorKind.USER_NOT_FOUND, "user not found")
        return bool(row.is_admin)

    async def set_admin(self, user_id: int, is_admin: bool) -> bool:
        """Grant or revoke the admin flag. Returns False if user_id does not exist."""
        if not _storable_id(user_id):
            return False
        async with self.engine.connect() as conn:
            result = await conn.execute(
                _users.update().where(_users.c.id == user_id).values(is_admin=1 if is_admin else 0)
            )
            await conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # ApplicationRegistry
    # ------------------------------------------------------------------

    async def find_application(self, app_id: int) -> Application:
        if not _storable_id(app_id):
            raise StorageError(ErrorKind.APP_NOT_FOUND, "app not found")
        async with self.engine.connect() as conn:
            row = (await conn.execute(_apps.select().where(_apps.c.id == app_id))).fetchone()
        if row is None:
            raise StorageError(ErrorKind.APP_NOT_FOUND, "app not found")
        return _row_to_app(row)

    async def save_app(self, name: str, secret: str) -> int:
        """Register an application and return its id.

        Raises sqlalchemy.exc.IntegrityError if the name is already taken.
        """
        async with self.engine.connect() as conn:
            result = await conn.execute(_apps.insert().values(name=name, secret=secret))
            await conn.commit()
        return result.inserted_primary_key[0]

    async def ping(self) -> None:
        """Round-trip a trivial query. Raises if the database is unreachable."""
        async with self.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))

    async def close(self) -> None:
        await self.engine.dispose()


# SQLite INTEGER is signed 64-bit, so no row has an id outside this range;
# the driver raises OverflowError if asked to bind one.
_MAX_ROW_ID = 2**63 - 1


def _storable_id(value: int) -> bool:
    return -_MAX_ROW_ID - 1 <= value <= _MAX_ROW_ID


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(id=row.id, email=row.email, pass_hash=bytes(row.pass_hash))


def _row_to_app(row) -> Application:
    return Application(id=row.id, name=row.name, secret=row.secret)
