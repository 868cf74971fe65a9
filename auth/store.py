"""
auth/store.py -- SQLAlchemy Core persistence layer for auth entities.

Pattern: Repository + Data Mapper. CredentialStore is the repository;
_row_to_* functions are the mappers. Workflow code never touches SQL directly.

Transactions:
  Every read and write takes an explicit Transaction handle as its first
  argument. The handle is acquired with `with store.transaction() as tx:` and
  released exactly once: commit when the block exits normally, rollback when
  anything is raised inside it. A workflow that fails half-way therefore
  leaves no row behind -- including a credential inserted before a later
  uniqueness check failed.

Uniqueness:
  Workflows check-then-insert inside one transaction. That is not race-free
  under concurrent registration, so the UNIQUE constraints below are the
  authoritative guard. An IntegrityError raised by any insert is surfaced as
  AuthError(CONFLICT), the same failure the pre-check produces.

  Registration sends its activation email before commit, so a writer can hold
  the SQLite write lock for up to the SMTP timeout. busy_timeout (seconds) is
  how long a second writer waits for it; Settings keeps it above the SMTP
  timeout. A writer that still cannot get the lock gets AuthError(FATAL)
  rather than a raw OperationalError.

Security:
  All queries use bound parameters. No f-strings in SQL.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    event,
    select,
)
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError

from auth.models import AdminProfile, CashierProfile, Role, RoleName, UserCredential
from core.errors import AuthError, conflict, fatal

logger = logging.getLogger("tillgate.store")

# Seconds a writer waits for the SQLite write lock.
DEFAULT_BUSY_TIMEOUT = 30.0


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_credentials = Table(
    "user_credentials",
    _metadata,
    Column("id", String(36), primary_key=True),
    Column("username", String(255), nullable=False, unique=True),
    Column("email", String(320), nullable=False),
    Column("password_digest", Text, nullable=False),
    Column("activated", Boolean, nullable=False, default=False),
    Column("refresh_token", Text, index=True),  # NULL = logged out
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32)),
)

_roles = Table(
    "roles",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(30), nullable=False, unique=True),
)

_user_roles = Table(
    "user_roles",
    _metadata,
    Column("user_id", String(36), ForeignKey("user_credentials.id"), primary_key=True),
    Column("role_id", Integer, ForeignKey("roles.id"), primary_key=True),
    Column("created_at", String(32), nullable=False),
)

_cashiers = Table(
    "cashiers",
    _metadata,
    Column("id", String(36), primary_key=True),
    Column("user_id", String(36), ForeignKey("user_credentials.id"), nullable=False, unique=True),
    Column("full_name", String(255), nullable=False),
    Column("call_name", String(100), nullable=False),
    Column("phone_number", String(32), nullable=False, unique=True),
    Column("street", String(255)),
    Column("city", String(100)),
    Column("province", String(100)),
    Column("country", String(100)),
    Column("postal_code", String(20)),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32)),
)

_admins = Table(
    "admins",
    _metadata,
    Column("id", String(36), primary_key=True),
    Column("user_id", String(36), ForeignKey("user_credentials.id"), nullable=False, unique=True),
    Column("full_name", String(255), nullable=False),
    Column("call_name", String(100), nullable=False),
    Column("pin", String(16), nullable=False, unique=True),
    Column("phone_number", String(32)),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32)),
)


# ---------------------------------------------------------------------------
# SQLite connection setup
# ---------------------------------------------------------------------------


def _configure_sqlite(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode and foreign key enforcement.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _new_id() -> str:
    return str(uuid.uuid4())


def _storage_busy(table: Table, exc: OperationalError) -> AuthError:
    logger.error("Write to %s failed: %s", table.name, exc.orig)
    return fatal("Storage is busy, please try again later.")


class Transaction:
    """Handle for one open storage transaction.

    Only CredentialStore.transaction() creates these. Workflows pass the
    handle through; they never commit or roll back themselves.
    """

    def __init__(self, conn: Connection) -> None:
        self.conn = conn


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class CredentialStore:
    """Repository for credentials, role links and cashier/admin profiles.

    Usage:
        store = CredentialStore("sqlite:///:memory:")
        with store.transaction() as tx:
            user = store.find_by_username(tx, "alice")
        store.close()

    seed_roles=True inserts the fixed CASHIER and ADMIN rows if missing.
    Workflows only ever resolve roles; a deployment without them is broken
    and resolve_role() reports it as FATAL.
    """

    def __init__(self, db_url: str, seed_roles: bool = True, busy_timeout: float = DEFAULT_BUSY_TIMEOUT) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
            connect_args["timeout"] = busy_timeout
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _configure_sqlite)
        _metadata.create_all(self.engine)
        if seed_roles:
            self.seed_roles()

    def seed_roles(self) -> None:
        """Insert any missing fixed roles. Idempotent -- safe to call on every startup."""
        with self.engine.begin() as conn:
            existing = set(conn.execute(select(_roles.c.name)).scalars())
            for name in RoleName:
                if name.value not in existing:
                    conn.execute(_roles.insert().values(name=name.value))
                    logger.info("Seeded role %s", name.value)

    @contextmanager
    def transaction(self) -> Iterator[Transaction]:
        """Open a transaction; commit on success, roll back on any exception."""
        conn = self.engine.connect()
        trans = conn.begin()
        try:
            yield Transaction(conn)
        except BaseException:
            trans.rollback()
            raise
        else:
            trans.commit()
        finally:
            conn.close()

    # ------------------------------------------------------------------
    # Credential queries
    # ------------------------------------------------------------------

    def find_by_username(self, tx: Transaction, username: str) -> UserCredential | None:
        """Look up a credential by exact username (case-sensitive)."""
        row = tx.conn.execute(_credentials.select().where(_credentials.c.username == username)).fetchone()
        return _row_to_credential(row) if row is not None else None

    def find_by_id(self, tx: Transaction, user_id: str) -> UserCredential | None:
        row = tx.conn.execute(_credentials.select().where(_credentials.c.id == user_id)).fetchone()
        return _row_to_credential(row) if row is not None else None

    def find_by_refresh_token(self, tx: Transaction, token: str) -> UserCredential | None:
        """Look up the credential whose stored refresh token equals token.

        None covers both "never issued" and "logged out / rotated away".
        """
        row = tx.conn.execute(_credentials.select().where(_credentials.c.refresh_token == token)).fetchone()
        return _row_to_credential(row) if row is not None else None

    def create_credential(self, tx: Transaction, credential: UserCredential) -> UserCredential:
        """Insert a new, non-activated credential and return it with id and created_at set.

        Raises AuthError(CONFLICT) if the username is already taken.
        """
        credential.id = credential.id or _new_id()
        credential.created_at = _now_iso()
        credential.activated = False
        self._insert(
            tx,
            _credentials,
            "User already exists",
            id=credential.id,
            username=credential.username,
            email=credential.email,
            password_digest=credential.password_digest,
            activated=False,
            refresh_token=None,
            created_at=credential.created_at,
        )
        return credential

    def set_activated(self, tx: Transaction, user_id: str) -> bool:
        return self._update_credential(tx, user_id, activated=True)

    def set_password(self, tx: Transaction, user_id: str, digest: str) -> bool:
        return self._update_credential(tx, user_id, password_digest=digest)

    def set_refresh_token(self, tx: Transaction, user_id: str, token: str | None) -> bool:
        """Store the current refresh token, or None to revoke the session."""
        return self._update_credential(tx, user_id, refresh_token=token)

    def touch_updated_at(self, tx: Transaction, user_id: str) -> bool:
        return self._update_credential(tx, user_id)

    def _update_credential(self, tx: Transaction, user_id: str, **fields) -> bool:
        """Apply fields plus a fresh updated_at. Returns False if user_id was not found."""
        try:
            result = tx.conn.execute(
                _credentials.update().where(_credentials.c.id == user_id).values(updated_at=_now_iso(), **fields)
            )
        except OperationalError as exc:
            raise _storage_busy(_credentials, exc) from exc
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Roles
    # ------------------------------------------------------------------

    def resolve_role(self, tx: Transaction, name: str) -> Role:
        """Return the seeded role with this name.

        A missing seed role is a misconfigured deployment, not a user error.
        """
        row = tx.conn.execute(_roles.select().where(_roles.c.name == name)).fetchone()
        if row is None:
            logger.error("Seed role %s is missing from the roles table", name)
            raise fatal(f"Role {name} is not configured.")
        return Role(id=row.id, name=row.name)

    def create_role_link(self, tx: Transaction, user_id: str, role_id: int) -> None:
        self._insert(
            tx,
            _user_roles,
            "Role already assigned",
            user_id=user_id,
            role_id=role_id,
            created_at=_now_iso(),
        )

    def roles_for_user(self, tx: Transaction, user_id: str) -> list[Role]:
        """Return every role linked to the user, ordered by role id."""
        rows = tx.conn.execute(
            select(_roles.c.id, _roles.c.name)
            .join(_user_roles, _user_roles.c.role_id == _roles.c.id)
            .where(_user_roles.c.user_id == user_id)
            .order_by(_roles.c.id)
        ).fetchall()
        return [Role(id=r.id, name=r.name) for r in rows]

    # ------------------------------------------------------------------
    # Profiles
    # ------------------------------------------------------------------

    def find_cashier_by_phone(self, tx: Transaction, phone_number: str) -> CashierProfile | None:
        row = tx.conn.execute(_cashiers.select().where(_cashiers.c.phone_number == phone_number)).fetchone()
        return _row_to_cashier(row) if row is not None else None

    def create_cashier(self, tx: Transaction, profile: CashierProfile) -> CashierProfile:
        """Insert a cashier profile. Raises AuthError(CONFLICT) on a duplicate phone number."""
        profile.id = profile.id or _new_id()
        profile.created_at = _now_iso()
        self._insert(
            tx,
            _cashiers,
            "Cashier already exists",
            id=profile.id,
            user_id=profile.user_id,
            full_name=profile.full_name,
            call_name=profile.call_name,
            phone_number=profile.phone_number,
            street=profile.street,
            city=profile.city,
            province=profile.province,
            country=profile.country,
            postal_code=profile.postal_code,
            created_at=profile.created_at,
        )
        return profile

    def find_admin_by_pin(self, tx: Transaction, pin: str) -> AdminProfile | None:
        row = tx.conn.execute(_admins.select().where(_admins.c.pin == pin)).fetchone()
        return _row_to_admin(row) if row is not None else None

    def find_admin_by_user_id(self, tx: Transaction, user_id: str) -> AdminProfile | None:
        row = tx.conn.execute(_admins.select().where(_admins.c.user_id == user_id)).fetchone()
        return _row_to_admin(row) if row is not None else None

    def create_admin(self, tx: Transaction, profile: AdminProfile) -> AdminProfile:
        """Insert an admin profile. Raises AuthError(CONFLICT) on a duplicate PIN."""
        profile.id = profile.id or _new_id()
        profile.created_at = _now_iso()
        self._insert(
            tx,
            _admins,
            "Admin already exists",
            id=profile.id,
            user_id=profile.user_id,
            full_name=profile.full_name,
            call_name=profile.call_name,
            pin=profile.pin,
            phone_number=profile.phone_number,
            created_at=profile.created_at,
        )
        return profile

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _insert(self, tx: Transaction, table: Table, conflict_message: str, **values) -> None:
        """Insert one row, mapping a constraint violation to AuthError(CONFLICT)."""
        try:
            tx.conn.execute(table.insert().values(**values))
        except IntegrityError as exc:
            logger.warning("Constraint violation on %s insert: %s", table.name, exc.orig)
            raise conflict(conflict_message) from exc
        except OperationalError as exc:
            raise _storage_busy(table, exc) from exc

    def ping(self) -> bool:
        """Run a trivial query to verify the database is reachable."""
        try:
            with self.engine.connect() as conn:
                conn.execute(select(1))
            return True
        except SQLAlchemyError:
            logger.exception("Database health check failed")
            return False

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_credential(row) -> UserCredential:
    return UserCredential(
        id=row.id,
        username=row.username,
        email=row.email,
        password_digest=row.password_digest,
        activated=bool(row.activated),
        refresh_token=row.refresh_token,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_cashier(row) -> CashierProfile:
    return CashierProfile(
        id=row.id,
        user_id=row.user_id,
        full_name=row.full_name,
        call_name=row.call_name,
        phone_number=row.phone_number,
        street=row.street,
        city=row.city,
        province=row.province,
        country=row.country,
        postal_code=row.postal_code,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_admin(row) -> AdminProfile:
    return AdminProfile(
        id=row.id,
        user_id=row.user_id,
        full_name=row.full_name,
        call_name=row.call_name,
        pin=row.pin,
        phone_number=row.phone_number,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
