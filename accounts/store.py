"""
accounts/store.py -- SQLAlchemy Core persistence layer for accounts.

Pattern: Repository + Data Mapper. AccountStore is the repository;
_row_to_account is the mapper. Services and routes never touch SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

Uniqueness:
  UNIQUE(email) and UNIQUE(federated_id) are enforced by the database.
  Emails are normalized before every write and lookup, so the email
  constraint is effectively case-insensitive. NULL federated_id values are
  distinct under UNIQUE, so any number of local-only accounts can exist.
  Violations surface as sqlalchemy.exc.IntegrityError; the service turns
  them into domain errors.

Profile completeness:
  profile_complete is recomputed from age/gender in the same transaction as
  every write that can touch them. Callers cannot set it directly.

Timestamps are ISO 8601 UTC strings, so lexical comparison orders them and
substr(created_at, 1, 10) is the calendar day.

Layer rule: no imports from api/, auth/, or media/.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, case, create_engine, event, func, select, text
from sqlalchemy.engine import Engine

from accounts.models import Account, Provenance, is_profile_complete
from accounts.validation import normalize_email

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_accounts = Table(
    "accounts",
    _metadata,
    Column("id", String(36), primary_key=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("name", String(100), nullable=False),
    Column("hashed_password", Text),  # NULL for federated-only accounts
    Column("age", Integer),
    Column("gender", String(30)),
    Column("picture_url", Text),
    Column("provenance", String(20), nullable=False, server_default=Provenance.local.value),
    Column("federated_id", String(255), unique=True),
    Column("profile_complete", Integer, nullable=False, server_default="0"),
    Column("created_at", String(32), nullable=False, index=True),
    Column("updated_at", String(32), nullable=False),
)

# Fields update_account() accepts. profile_complete, id and created_at are
# deliberately absent.
_MUTABLE_FIELDS = frozenset(
    {"email", "name", "hashed_password", "age", "gender", "picture_url", "provenance", "federated_id"}
)

_completeness = case(
    ((_accounts.c.age.is_not(None)) & (_accounts.c.gender.is_not(None)), 1),
    else_=0,
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class AccountStore:
    """Repository for Account entities.

    Usage:
        store = AccountStore(settings.database_url)
        account = store.create_account(Account(id="", email="a@b.com", name="A", provenance=Provenance.local))
        store.get_by_email("A@B.com")
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            # Route handlers run in a threadpool; one connection may be used
            # from several threads over its lifetime.
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite") and "mode=memory" not in db_url:
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        with self.engine.connect() as conn:
            return conn.execute(text("SELECT 1")).scalar() == 1

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_account(self, account: Account) -> Account:
        """Insert a new account and return it as stored.

        A fresh id is generated when account.id is empty. Raises
        sqlalchemy.exc.IntegrityError if the email or federated_id is taken.
        """
        now = _now_iso()
        account_id = account.id or str(uuid.uuid4())
        with self.engine.begin() as conn:
            conn.execute(
                _accounts.insert().values(
                    id=account_id,
                    email=normalize_email(account.email),
                    name=account.name,
                    hashed_password=account.hashed_password,
                    age=account.age,
                    gender=account.gender,
                    picture_url=account.picture_url,
                    provenance=Provenance(account.provenance).value,
                    federated_id=account.federated_id,
                    profile_complete=1 if is_profile_complete(account.age, account.gender) else 0,
                    created_at=account.created_at or now,
                    updated_at=now,
                )
            )
        created = self.get_by_id(account_id)
        if created is None:
            raise RuntimeError(f"Account {account_id} missing after insert")
        return created

    def update_account(self, account_id: str, **fields) -> bool:
        """Update mutable fields on an existing account.

        Accepted fields: see _MUTABLE_FIELDS. Passing None clears a column.
        updated_at is always stamped and profile_complete is recomputed from
        the resulting age/gender in the same transaction.

        Returns True if a row was updated, False if account_id was not found.
        Raises ValueError on unknown fields and IntegrityError on uniqueness
        violations.
        """
        unknown = set(fields) - _MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown account fields: {sorted(unknown)!r}")
        if "email" in fields:
            fields["email"] = normalize_email(fields["email"])
        if "provenance" in fields:
            fields["provenance"] = Provenance(fields["provenance"]).value
        with self.engine.begin() as conn:
            result = conn.execute(
                _accounts.update().where(_accounts.c.id == account_id).values(updated_at=_now_iso(), **fields)
            )
            if result.rowcount == 0:
                return False
            conn.execute(
                _accounts.update().where(_accounts.c.id == account_id).values(profile_complete=_completeness)
            )
        return True

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_by_id(self, account_id: str) -> Account | None:
        with self.engine.connect() as conn:
            row = conn.execute(_accounts.select().where(_accounts.c.id == account_id)).fetchone()
        return _row_to_account(row) if row is not None else None

    def get_by_email(self, email: str) -> Account | None:
        """Look up an account by email. The lookup is case-insensitive."""
        with self.engine.connect() as conn:
            row = conn.execute(_accounts.select().where(_accounts.c.email == normalize_email(email))).fetchone()
        return _row_to_account(row) if row is not None else None

    def get_by_federated_id(self, federated_id: str) -> Account | None:
        with self.engine.connect() as conn:
            row = conn.execute(_accounts.select().where(_accounts.c.federated_id == federated_id)).fetchone()
        return _row_to_account(row) if row is not None else None

    def list_accounts(self, limit: int = 100, offset: int = 0) -> list[Account]:
        """Return accounts newest first."""
        stmt = (
            _accounts.select()
            .order_by(_accounts.c.created_at.desc(), _accounts.c.id)
            .limit(limit)
            .offset(offset)
        )
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).fetchall()
        return [_row_to_account(r) for r in rows]

    # ------------------------------------------------------------------
    # Aggregates (read projections for analytics)
    # ------------------------------------------------------------------

    def count_accounts(self, created_since: str | None = None) -> int:
        """Count accounts, optionally only those created at or after an ISO timestamp."""
        stmt = select(func.count()).select_from(_accounts)
        if created_since is not None:
            stmt = stmt.where(_accounts.c.created_at >= created_since)
        with self.engine.connect() as conn:
            return conn.execute(stmt).scalar() or 0

    def count_profile_complete(self) -> int:
        stmt = select(func.count()).select_from(_accounts).where(_accounts.c.profile_complete == 1)
        with self.engine.connect() as conn:
            return conn.execute(stmt).scalar() or 0

    def provenance_counts(self) -> dict[str, int]:
        stmt = select(_accounts.c.provenance, func.count().label("n")).group_by(_accounts.c.provenance)
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).fetchall()
        return {row.provenance: row.n for row in rows}

    def gender_counts(self) -> dict[str | None, int]:
        """Return {gender: count}; accounts without a gender are keyed by None."""
        stmt = select(_accounts.c.gender, func.count().label("n")).group_by(_accounts.c.gender)
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).fetchall()
        return {row.gender: row.n for row in rows}

    def age_counts(self) -> dict[int | None, int]:
        """Return {age: count}; accounts without an age are keyed by None."""
        stmt = select(_accounts.c.age, func.count().label("n")).group_by(_accounts.c.age)
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).fetchall()
        return {row.age: row.n for row in rows}

    def daily_registration_counts(self, created_since: str) -> dict[str, int]:
        """Return {"YYYY-MM-DD": count} for accounts created at or after created_since.

        Days without registrations are absent; callers zero-fill.
        """
        day = func.substr(_accounts.c.created_at, 1, 10).label("day")
        stmt = (
            select(day, func.count().label("n"))
            .where(_accounts.c.created_at >= created_since)
            .group_by(day)
            .order_by(day)
        )
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).fetchall()
        return {row.day: row.n for row in rows}

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_account(row) -> Account:
    return Account(
        id=row.id,
        email=row.email,
        name=row.name,
        provenance=Provenance(row.provenance),
        hashed_password=row.hashed_password,
        age=row.age,
        gender=row.gender,
        picture_url=row.picture_url,
        federated_id=row.federated_id,
        profile_complete=bool(row.profile_complete),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
