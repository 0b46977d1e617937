"""Relational workflow state store implementing IRunStore.

Runs on SQLAlchemy Core against PostgreSQL in production and SQLite for
development and tests. Every public method is a single transaction.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from runtrack.core.config import DatabaseConfig
from runtrack.core.exceptions import (
    RunNotFoundError,
    StepNotFoundError,
    StoreError,
    ValidationError,
)
from runtrack.models.run import (
    STEP_NUMBERS,
    ProcessingStep,
    Run,
    RunDetail,
    StepUpdate,
    WorkflowState,
    fits_int32,
)

logger = logging.getLogger(__name__)

metadata = sa.MetaData()

workflow_state = sa.Enum(
    WorkflowState,
    name="workflow_state",
    values_callable=lambda enum: [member.value for member in enum],
    validate_strings=True,
)

runs = sa.Table(
    "runs",
    metadata,
    sa.Column("run_number", sa.Integer, primary_key=True, autoincrement=False),
    sa.Column("file_number", sa.Integer, nullable=False),
    sa.Column("run_start_date", sa.DateTime, nullable=False),
    sa.Column(
        "state", workflow_state, nullable=False,
        server_default=WorkflowState.NOT_YET_STARTED.value,
    ),
    sa.Column("url", sa.Text),
    sa.Column("created_at", sa.DateTime, server_default=sa.func.current_timestamp()),
    sa.Column("updated_at", sa.DateTime, server_default=sa.func.current_timestamp()),
    sa.Index("idx_runs_state", "state"),
    sa.Index("idx_runs_start_date", "run_start_date"),
)

processing_steps = sa.Table(
    "processing_steps",
    metadata,
    sa.Column("id", sa.String(36), primary_key=True),
    sa.Column(
        "run_number", sa.Integer,
        sa.ForeignKey("runs.run_number", ondelete="CASCADE"), nullable=False,
    ),
    sa.Column("step_number", sa.Integer, nullable=False),
    sa.Column("started_date", sa.DateTime),
    sa.Column("end_date", sa.DateTime),
    sa.Column("site", sa.Text),
    sa.Column("checksum", sa.Text),
    sa.Column("location", sa.Text),
    sa.Column("created_at", sa.DateTime, server_default=sa.func.current_timestamp()),
    sa.Column("updated_at", sa.DateTime, server_default=sa.func.current_timestamp()),
    sa.UniqueConstraint("run_number", "step_number", name="uq_steps_run_step"),
    sa.Index("idx_steps_run_number", "run_number"),
    sa.Index("idx_steps_step_number", "step_number"),
    sa.Index("idx_steps_site", "site"),
)


def create_engine_from_config(config: DatabaseConfig) -> Engine:
    """Build a pooled engine; SQLite gets FK enforcement and cross-thread use."""
    url = sa.engine.make_url(config.url)
    kwargs: dict[str, Any] = {"echo": config.echo, "pool_pre_ping": True}
    if url.get_backend_name() == "sqlite":
        kwargs["connect_args"] = {"check_same_thread": False}
    else:
        kwargs["pool_size"] = config.pool_size
    engine = sa.create_engine(url, **kwargs)

    if url.get_backend_name() == "sqlite":
        @sa.event.listens_for(engine, "connect")
        def _enable_foreign_keys(dbapi_conn, _record):  # pragma: no cover - driver hook
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine


def _naive_utc(value: Any) -> Any:
    """Timestamps are stored as naive UTC."""
    if isinstance(value, datetime) and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _check_int32(name: str, value: int) -> None:
    if not fits_int32(value):
        raise ValidationError(f"{name} {value} is out of range")


class SQLRunStore:
    """Production IRunStore backed by a relational database."""

    MAX_CREATE_ATTEMPTS = 5

    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    @classmethod
    def from_config(cls, config: DatabaseConfig) -> SQLRunStore:
        return cls(create_engine_from_config(config))

    @property
    def engine(self) -> Engine:
        return self._engine

    def create_schema(self) -> None:
        """Create tables and indexes. Skips anything that already exists."""
        try:
            metadata.create_all(self._engine)
        except SQLAlchemyError as exc:
            raise StoreError(f"Schema creation failed: {exc}") from exc

    def ping(self) -> bool:
        try:
            with self._engine.connect() as conn:
                conn.execute(sa.text("SELECT 1"))
            return True
        except SQLAlchemyError:
            logger.warning("Database ping failed", exc_info=True)
            return False

    def dispose(self) -> None:
        self._engine.dispose()

    # ---- helpers ----

    def _insert(self, table: sa.Table):
        dialect = self._engine.dialect.name
        if dialect == "postgresql":
            return postgresql.insert(table)
        if dialect == "sqlite":
            return sqlite.insert(table)
        raise StoreError(f"Upsert not supported for dialect {dialect!r}")

    @staticmethod
    def _next_run_number(conn: Connection) -> int:
        return conn.execute(
            sa.select(sa.func.coalesce(sa.func.max(runs.c.run_number), 0) + 1)
        ).scalar_one()

    @staticmethod
    def _fetch_run(conn: Connection, run_number: int) -> Run:
        if not fits_int32(run_number):
            raise RunNotFoundError(run_number)
        row = conn.execute(
            sa.select(runs).where(runs.c.run_number == run_number)
        ).first()
        if row is None:
            raise RunNotFoundError(run_number)
        return Run(**row._mapping)

    @staticmethod
    def _fetch_steps(conn: Connection, run_number: int) -> list[ProcessingStep]:
        rows = conn.execute(
            sa.select(processing_steps)
            .where(processing_steps.c.run_number == run_number)
            .order_by(processing_steps.c.step_number.asc())
        ).all()
        return [ProcessingStep(**row._mapping) for row in rows]

    # ---- IRunStore methods ----

    def create_run(
        self,
        file_number: int,
        run_start_date: datetime,
        initial_state: WorkflowState = WorkflowState.NOT_YET_STARTED,
        url: str | None = None,
    ) -> Run:
        """Insert a run with the next sequential number and its two empty steps.

        The run row and both step rows commit together or not at all. A
        concurrent create taking the same number rolls back and retries; any
        other integrity failure is raised at once.
        """
        _check_int32("file_number", file_number)
        last_exc: Exception | None = None
        for attempt in range(1, self.MAX_CREATE_ATTEMPTS + 1):
            try:
                with self._engine.begin() as conn:
                    run_number = self._next_run_number(conn)
                    conn.execute(runs.insert().values(
                        run_number=run_number,
                        file_number=file_number,
                        run_start_date=_naive_utc(run_start_date),
                        state=initial_state,
                        url=url,
                    ))
                    conn.execute(processing_steps.insert(), [
                        {"id": str(uuid.uuid4()), "run_number": run_number, "step_number": n}
                        for n in STEP_NUMBERS
                    ])
                    run = self._fetch_run(conn, run_number)
                logger.info("Created run %d (state=%s)", run.run_number, run.state)
                return run
            except IntegrityError as exc:
                if not self._number_was_taken(run_number):
                    raise StoreError(f"create_run failed: {exc}") from exc
                last_exc = exc
                logger.debug("Run number %d taken on attempt %d, retrying", run_number, attempt)
            except SQLAlchemyError as exc:
                raise StoreError(f"create_run failed: {exc}") from exc
        raise StoreError(
            f"create_run failed after {self.MAX_CREATE_ATTEMPTS} attempts: {last_exc}"
        ) from last_exc

    def _number_was_taken(self, run_number: int) -> bool:
        """True when another writer has since committed ``run_number``."""
        try:
            with self._engine.connect() as conn:
                return self._next_run_number(conn) > run_number
        except SQLAlchemyError as exc:
            raise StoreError(f"create_run failed: {exc}") from exc

    def get_run(self, run_number: int) -> Run:
        try:
            with self._engine.connect() as conn:
                return self._fetch_run(conn, run_number)
        except SQLAlchemyError as exc:
            raise StoreError(f"get_run({run_number}) failed: {exc}") from exc

    def list_runs(self) -> list[Run]:
        try:
            with self._engine.connect() as conn:
                rows = conn.execute(
                    sa.select(runs).order_by(
                        runs.c.run_start_date.desc(), runs.c.run_number.desc()
                    )
                ).all()
        except SQLAlchemyError as exc:
            raise StoreError(f"list_runs failed: {exc}") from exc
        return [Run(**row._mapping) for row in rows]

    def get_run_with_steps(self, run_number: int) -> RunDetail:
        try:
            with self._engine.connect() as conn:
                run = self._fetch_run(conn, run_number)
                return RunDetail(run=run, steps=self._fetch_steps(conn, run_number))
        except SQLAlchemyError as exc:
            raise StoreError(f"get_run_with_steps({run_number}) failed: {exc}") from exc

    def update_step(
        self, run_number: int, step_number: int, fields: StepUpdate
    ) -> ProcessingStep:
        """Write only the fields set on ``fields``; others keep their value."""
        if not (fits_int32(run_number) and fits_int32(step_number)):
            raise StepNotFoundError(run_number, step_number)
        changes = {k: _naive_utc(v) for k, v in fields.changes().items()}
        where = sa.and_(
            processing_steps.c.run_number == run_number,
            processing_steps.c.step_number == step_number,
        )
        try:
            with self._engine.begin() as conn:
                if changes:
                    conn.execute(
                        processing_steps.update().where(where).values(**changes, updated_at=_now())
                    )
                row = conn.execute(sa.select(processing_steps).where(where)).first()
                if row is None:
                    raise StepNotFoundError(run_number, step_number)
                return ProcessingStep(**row._mapping)
        except SQLAlchemyError as exc:
            raise StoreError(f"update_step({run_number}, {step_number}) failed: {exc}") from exc

    def update_run_state(self, run_number: int, new_state: WorkflowState) -> int:
        """Returns the number of rows updated (0 when the run does not exist)."""
        if not fits_int32(run_number):
            return 0
        try:
            with self._engine.begin() as conn:
                result = conn.execute(
                    runs.update()
                    .where(runs.c.run_number == run_number)
                    .values(state=new_state, updated_at=_now())
                )
        except SQLAlchemyError as exc:
            raise StoreError(f"update_run_state({run_number}) failed: {exc}") from exc
        return result.rowcount

    def upsert_run(
        self,
        run_number: int,
        file_number: int,
        run_start_date: datetime,
        state: WorkflowState,
        url: str | None = None,
    ) -> None:
        """Insert a run, or on a run_number conflict update state and url only."""
        _check_int32("run_number", run_number)
        _check_int32("file_number", file_number)
        stmt = self._insert(runs).values(
            run_number=run_number,
            file_number=file_number,
            run_start_date=_naive_utc(run_start_date),
            state=state,
            url=url,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[runs.c.run_number],
            set_={"state": stmt.excluded.state, "url": stmt.excluded.url, "updated_at": _now()},
        )
        try:
            with self._engine.begin() as conn:
                conn.execute(stmt)
        except SQLAlchemyError as exc:
            raise StoreError(f"upsert_run({run_number}) failed: {exc}") from exc

    def ensure_steps(self, run_number: int) -> int:
        """Insert any missing step rows without touching existing ones."""
        _check_int32("run_number", run_number)
        inserted = 0
        try:
            with self._engine.begin() as conn:
                for step_number in STEP_NUMBERS:
                    stmt = self._insert(processing_steps).values(
                        id=str(uuid.uuid4()), run_number=run_number, step_number=step_number,
                    ).on_conflict_do_nothing(
                        index_elements=[processing_steps.c.run_number, processing_steps.c.step_number]
                    )
                    inserted += conn.execute(stmt).rowcount
        except SQLAlchemyError as exc:
            raise StoreError(f"ensure_steps({run_number}) failed: {exc}") from exc
        return inserted
