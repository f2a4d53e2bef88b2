from __future__ import annotations

import logging
import sqlite3
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Generic, Iterable, Iterator, List, Sequence, TypeVar

from .config import get_config
from .env import get_env
from .errors import MigrationError
from .migrations import SCHEMA_VERSIONS, MigrationRunner, SchemaVersion
from .schema import Transaction

DEFAULT_DATA_DIR = Path(__file__).resolve().parent.parent / "data"
DEFAULT_DB_FILENAME = "repstack.db"
MEMORY = ":memory:"
LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


def _data_dir() -> Path:
    override = get_env("DATA_DIR")
    base = Path(override).expanduser() if override else DEFAULT_DATA_DIR
    base.mkdir(parents=True, exist_ok=True)
    return base


def _database_file() -> Path:
    override = get_env("DB_FILE")
    if override:
        path = Path(override).expanduser()
    else:
        path = _data_dir() / DEFAULT_DB_FILENAME
    path.parent.mkdir(parents=True, exist_ok=True)
    return path


def delete_store(path: Path | str) -> None:
    """Remove the database file and its journal side files."""
    if str(path) == MEMORY:
        return
    target = Path(path)
    for candidate in (target, *(target.with_name(target.name + suffix) for suffix in ("-wal", "-shm", "-journal"))):
        if candidate.exists():
            candidate.unlink()


def _connect(path: Path | str, runner: MigrationRunner) -> sqlite3.Connection:
    conn = sqlite3.connect(str(path), isolation_level=None, check_same_thread=False)
    try:
        runner.run(conn)
    except BaseException:
        conn.close()
        raise
    return conn


@dataclass(eq=False)
class _Subscription:
    tables: frozenset[str]
    callback: Callable[[set[str]], None]


class Database:
    """
    Handle on one open store.

    Writes go through `transaction()`, which is re-entrant: nested calls join
    the outermost transaction and only the outermost commit is real. Once that
    commit lands, subscribers watching any touched table are notified.
    """

    def __init__(self, path: Path | str, conn: sqlite3.Connection) -> None:
        self.path = path
        self._conn = conn
        self._lock = threading.RLock()
        self._depth = 0
        self._current: Transaction | None = None
        self._subscriptions: List[_Subscription] = []

    @classmethod
    def open(
        cls,
        path: Path | str | None = None,
        *,
        versions: Sequence[SchemaVersion] = SCHEMA_VERSIONS,
        reset_on_error: bool | None = None,
    ) -> "Database":
        """
        Open (creating or upgrading as needed) the store at `path`.

        A failed upgrade leaves the store unusable. Unless disabled through
        configuration, the store is then deleted and recreated empty, which
        discards every record it held.
        """
        target: Path | str = path if path is not None else _database_file()
        if str(target) != MEMORY:
            target = Path(target).expanduser()
            target.parent.mkdir(parents=True, exist_ok=True)
        runner = MigrationRunner(versions)
        try:
            conn = _connect(target, runner)
        except MigrationError as exc:
            allowed = get_config().reset_on_migration_error if reset_on_error is None else reset_on_error
            if not allowed:
                raise
            LOGGER.error(
                "Schema upgrade of %s failed (%s); deleting the store and starting empty. "
                "All previously stored data has been discarded.",
                target,
                exc,
            )
            delete_store(target)
            conn = _connect(target, runner)
        return cls(target, conn)

    def close(self) -> None:
        with self._lock:
            self._subscriptions.clear()
            self._conn.close()

    def __enter__(self) -> "Database":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    @property
    def schema_version(self) -> int:
        with self._lock:
            return int(self._conn.execute("PRAGMA user_version").fetchone()[0])

    @contextmanager
    def transaction(self) -> Iterator[Transaction]:
        """Atomic read-write scope; everything inside commits or nothing does."""
        with self._lock:
            if self._current is not None:
                self._depth += 1
                try:
                    yield self._current
                finally:
                    self._depth -= 1
                return

            self._conn.execute("BEGIN IMMEDIATE")
            tx = Transaction(self._conn)
            self._current = tx
            self._depth = 1
            try:
                yield tx
            except BaseException:
                self._conn.execute("ROLLBACK")
                raise
            else:
                self._conn.execute("COMMIT")
            finally:
                self._current = None
                self._depth = 0
            if tx.touched:
                self._notify(set(tx.touched))

    @contextmanager
    def read(self) -> Iterator[Transaction]:
        """Read scope; joins the open transaction when there is one."""
        with self._lock:
            if self._current is not None:
                yield self._current
            else:
                yield Transaction(self._conn)

    def subscribe(self, tables: Iterable[str], callback: Callable[[set[str]], None]) -> Callable[[], None]:
        """Call `callback(touched)` after each commit touching `tables`."""
        subscription = _Subscription(frozenset(tables), callback)
        with self._lock:
            self._subscriptions.append(subscription)

        def unsubscribe() -> None:
            with self._lock:
                if subscription in self._subscriptions:
                    self._subscriptions.remove(subscription)

        return unsubscribe

    def _notify(self, touched: set[str]) -> None:
        for subscription in list(self._subscriptions):
            if subscription.tables & touched:
                try:
                    subscription.callback(touched)
                except Exception:
                    LOGGER.exception("Change subscriber for %s failed.", sorted(subscription.tables))


class LiveQuery(Generic[T]):
    """
    A query result that re-evaluates after commits to the tables it reads.

    `value` always holds the latest result; listeners receive each new value.
    """

    def __init__(self, db: Database, tables: Iterable[str], query: Callable[[], T]) -> None:
        self._query = query
        self._listeners: List[Callable[[T], None]] = []
        self.value: T = query()
        self._unsubscribe = db.subscribe(tables, self._on_change)

    def _on_change(self, _touched: set[str]) -> None:
        self.refresh()

    def refresh(self) -> T:
        self.value = self._query()
        for listener in list(self._listeners):
            listener(self.value)
        return self.value

    def add_listener(self, listener: Callable[[T], None]) -> None:
        self._listeners.append(listener)

    def close(self) -> None:
        self._unsubscribe()
        self._listeners.clear()
