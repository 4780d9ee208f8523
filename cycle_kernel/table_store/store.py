"""
Table Store — the sheet-like backing store the kernel persists into.

Collections are addressed by (name, row, column), both 1-based. Row 1 of
every collection is its header row. Each operation is atomic on its own;
nothing spans operations.

Behavioral Contract:
- Rows are returned in stored (insertion) order. Ledger replay depends on it.
- Writes to a collection that does not exist yet create it.
- Writes past the current end extend the collection with blank rows/cells.
- Only the intent executor and the ledger replay scan talk to a store.
"""

import json
import sqlite3
from typing import Any, List, Optional, Protocol, Sequence, Tuple, runtime_checkable


Row = List[Any]


class TableStoreError(Exception):
    """A store operation failed."""


@runtime_checkable
class TableStore(Protocol):
    def exists(self, collection: str) -> bool: ...

    def collections(self) -> List[str]: ...

    def read_all(self, collection: str) -> Tuple[Row, List[Row]]:
        """Return (header, data rows). Missing collection -> ([], [])."""
        ...

    def last_row(self, collection: str) -> int:
        """1-based index of the last row, header included. 0 when missing or empty."""
        ...

    def write_cell(self, collection: str, row: int, col: int, value: Any) -> None: ...

    def write_range(
        self, collection: str, row: int, col: int, values: Sequence[Sequence[Any]]
    ) -> None: ...

    def append(self, collection: str, rows: Sequence[Sequence[Any]]) -> None: ...

    def replace(self, collection: str, rows: Sequence[Sequence[Any]]) -> None:
        """Clear the collection and write `rows` (header first)."""
        ...


def _check_address(row: int, col: int) -> None:
    if row < 1 or col < 1:
        raise TableStoreError(f"Invalid address ({row}, {col}); rows and columns are 1-based")


def _place(rows: List[Row], row: int, col: int, value: Any) -> None:
    """Set rows[row-1][col-1], extending with blanks as needed."""
    while len(rows) < row:
        rows.append([])
    target = rows[row - 1]
    while len(target) < col:
        target.append("")
    target[col - 1] = value


class InMemoryTableStore:
    """Dict-of-lists store. Used in tests and for dry experiments."""

    def __init__(self, initial: Optional[dict] = None):
        self._tables: dict = {}
        for name, rows in (initial or {}).items():
            self._tables[name] = [list(r) for r in rows]

    def exists(self, collection: str) -> bool:
        return collection in self._tables

    def collections(self) -> List[str]:
        return list(self._tables.keys())

    def read_all(self, collection: str) -> Tuple[Row, List[Row]]:
        rows = self._tables.get(collection)
        if not rows:
            return [], []
        return list(rows[0]), [list(r) for r in rows[1:]]

    def rows(self, collection: str) -> List[Row]:
        """All rows including the header."""
        return [list(r) for r in self._tables.get(collection, [])]

    def last_row(self, collection: str) -> int:
        return len(self._tables.get(collection, []))

    def write_cell(self, collection: str, row: int, col: int, value: Any) -> None:
        _check_address(row, col)
        _place(self._tables.setdefault(collection, []), row, col, value)

    def write_range(
        self, collection: str, row: int, col: int, values: Sequence[Sequence[Any]]
    ) -> None:
        _check_address(row, col)
        table = self._tables.setdefault(collection, [])
        for i, values_row in enumerate(values):
            for j, value in enumerate(values_row):
                _place(table, row + i, col + j, value)

    def append(self, collection: str, rows: Sequence[Sequence[Any]]) -> None:
        self._tables.setdefault(collection, []).extend(list(r) for r in rows)

    def replace(self, collection: str, rows: Sequence[Sequence[Any]]) -> None:
        self._tables[collection] = [list(r) for r in rows]


class SqliteTableStore:
    """
    Durable store on SQLite. One JSON-encoded row per record, ordered by
    row index, so stored order survives restarts.
    """

    def __init__(self, db_path: str = ":memory:"):
        self.db_path = db_path
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._init_schema()

    def _init_schema(self) -> None:
        """Create the collection and row tables if they don't exist."""
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS collections (
                name TEXT PRIMARY KEY,
                created_at TEXT NOT NULL DEFAULT (datetime('now'))
            )
        """)
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS table_rows (
                collection TEXT NOT NULL,
                row_index INTEGER NOT NULL,
                row_json TEXT NOT NULL,
                PRIMARY KEY (collection, row_index)
            )
        """)
        self._conn.commit()

    def _ensure(self, collection: str) -> None:
        self._conn.execute(
            "INSERT OR IGNORE INTO collections (name) VALUES (?)", (collection,)
        )

    def _get_row(self, collection: str, row: int) -> Optional[Row]:
        found = self._conn.execute(
            "SELECT row_json FROM table_rows WHERE collection = ? AND row_index = ?",
            (collection, row),
        ).fetchone()
        return json.loads(found["row_json"]) if found else None

    def _put_row(self, collection: str, row: int, values: Row) -> None:
        self._conn.execute(
            "INSERT OR REPLACE INTO table_rows (collection, row_index, row_json) "
            "VALUES (?, ?, ?)",
            (collection, row, json.dumps(values, default=str)),
        )

    def exists(self, collection: str) -> bool:
        row = self._conn.execute(
            "SELECT 1 FROM collections WHERE name = ?", (collection,)
        ).fetchone()
        return row is not None

    def collections(self) -> List[str]:
        rows = self._conn.execute("SELECT name FROM collections ORDER BY rowid").fetchall()
        return [r["name"] for r in rows]

    def read_all(self, collection: str) -> Tuple[Row, List[Row]]:
        last = self.last_row(collection)
        if last == 0:
            return [], []
        found = {
            r["row_index"]: json.loads(r["row_json"])
            for r in self._conn.execute(
                "SELECT row_index, row_json FROM table_rows WHERE collection = ?",
                (collection,),
            ).fetchall()
        }
        # Gaps left by writes past the end read back as empty rows
        rows = [found.get(i, []) for i in range(1, last + 1)]
        return rows[0], rows[1:]

    def last_row(self, collection: str) -> int:
        row = self._conn.execute(
            "SELECT MAX(row_index) AS last FROM table_rows WHERE collection = ?",
            (collection,),
        ).fetchone()
        return row["last"] or 0

    def write_cell(self, collection: str, row: int, col: int, value: Any) -> None:
        self.write_range(collection, row, col, [[value]])

    def write_range(
        self, collection: str, row: int, col: int, values: Sequence[Sequence[Any]]
    ) -> None:
        _check_address(row, col)
        try:
            self._ensure(collection)
            for i, values_row in enumerate(values):
                current = self._get_row(collection, row + i) or []
                for j, value in enumerate(values_row):
                    while len(current) < col + j:
                        current.append("")
                    current[col + j - 1] = value
                self._put_row(collection, row + i, current)
            self._conn.commit()
        except sqlite3.Error as e:
            self._conn.rollback()
            raise TableStoreError(f"write_range on {collection} failed: {e}") from e

    def append(self, collection: str, rows: Sequence[Sequence[Any]]) -> None:
        start = self.last_row(collection) + 1
        try:
            self._ensure(collection)
            for i, values_row in enumerate(rows):
                self._put_row(collection, start + i, list(values_row))
            self._conn.commit()
        except sqlite3.Error as e:
            self._conn.rollback()
            raise TableStoreError(f"append to {collection} failed: {e}") from e

    def replace(self, collection: str, rows: Sequence[Sequence[Any]]) -> None:
        try:
            self._ensure(collection)
            self._conn.execute(
                "DELETE FROM table_rows WHERE collection = ?", (collection,)
            )
            for i, values_row in enumerate(rows):
                self._put_row(collection, i + 1, list(values_row))
            self._conn.commit()
        except sqlite3.Error as e:
            self._conn.rollback()
            raise TableStoreError(f"replace of {collection} failed: {e}") from e

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()
