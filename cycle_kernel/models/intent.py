"""Write Intent — a deferred, queued mutation of the table store."""

from datetime import datetime
from enum import Enum
from typing import Any, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, model_validator


class IntentKind(str, Enum):
    CELL = "cell"           # One value at (row, col)
    RANGE = "range"         # N x M block starting at (row, col)
    APPEND = "append"       # Rows added after the last row
    REPLACE = "replace"     # Clear the collection and write all rows


# Default execution priorities. Lower runs earlier.
REPLACE_PRIORITY = 50
UPDATE_PRIORITY = 100
LOG_PRIORITY = 200


class CellAddress(BaseModel):
    """1-based sheet coordinates. Row 1 is the header row."""

    model_config = ConfigDict(frozen=True)

    row: int = Field(ge=1)
    col: int = Field(ge=1)


class WriteIntent(BaseModel):
    """
    A single deferred write. Immutable once created: re-queuing the same
    logical write creates a new intent.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    collection: str = Field(min_length=1)
    kind: IntentKind
    address: Optional[CellAddress] = None
    values: Tuple[Tuple[Any, ...], ...]
    reason: str = ""                        # Audit note, never behavior-affecting
    domain: str = "unknown"                 # Owning domain, metrics only
    priority: int = UPDATE_PRIORITY
    created_at: datetime
    sequence: int = 0                       # Insertion order, breaks priority ties

    @model_validator(mode="after")
    def _check_shape(self) -> "WriteIntent":
        if not self.collection.strip():
            raise ValueError("collection name must not be blank")

        if self.kind in (IntentKind.CELL, IntentKind.RANGE):
            if self.address is None:
                raise ValueError(f"{self.kind.value} intent requires an address")
        elif self.address is not None:
            raise ValueError(f"{self.kind.value} intent must not carry an address")

        if not self.values:
            raise ValueError(f"{self.kind.value} intent has no values")

        if self.kind == IntentKind.CELL:
            if len(self.values) != 1 or len(self.values[0]) != 1:
                raise ValueError("cell intent values must be 1x1")

        if self.kind in (IntentKind.RANGE, IntentKind.REPLACE):
            width = len(self.values[0])
            if width == 0:
                raise ValueError(f"{self.kind.value} intent rows must not be empty")
            for i, row in enumerate(self.values):
                if len(row) != width:
                    raise ValueError(
                        f"{self.kind.value} intent values are not rectangular: "
                        f"row {i} has {len(row)} columns, expected {width}"
                    )

        if self.kind == IntentKind.APPEND:
            for i, row in enumerate(self.values):
                if len(row) == 0:
                    raise ValueError(f"append intent row {i} is empty")

        return self

    @property
    def row_count(self) -> int:
        return len(self.values)

    @property
    def cell_count(self) -> int:
        return sum(len(row) for row in self.values)
