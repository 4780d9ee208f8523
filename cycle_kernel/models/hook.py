"""Story Hook — a short-lived, ageable story prompt."""

from typing import Optional

from pydantic import BaseModel, Field


DEFAULT_EXPIRES_AFTER = 5


class Hook(BaseModel):
    """
    A story hook from the hook deck.

    `age` is derived (current cycle - created cycle) and recomputed every
    cycle. `is_expired` and `archived` only ever go from False to True.
    `pickup_cycle` is an independent dimension: a picked-up hook keeps aging.
    """

    id: str = Field(min_length=1)
    type: str = "signal"                    # e.g., "arc-phase", "calendar"
    domain: str = ""
    neighborhood: str = ""
    priority: int = 1
    severity: int = Field(ge=1, le=10, default=5)
    text: str = ""
    linked_arc_id: Optional[str] = None
    created_cycle: int
    age: int = Field(ge=0, default=0)
    expires_after: int = Field(ge=1, default=DEFAULT_EXPIRES_AFTER)
    is_expired: bool = False
    pickup_cycle: Optional[int] = None
    archived: bool = False

    # Storage row in the hook deck (1-based), None until flushed
    row: Optional[int] = Field(default=None, exclude=True)

    @property
    def picked_up(self) -> bool:
        return self.pickup_cycle is not None
