"""Arc — a multi-cycle narrative thread progressing through ordered phases."""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class ArcPhase(str, Enum):
    EARLY = "early"
    RISING = "rising"
    PEAK = "peak"
    DECLINE = "decline"
    RESOLVED = "resolved"   # Terminal. Never revived under the same id.


PHASE_ORDER: List[ArcPhase] = [
    ArcPhase.EARLY,
    ArcPhase.RISING,
    ArcPhase.PEAK,
    ArcPhase.DECLINE,
    ArcPhase.RESOLVED,
]


class Arc(BaseModel):
    """One logical arc as reconstructed from the arc ledger."""

    id: str = Field(min_length=1)
    type: str = "crisis"                    # e.g., "festival", "sports-fever"
    phase: ArcPhase = ArcPhase.EARLY
    tension: float = Field(ge=0.0, le=10.0, default=0.0)
    neighborhood: str = ""
    domain_tag: str = "GENERAL"
    summary: str = ""
    involved_entities: List[str] = []
    cycle_created: int
    cycle_resolved: Optional[int] = None
    calendar_trigger: Optional[str] = None  # e.g., "OaklandPride", "FirstFriday"

    @property
    def is_live(self) -> bool:
        return self.phase != ArcPhase.RESOLVED

    def age(self, current_cycle: int) -> int:
        return max(0, current_cycle - self.cycle_created)


class ArcTransition(BaseModel):
    """A phase change observed during one cycle."""

    arc_id: str
    from_phase: ArcPhase
    to_phase: ArcPhase
    tension: float
    cycle: int
