"""
Ledger schema — header-addressed row layouts for every kernel collection.

Columns are looked up by header name, never by position. A HeaderIndex
is built once per collection read and reused for every row.
"""

from typing import Any, Dict, List, Optional, Sequence

from cycle_kernel.models.arc import Arc
from cycle_kernel.models.calendar import CalendarContext
from cycle_kernel.models.hook import Hook


ARC_LEDGER_HEADERS = [
    "Timestamp",
    "Cycle",
    "ArcId",
    "Type",
    "Phase",
    "Tension",
    "Neighborhood",
    "DomainTag",
    "Summary",
    "CitizenCount",
    "CycleCreated",
    "CycleResolved",
    "ArcAge",
    "Holiday",
    "HolidayPriority",
    "FirstFriday",
    "CreationDay",
    "SportsSeason",
    "CalendarTrigger",
    "InvolvedEntities",
]

HOOK_DECK_HEADERS = [
    "Timestamp",
    "Cycle",
    "HookId",
    "HookType",
    "Domain",
    "Neighborhood",
    "Priority",
    "Severity",
    "HookText",
    "LinkedArcId",
    "CreatedCycle",
    "HookAge",
    "ExpiresAfter",
    "IsExpired",
    "PickupCycle",
    "Archived",
]

HOOK_ARCHIVE_HEADERS = HOOK_DECK_HEADERS + ["ArchivedCycle"]

COOLDOWN_HEADERS = ["Domain", "CyclesRemaining", "UpdatedCycle"]

CYCLE_SEED_HEADERS = [
    "CycleId",
    "Seed",
    "Timestamp",
    "Holiday",
    "LiveArcs",
    "HookCount",
    "ActiveCooldowns",
    "Checksum",
]


class HeaderIndex:
    """Header name -> column position, resolved once."""

    def __init__(self, header: Sequence[Any]):
        self.header = [str(h).strip() for h in header]
        self._positions: Dict[str, int] = {}
        for i, name in enumerate(self.header):
            # First occurrence wins if a header is duplicated
            if name and name not in self._positions:
                self._positions[name] = i

    def __contains__(self, name: str) -> bool:
        return name in self._positions

    def position(self, name: str) -> Optional[int]:
        """0-based position, or None if the column is absent."""
        return self._positions.get(name)

    def column(self, name: str) -> Optional[int]:
        """1-based column number, or None if the column is absent."""
        pos = self._positions.get(name)
        return None if pos is None else pos + 1

    def get(self, row: Sequence[Any], name: str, default: Any = None) -> Any:
        pos = self._positions.get(name)
        if pos is None or pos >= len(row):
            return default
        value = row[pos]
        if value is None or value == "":
            return default
        return value

    def as_dict(self, row: Sequence[Any]) -> Dict[str, Any]:
        return {
            name: (row[pos] if pos < len(row) else "")
            for name, pos in self._positions.items()
        }

    def encode(self, values: Dict[str, Any]) -> List[Any]:
        """Lay out a record in this header's column order. Unknown columns stay blank."""
        return [values.get(name, "") for name in self.header]


# --- Cell parsing ---

def parse_int(value: Any) -> Optional[int]:
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        return int(float(value))
    except (ValueError, TypeError):
        return None


def parse_float(value: Any) -> Optional[float]:
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (ValueError, TypeError):
        return None


def parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    return str(value).strip().lower() in ("true", "yes", "y", "1")


def parse_list(value: Any) -> List[str]:
    if value is None or value == "":
        return []
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value]
    return [part.strip() for part in str(value).split(",") if part.strip()]


# --- Record layouts ---

def arc_record(
    arc: Arc, cycle: int, calendar: CalendarContext, timestamp: str
) -> Dict[str, Any]:
    """The full ledger row for an arc as of `cycle`."""
    return {
        "Timestamp": timestamp,
        "Cycle": cycle,
        "ArcId": arc.id,
        "Type": arc.type,
        "Phase": arc.phase.value,
        "Tension": arc.tension,
        "Neighborhood": arc.neighborhood,
        "DomainTag": arc.domain_tag,
        "Summary": arc.summary,
        "CitizenCount": len(arc.involved_entities),
        "CycleCreated": arc.cycle_created,
        "CycleResolved": arc.cycle_resolved if arc.cycle_resolved is not None else "",
        "ArcAge": arc.age(cycle),
        "Holiday": calendar.holiday,
        "HolidayPriority": calendar.holiday_priority,
        "FirstFriday": calendar.is_first_friday,
        "CreationDay": calendar.is_creation_day,
        "SportsSeason": calendar.sports_season,
        "CalendarTrigger": arc.calendar_trigger or "",
        "InvolvedEntities": ", ".join(arc.involved_entities),
    }


def hook_record(hook: Hook, cycle: int, timestamp: str) -> Dict[str, Any]:
    return {
        "Timestamp": timestamp,
        "Cycle": cycle,
        "HookId": hook.id,
        "HookType": hook.type,
        "Domain": hook.domain,
        "Neighborhood": hook.neighborhood,
        "Priority": hook.priority,
        "Severity": hook.severity,
        "HookText": hook.text,
        "LinkedArcId": hook.linked_arc_id or "",
        "CreatedCycle": hook.created_cycle,
        "HookAge": hook.age,
        "ExpiresAfter": hook.expires_after,
        "IsExpired": hook.is_expired,
        "PickupCycle": hook.pickup_cycle if hook.pickup_cycle is not None else "",
        "Archived": hook.archived,
    }
