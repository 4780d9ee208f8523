"""Calendar Context — supplied once per cycle by the calendar phase."""

from typing import List

from pydantic import BaseModel


class CalendarContext(BaseModel):
    """What day it is in the simulated city. Computed outside this kernel."""

    holiday: str = "none"                   # e.g., "OaklandPride", "Thanksgiving"
    holiday_priority: str = "none"          # "none" | "minor" | "major" | "oakland"
    is_first_friday: bool = False
    is_creation_day: bool = False
    sports_season: str = "off-season"       # "off-season" | "late-season" | "playoffs" | "championship"
    season: str = "unknown"

    @property
    def trigger(self) -> str:
        """The calendar event an arc created today should be attributed to."""
        if self.holiday != "none":
            return self.holiday
        if self.is_first_friday:
            return "FirstFriday"
        if self.is_creation_day:
            return "CreationDay"
        return ""


class DomainCalendarEffects(BaseModel):
    """Domains whose cooldowns recover faster or slower today."""

    boosted: List[str] = []
    suppressed: List[str] = []
