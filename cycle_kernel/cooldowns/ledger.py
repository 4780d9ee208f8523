"""
Cooldown Ledger — per-domain suppression counters.

A domain is suppressed while its counter is above zero. Counters only
grow through `apply` (and then only to the max of old and new), and only
shrink through `decay`. They never go negative.

Calendar effects:
  Boosted domains recover twice as fast, get one cycle less on new
  cooldowns and skip the long-cooldown penalty.
  Suppressed (calendar-quiet) domains get one cycle more.
"""

import logging
from typing import Dict, Iterable, List, Optional

from cycle_kernel.intents.queue import queue_replace
from cycle_kernel.ledger.schema import COOLDOWN_HEADERS
from cycle_kernel.models.calendar import CalendarContext, DomainCalendarEffects
from cycle_kernel.models.config import CooldownConfig, KernelConfig
from cycle_kernel.models.context import ExecutionContext
from cycle_kernel.models.intent import WriteIntent

logger = logging.getLogger(__name__)

BIG_CELEBRATIONS = ["OaklandPride", "ArtSoulFestival", "NewYearsEve", "Independence"]
CULTURAL_FESTIVALS = ["LunarNewYear", "CincoDeMayo", "DiaDeMuertos", "Juneteenth"]
PARTY_HOLIDAYS = ["StPatricksDay", "Halloween", "NewYearsEve"]
QUIET_HOLIDAYS = ["Thanksgiving", "Easter", "MothersDay", "FathersDay"]


def _key(domain: str) -> str:
    return domain.strip().upper()


def _dedupe(domains: Iterable[str]) -> List[str]:
    seen: List[str] = []
    for d in domains:
        if d not in seen:
            seen.append(d)
    return seen


def calendar_domain_effects(calendar: CalendarContext) -> DomainCalendarEffects:
    """Which domains the calendar boosts or quiets today."""
    boosted: List[str] = []
    suppressed: List[str] = []
    holiday = calendar.holiday

    if holiday != "none":
        boosted += ["FESTIVAL", "HOLIDAY"]
    if calendar.holiday_priority in ("major", "oakland"):
        boosted += ["COMMUNITY", "CULTURE"]
    if holiday in BIG_CELEBRATIONS:
        boosted += ["NIGHTLIFE", "COMMUNITY", "CULTURE"]
    if holiday in CULTURAL_FESTIVALS:
        boosted += ["CULTURE", "COMMUNITY"]
    if calendar.sports_season in ("championship", "playoffs") or holiday == "OpeningDay":
        boosted.append("SPORTS")
    if calendar.is_first_friday:
        boosted += ["ARTS", "CULTURE", "NIGHTLIFE"]
    if calendar.is_creation_day:
        boosted += ["CIVIC", "COMMUNITY"]
    if holiday in PARTY_HOLIDAYS:
        boosted.append("NIGHTLIFE")

    if holiday in QUIET_HOLIDAYS:
        suppressed += ["NIGHTLIFE", "CRIME"]

    return DomainCalendarEffects(boosted=_dedupe(boosted), suppressed=_dedupe(suppressed))


def decay(cooldowns: Dict[str, int], boosted: Iterable[str] = ()) -> Dict[str, int]:
    """One cycle of recovery: -1 per domain, -2 if boosted. Floored at 0."""
    fast = {_key(d) for d in boosted}
    return {
        domain: max(0, remaining - (2 if _key(domain) in fast else 1))
        for domain, remaining in cooldowns.items()
    }


def cooldown_duration(
    severity: str = "",
    is_priority_domain: bool = False,
    is_long_cooldown_domain: bool = False,
    is_boosted: bool = False,
    is_suppressed: bool = False,
    config: Optional[CooldownConfig] = None,
) -> int:
    cfg = config or CooldownConfig()
    level = (severity or "").strip().lower()

    duration = cfg.base_duration
    if level in cfg.high_severities:
        duration = cfg.high_severity_duration
    elif level in cfg.low_severities:
        duration = cfg.low_severity_duration

    if is_priority_domain:
        duration = max(1, duration - 1)
    if is_long_cooldown_domain and not is_boosted:
        duration += 1
    if is_boosted:
        duration = max(0, duration - 1)
    if is_suppressed:
        duration += 1
    return duration


def apply(
    cooldowns: Dict[str, int],
    domain: str,
    severity: str = "",
    is_priority_domain: bool = False,
    is_long_cooldown_domain: bool = False,
    is_boosted: bool = False,
    is_suppressed: bool = False,
    config: Optional[CooldownConfig] = None,
) -> int:
    """
    Start (or extend) a domain's cooldown after it produced material.
    Returns the computed duration; the stored counter becomes
    max(existing, duration) so this path never shortens a cooldown.
    """
    duration = cooldown_duration(
        severity,
        is_priority_domain,
        is_long_cooldown_domain,
        is_boosted,
        is_suppressed,
        config,
    )
    key = _key(domain)
    cooldowns[key] = max(cooldowns.get(key, 0), duration)
    return duration


def is_suppressed(cooldowns: Dict[str, int], domain: str) -> bool:
    return cooldowns.get(_key(domain), 0) > 0


def suppression_map(cooldowns: Dict[str, int]) -> Dict[str, bool]:
    """Suppressed domains keyed in both upper and lower case."""
    result: Dict[str, bool] = {}
    for domain, remaining in cooldowns.items():
        if remaining > 0:
            result[domain] = True
            result[domain.lower()] = True
    return result


def active_summary(cooldowns: Dict[str, int]) -> str:
    """e.g. "SPORTS:2, CIVIC:1", or "none"."""
    active = [f"{d}:{n}" for d, n in cooldowns.items() if n > 0]
    return ", ".join(active) or "none"


class CooldownLedger:
    """Cooldown bookkeeping bound to a config and a cycle context."""

    def __init__(self, config: Optional[KernelConfig] = None):
        self.config = config or KernelConfig()

    @property
    def _cfg(self) -> CooldownConfig:
        return self.config.cooldowns

    def effects(self, ctx: ExecutionContext) -> DomainCalendarEffects:
        return calendar_domain_effects(ctx.calendar)

    def decay(self, ctx: ExecutionContext) -> Dict[str, int]:
        """Start-of-cycle recovery using today's calendar."""
        ctx.cooldowns = decay(ctx.cooldowns, self.effects(ctx).boosted)
        return ctx.cooldowns

    def apply_event(
        self, ctx: ExecutionContext, domain: str, severity: str = ""
    ) -> int:
        """Cooldown for one event, domain classification taken from config and calendar."""
        key = _key(domain)
        if not key:
            return 0
        effects = self.effects(ctx)
        return apply(
            ctx.cooldowns,
            key,
            severity,
            is_priority_domain=key in self._cfg.priority_domains,
            is_long_cooldown_domain=key in self._cfg.long_cooldown_domains,
            is_boosted=key in effects.boosted,
            is_suppressed=key in effects.suppressed,
            config=self._cfg,
        )

    def apply_events(self, ctx: ExecutionContext, events: Iterable[dict]) -> int:
        """
        Apply cooldowns for this cycle's events. Events stamped with another
        cycle are ignored so old events never refresh a cooldown.
        Returns how many events were applied.
        """
        applied = 0
        for event in events:
            event_cycle = event.get("cycle")
            if isinstance(event_cycle, int) and event_cycle != ctx.cycle:
                continue
            domain = str(event.get("domain") or "")
            if not domain.strip():
                continue
            self.apply_event(ctx, domain, str(event.get("severity") or ""))
            applied += 1
        return applied

    def is_suppressed(self, ctx: ExecutionContext, domain: str) -> bool:
        return is_suppressed(ctx.cooldowns, domain)

    def persist(self, ctx: ExecutionContext) -> WriteIntent:
        """Queue the whole cooldown table as a replace."""
        rows = [list(COOLDOWN_HEADERS)]
        for domain in sorted(ctx.cooldowns):
            rows.append([domain, ctx.cooldowns[domain], ctx.cycle])
        logger.debug("Cycle %d cooldowns: %s", ctx.cycle, active_summary(ctx.cooldowns))
        return queue_replace(
            ctx,
            self.config.collections.cooldowns,
            rows,
            reason=f"Domain cooldowns after cycle {ctx.cycle}",
            domain="cooldowns",
        )
