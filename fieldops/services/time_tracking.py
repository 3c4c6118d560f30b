"""
Time tracking calculations
Worked hours net of breaks and labor cost per technician
"""

from datetime import datetime
from typing import Optional

from ..models_time import TimeEntry
from ..shared.dates import utcnow


def _seconds_between(start: Optional[datetime], end: Optional[datetime]) -> float:
    if not start or not end:
        return 0.0
    return max((end - start).total_seconds(), 0.0)


def calculate_break_hours(entry: TimeEntry, now: Optional[datetime] = None) -> float:
    """Open breaks count up to now (or the entry's end)"""
    now = now or utcnow()
    seconds = sum(
        _seconds_between(b.start_time, b.end_time or entry.end_time or now) for b in entry.breaks
    )
    return round(seconds / 3600, 2)


def calculate_entry_hours(entry: TimeEntry, now: Optional[datetime] = None) -> float:
    """Worked hours for an entry, minus breaks. Active entries count up to now."""
    now = now or utcnow()
    gross = _seconds_between(entry.start_time, entry.end_time or now) / 3600
    return round(max(gross - calculate_break_hours(entry, now), 0.0), 2)


def summarize_entries(entries: list[TimeEntry], now: Optional[datetime] = None) -> dict:
    """Totals and a per-technician breakdown of hours and labor cost"""
    now = now or utcnow()
    technicians: dict[int, dict] = {}
    total_hours = 0.0
    total_cost = 0.0

    for entry in entries:
        hours = calculate_entry_hours(entry, now)
        cost = round(hours * (entry.hourly_rate or 0), 2)
        total_hours += hours
        total_cost += cost

        tech = technicians.setdefault(
            entry.user_id, {"userId": entry.user_id, "entries": 0, "hours": 0.0, "laborCost": 0.0}
        )
        tech["entries"] += 1
        tech["hours"] = round(tech["hours"] + hours, 2)
        tech["laborCost"] = round(tech["laborCost"] + cost, 2)

    return {
        "totalEntries": len(entries),
        "totalHours": round(total_hours, 2),
        "totalLaborCost": round(total_cost, 2),
        "technicians": sorted(technicians.values(), key=lambda t: t["hours"], reverse=True),
    }
