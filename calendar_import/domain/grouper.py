"""Collapse recurring instances into one reviewable row per series.

Grouping is lossless: every occurrence ends up either as a singleton row or
inside exactly one group's ``original_instances``, and ``ungroup_events``
recovers them for commit.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Sequence
from typing import Optional, Union

from ..calendar.ics_models import Frequency, Occurrence, RecurringInstance
from .models import ImportableEvent

logger = logging.getLogger(__name__)

_FREQUENCY_LABELS = {
    Frequency.DAILY: ("Daily", "days"),
    Frequency.WEEKLY: ("Weekly", "weeks"),
    Frequency.MONTHLY: ("Monthly", "months"),
    Frequency.YEARLY: ("Yearly", "years"),
}


def pattern_from_day_delta(days: int) -> str:
    """Human label for the gap between two consecutive instances.

    Examples:
        >>> pattern_from_day_delta(7)
        'Weekly'
        >>> pattern_from_day_delta(30)
        'Monthly'
        >>> pattern_from_day_delta(3)
        'Every 3 days'
    """
    if days == 1:
        return "Daily"
    if days == 7:
        return "Weekly"
    if 28 <= days <= 31:
        return "Monthly"
    if 365 <= days <= 366:
        return "Yearly"
    return f"Every {days} days"


def pattern_from_rule(instance: RecurringInstance) -> str:
    """Label for a group with a single instance, taken from its rule."""
    label, unit = _FREQUENCY_LABELS[instance.rule.frequency]
    if instance.rule.interval == 1:
        return label
    return f"Every {instance.rule.interval} {unit}"


def group_occurrences(
    occurrences: Sequence[Occurrence],
    build_event: Callable[[Occurrence], ImportableEvent],
) -> list[ImportableEvent]:
    """Turn occurrences into preview rows, one row per recurring series.

    Args:
        occurrences: Expanded occurrences in display order
        build_event: Builds the (classified) ImportableEvent for one occurrence

    Returns:
        Rows in order of first appearance: singletons as-is, each series as a
        group row carrying all its instances
    """
    # Slot list preserves first-appearance order; group slots hold their id
    slots: list[Union[ImportableEvent, str]] = []
    members: dict[str, list[tuple[Occurrence, ImportableEvent]]] = {}

    for occurrence in occurrences:
        event = build_event(occurrence)
        if not isinstance(occurrence, RecurringInstance):
            slots.append(event)
            continue
        if occurrence.group_id not in members:
            members[occurrence.group_id] = []
            slots.append(occurrence.group_id)
        members[occurrence.group_id].append((occurrence, event))

    rows: list[ImportableEvent] = []
    for slot in slots:
        if isinstance(slot, ImportableEvent):
            rows.append(slot)
        else:
            rows.append(_build_group(slot, members[slot]))

    logger.debug(
        "Grouped %d occurrences into %d rows (%d recurring groups)",
        len(occurrences),
        len(rows),
        len(members),
    )
    return rows


def _build_group(
    group_id: str,
    instances: list[tuple[Occurrence, ImportableEvent]],
) -> ImportableEvent:
    first_occurrence, first = instances[0]
    _, last = instances[-1]

    pattern: Optional[str]
    if len(instances) >= 2:
        second_occurrence = instances[1][0]
        days = (second_occurrence.start.local_date - first_occurrence.start.local_date).days
        pattern = pattern_from_day_delta(days)
    else:
        assert isinstance(first_occurrence, RecurringInstance)
        pattern = pattern_from_rule(first_occurrence)

    return first.model_copy(
        update={
            "id": group_id,
            "end": last.end,
            "is_recurring_group": True,
            "recurring_instance_count": len(instances),
            "recurring_pattern": pattern,
            "original_instances": [event for _, event in instances],
        },
        deep=True,
    )


def ungroup_events(events: Iterable[ImportableEvent]) -> list[ImportableEvent]:
    """Expand group rows back into their instances; other rows pass through."""
    flat: list[ImportableEvent] = []
    for event in events:
        if event.is_recurring_group and event.original_instances:
            flat.extend(event.original_instances)
        else:
            flat.append(event)
    return flat
