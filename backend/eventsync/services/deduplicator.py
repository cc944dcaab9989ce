"""Duplicate event detection and canonical record selection.

Two events are duplicates when their external ids match, or when their
titles are more than 85% similar, they start within an hour of each other
and they are in the same city (case-insensitive). Each duplicate group keeps
its most complete member.

Matching is pairwise, O(n^2) in the candidate count. That is fine for a few
hundred events per run; bucket by city and day before comparing if batch
sizes grow much beyond that.
"""

from dataclasses import dataclass, field
from datetime import timedelta
from typing import List

import structlog

from eventsync.scrapers.base import StandardizedEvent
from eventsync.scrapers.utils.normalizer import CHECK_WEBSITE, parse_iso_datetime

logger = structlog.get_logger(__name__)


TITLE_SIMILARITY_THRESHOLD = 0.85
DATE_TOLERANCE = timedelta(hours=1)


@dataclass
class DuplicateGroup:
    """Events judged to describe one real-world event (always 2 or more)."""

    events: List[StandardizedEvent]


@dataclass
class DeduplicationResult:
    events: List[StandardizedEvent]
    removed: List[StandardizedEvent] = field(default_factory=list)
    groups_found: int = 0
    passes: int = 0


def levenshtein_distance(a: str, b: str) -> int:
    """Edit distance with unit-cost insert, delete and substitute."""
    if a == b:
        return 0
    if len(a) < len(b):
        a, b = b, a
    if not b:
        return len(a)

    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, start=1):
        current = [i]
        for j, char_b in enumerate(b, start=1):
            current.append(min(
                previous[j] + 1,
                current[j - 1] + 1,
                previous[j - 1] + (char_a != char_b),
            ))
        previous = current
    return previous[-1]


def string_similarity(a: str, b: str) -> float:
    """1 - distance / longer length, case-insensitive. Two empty strings are identical."""
    longest = max(len(a), len(b))
    if longest == 0:
        return 1.0
    return 1 - levenshtein_distance(a.lower(), b.lower()) / longest


def calculate_completeness(event: StandardizedEvent) -> int:
    """Score 0-100 for how much useful detail an event carries.

    Price earns its 15 points only for real price text. "Check website" is
    what every placeholder normalizes to, so it scores like a missing price.
    """
    score = 0
    if event.image_url:
        score += 25
    if event.description and len(event.description) > 50:
        score += 25
    if event.venue or event.address:
        score += 20
    if event.price and event.price != CHECK_WEBSITE:
        score += 15
    if event.ticket_url:
        score += 15
    return score


def _dates_close(first: str, second: str) -> bool:
    a = parse_iso_datetime(first)
    b = parse_iso_datetime(second)
    if a is None or b is None:
        return False
    return abs(a - b) <= DATE_TOLERANCE


def are_events_duplicate(first: StandardizedEvent, second: StandardizedEvent) -> bool:
    if first.external_id and second.external_id and first.external_id == second.external_id:
        return True

    if not (first.title and second.title and first.city and second.city):
        return False
    if first.city.lower() != second.city.lower():
        return False
    if not _dates_close(first.event_date, second.event_date):
        return False
    return string_similarity(first.title, second.title) > TITLE_SIMILARITY_THRESHOLD


def find_duplicates(events: List[StandardizedEvent]) -> List[DuplicateGroup]:
    """Cluster events in one forward pass.

    Each unvisited event collects every later unvisited event that matches
    it. Groups are disjoint; only groups with 2 or more members are returned.
    """
    groups: List[DuplicateGroup] = []
    visited = [False] * len(events)

    for i, current in enumerate(events):
        if visited[i]:
            continue
        visited[i] = True
        members = [current]

        for j in range(i + 1, len(events)):
            if not visited[j] and are_events_duplicate(current, events[j]):
                members.append(events[j])
                visited[j] = True

        if len(members) > 1:
            groups.append(DuplicateGroup(events=members))

    return groups


def select_best_event(group: List[StandardizedEvent]) -> StandardizedEvent:
    """Highest completeness wins; ties keep the earliest member.

    Raises:
        ValueError: If the group is empty
    """
    if not group:
        raise ValueError("Cannot select best event from empty group")
    # sorted() is stable, so equal scores keep input order
    return sorted(group, key=lambda e: -calculate_completeness(e))[0]


def get_events_to_remove(groups: List[DuplicateGroup]) -> List[StandardizedEvent]:
    """Every group member except its canonical record."""
    to_remove: List[StandardizedEvent] = []
    for group in groups:
        best = select_best_event(group.events)
        to_remove.extend(e for e in group.events if e is not best)
    return to_remove


def deduplicate(events: List[StandardizedEvent]) -> DeduplicationResult:
    """Remove duplicates until no duplicate group remains.

    A single pass only compares against each group's first member, so a
    surviving pair can still match afterwards. Passes repeat until
    find_duplicates() comes back empty, making the output a fixed point.
    """
    current = list(events)
    removed: List[StandardizedEvent] = []
    groups_found = 0
    passes = 0

    while True:
        groups = find_duplicates(current)
        passes += 1
        if not groups:
            break
        groups_found += len(groups)
        dropped = get_events_to_remove(groups)
        dropped_ids = {id(e) for e in dropped}
        current = [e for e in current if id(e) not in dropped_ids]
        removed.extend(dropped)

    if removed:
        logger.info(
            "duplicates_removed",
            input_count=len(events),
            removed=len(removed),
            groups=groups_found,
            passes=passes,
        )
    return DeduplicationResult(events=current, removed=removed, groups_found=groups_found, passes=passes)
