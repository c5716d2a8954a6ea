"""Slot calculation for a single opening window.

Everything here is pure: times are "HH:MM" strings or minutes after midnight,
and identical input always yields identical output.
"""
from __future__ import annotations

from typing import Iterable, Sequence

MINUTES_PER_DAY = 24 * 60


def time_to_minutes(value: str) -> int:
    """Convert "HH:MM" to minutes after midnight."""
    try:
        hours_str, minutes_str = value.strip().split(":")
        hours, minutes = int(hours_str), int(minutes_str)
    except (AttributeError, ValueError) as exc:
        raise ValueError(f"invalid time {value!r}, expected HH:MM") from exc
    if not (0 <= hours <= 24 and 0 <= minutes < 60) or hours * 60 + minutes > MINUTES_PER_DAY:
        raise ValueError(f"invalid time {value!r}, expected HH:MM")
    return hours * 60 + minutes


def minutes_to_time(total: int) -> str:
    return f"{total // 60:02d}:{total % 60:02d}"


def parse_time_slot(value: str) -> tuple[int, int]:
    """Split "HH:MM-HH:MM" into (start, end) minutes."""
    try:
        start_str, end_str = value.split("-")
    except (AttributeError, ValueError) as exc:
        raise ValueError(f"invalid time slot {value!r}, expected HH:MM-HH:MM") from exc
    start, end = time_to_minutes(start_str), time_to_minutes(end_str)
    if end <= start:
        raise ValueError(f"invalid time slot {value!r}, end must be after start")
    return start, end


def format_time_slot(start: int, end: int) -> str:
    return f"{minutes_to_time(start)}-{minutes_to_time(end)}"


def generate_slots(
    open_time: str,
    close_time: str,
    slot_duration: int,
    service_duration: int,
    capacity: int,
) -> list[dict[str, object]]:
    """Return every candidate slot between open and close.

    Slots start at ``open_time`` and step by ``slot_duration``; each covers
    ``service_duration`` minutes and never runs past ``close_time``.
    """
    if slot_duration <= 0 or service_duration <= 0:
        raise ValueError("slot and service durations must be positive")

    open_minutes = time_to_minutes(open_time)
    close_minutes = time_to_minutes(close_time)

    slots = []
    for start in range(open_minutes, close_minutes - service_duration + 1, slot_duration):
        end = start + service_duration
        slots.append({
            "start_time": minutes_to_time(start),
            "end_time": minutes_to_time(end),
            "available_spots": capacity,
        })
    return slots


def _overlaps(slot_start: int, slot_end: int, res_start: int, res_end: int) -> bool:
    # Half-open intervals: the reservation starts inside the slot, ends inside
    # it, or contains it entirely.
    return res_start < slot_end and slot_start < res_end


def apply_reservations(
    slots: list[dict[str, object]],
    reservations: Iterable[Sequence[int]],
) -> list[dict[str, object]]:
    """Decrement ``available_spots`` for every slot a reservation overlaps.

    ``reservations`` holds ``(start, end)`` or ``(start, end, units)`` tuples in
    minutes. Slots left with no spots are dropped.
    """
    bounds = [(time_to_minutes(s["start_time"]), time_to_minutes(s["end_time"])) for s in slots]
    for reservation in reservations:
        res_start, res_end = reservation[0], reservation[1]
        units = reservation[2] if len(reservation) > 2 else 1
        for slot, (slot_start, slot_end) in zip(slots, bounds):
            if _overlaps(slot_start, slot_end, res_start, res_end):
                slot["available_spots"] = max(0, slot["available_spots"] - units)

    return [slot for slot in slots if slot["available_spots"] > 0]


def calculate_slots(
    open_time: str,
    close_time: str,
    slot_duration: int,
    service_duration: int,
    capacity: int,
    reservations: Iterable[Sequence[int]] = (),
) -> list[dict[str, object]]:
    """Open slots for one day, ordered by start time."""
    slots = generate_slots(open_time, close_time, slot_duration, service_duration, capacity)
    return apply_reservations(slots, reservations)
