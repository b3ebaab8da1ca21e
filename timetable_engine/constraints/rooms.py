"""
Room suitability for timetabling.

This module decides which rooms can host a requirement:
- Room type must match the subject's required room type (if any)
- Room capacity must be >= the class size (when both are known)

Compatible rooms are kept as a bitset over room indices; the concrete
room is drawn from that set when an occurrence is placed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Optional, Sequence

if TYPE_CHECKING:
    from ..data.models import Room, SchoolClass, Subject


# =============================================================================
# Room Suitability
# =============================================================================

@dataclass
class RoomSuitability:
    """Suitability analysis for a room-requirement pair."""
    room_id: str
    room_index: int
    is_valid: bool
    reasons: list[str] = field(default_factory=list)


def evaluate_room(
    room: Room,
    room_index: int,
    subject: Subject,
    school_class: SchoolClass,
) -> RoomSuitability:
    """
    Evaluate if a room is suitable for a subject taught to a class.

    Args:
        room: The room to evaluate
        room_index: Index of room in the request's room list
        subject: The subject being taught
        school_class: The class being taught

    Returns:
        RoomSuitability with validity and reasons
    """
    result = RoomSuitability(room_id=room.id, room_index=room_index, is_valid=True)

    required_type = subject.required_room_type
    if required_type is not None and room.type != required_type:
        result.is_valid = False
        result.reasons.append(f"Requires room type {required_type.value}, got {room.type.value}")

    class_size = school_class.student_count
    if class_size and room.capacity and room.capacity < class_size:
        result.is_valid = False
        result.reasons.append(f"Room capacity {room.capacity} < class size {class_size}")

    return result


def compatible_room_mask(
    rooms: Sequence[Room],
    subject: Subject,
    school_class: SchoolClass,
) -> int:
    """Bitset of room indices that can host ``subject`` for ``school_class``."""
    mask = 0
    for idx, room in enumerate(rooms):
        if evaluate_room(room, idx, subject, school_class).is_valid:
            mask |= 1 << idx
    return mask


def pick_room(room_mask: int, busy_at_period: int) -> Optional[int]:
    """Lowest-indexed room in ``room_mask`` that is not busy, or None."""
    free = room_mask & ~busy_at_period
    if not free:
        return None
    return (free & -free).bit_length() - 1


def room_indices(mask: int) -> list[int]:
    """Expand a room bitset into sorted room indices."""
    indices = []
    while mask:
        low = mask & -mask
        indices.append(low.bit_length() - 1)
        mask ^= low
    return indices
