"""
Load capacity model.

Occupied seats are never stored; they are recomputed from the load's
current assignments and fun jumpers every time.
"""

from dataclasses import replace
from typing import Dict, List, Optional

from .eligibility import is_qualified_for_aircraft
from .types import (
    AFFJump,
    Aircraft,
    DEFAULT_CAPACITY,
    Instructor,
    Jump,
    Load,
    LoadPolicy,
    LoadStatus,
    SEATS_PER_AFF,
    SEATS_PER_FUN_JUMPER,
    SEATS_PER_TANDEM,
    SEATS_PER_VIDEO,
    TandemJump,
    VideoJump,
)


def seat_cost(jump: Jump) -> int:
    """
    Seats taken by one jump.

    Tandem is 2 (3 with outside video), AFF is 2, a video-only jump is 1.
    """
    if isinstance(jump, TandemJump):
        return SEATS_PER_TANDEM + (SEATS_PER_VIDEO if jump.outside_video else 0)
    if isinstance(jump, AFFJump):
        return SEATS_PER_AFF
    if isinstance(jump, VideoJump):
        return SEATS_PER_VIDEO
    raise TypeError(f"Unknown jump variant: {jump!r}")


def occupied_seats(load: Load) -> int:
    """Seats used by live assignments plus fun jumpers."""
    seats = sum(seat_cost(a.jump) for a in load.live_assignments())
    return seats + SEATS_PER_FUN_JUMPER * len(load.fun_jumpers)


def load_capacity(
    load: Load,
    aircraft: Optional[Dict[str, Aircraft]] = None,
    default_capacity: int = DEFAULT_CAPACITY
) -> int:
    """Explicit override, else the aircraft's capacity, else the default."""
    if load.capacity is not None:
        return load.capacity
    if aircraft and load.aircraft_id in aircraft:
        return aircraft[load.aircraft_id].capacity
    return default_capacity


def available_slots(
    load: Load,
    aircraft: Optional[Dict[str, Aircraft]] = None,
    default_capacity: int = DEFAULT_CAPACITY
) -> int:
    """Free seats. May be negative if a load was overfilled externally."""
    return load_capacity(load, aircraft, default_capacity) - occupied_seats(load)


def has_capacity(
    load: Load,
    required_seats: int,
    aircraft: Optional[Dict[str, Aircraft]] = None,
    default_capacity: int = DEFAULT_CAPACITY
) -> bool:
    return available_slots(load, aircraft, default_capacity) >= required_seats


def accepts_work(load: Load, policy: LoadPolicy) -> bool:
    if load.status == LoadStatus.BUILDING:
        return True
    return policy.allow_ready_loads and load.status == LoadStatus.READY


def candidate_loads(
    loads: List[Load],
    required_seats: int,
    policy: Optional[LoadPolicy] = None,
    aircraft: Optional[Dict[str, Aircraft]] = None
) -> List[Load]:
    """
    Loads that can take a jump of the given size.

    Args:
        loads: All loads
        required_seats: Seats the new jump needs
        policy: Which statuses accept work and the default capacity
        aircraft: Aircraft by id, for default capacities

    Returns:
        Open loads with room, in ascending position order
    """
    policy = policy or LoadPolicy()
    open_loads = sorted(
        (l for l in loads if accepts_work(l, policy)),
        key=lambda l: l.position
    )
    return [
        l for l in open_loads
        if has_capacity(l, required_seats, aircraft, policy.default_capacity)
    ]


def select_load(
    loads: List[Load],
    required_seats: int,
    policy: Optional[LoadPolicy] = None,
    aircraft: Optional[Dict[str, Aircraft]] = None,
    crew: Optional[List[Instructor]] = None
) -> Optional[Load]:
    """
    First opened, first filled: the lowest-position load with room.

    When crew is given, only loads every crew member may fly, and that none
    of them already jumps on, are considered.
    """
    for load in candidate_loads(loads, required_seats, policy, aircraft):
        if crew and not all(is_qualified_for_aircraft(i, load.aircraft_id) for i in crew):
            continue
        if crew and any(is_on_load(load, i.instructor_id) for i in crew):
            continue
        return load
    return None


def is_on_load(load: Load, instructor_id: str) -> bool:
    """An instructor works one role per load, primary or video."""
    return any(
        instructor_id in (seat.instructor_id, seat.video_instructor_id)
        for seat in load.live_assignments()
    )


def renumber_building_loads(loads: List[Load]) -> List[Load]:
    """
    Renumber building loads 1, 2, 3... keeping their relative order.

    Ready, departed and completed loads keep their positions, since
    timers and availability checks depend on them.
    """
    building = sorted(
        (l for l in loads if l.status == LoadStatus.BUILDING),
        key=lambda l: l.position
    )
    renumbered = [replace(l, position=n) for n, l in enumerate(building, start=1)]
    return renumbered + [l for l in loads if l.status != LoadStatus.BUILDING]
