"""
Core assignment algorithm.

This module composes the balance calculator, eligibility filter and load
capacity model into a single decision: which instructor (and video
instructor) takes a student, and on which load.

The algorithm is deterministic: given the same snapshot, it will always
produce the same plan.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from .balance import calculate_balance
from .capacity import candidate_loads, seat_cost, select_load
from .eligibility import eligible, eligible_video
from .errors import NoAvailableLoad, NoQualifiedInstructor
from .types import (
    AutoAssignSettings,
    EnginePolicy,
    Instructor,
    QueueStudent,
    Snapshot,
    TandemJump,
)


@dataclass
class AssignmentPlan:
    """
    The outcome of planning one student.

    Attributes:
        student: Student being placed
        instructor: Primary instructor
        load_id: Chosen load
        seats: Seats the jump takes
        video_instructor: Outside video instructor, if requested
        balances: Balances of the ranked candidates at decision time
    """
    student: QueueStudent
    instructor: Instructor
    load_id: str
    seats: int
    video_instructor: Optional[Instructor] = None
    balances: Dict[str, float] = field(default_factory=dict)


def sort_queue(queue: List[QueueStudent]) -> List[QueueStudent]:
    """
    FIFO order by queue timestamp.

    The sort is stable, so students with the same timestamp keep the order
    the repository returned them in.
    """
    return sorted(queue, key=lambda s: s.timestamp)


def eligible_students(queue: List[QueueStudent], settings: AutoAssignSettings) -> List[QueueStudent]:
    """Queue in FIFO order, minus request jumps when they are skipped."""
    return [
        s for s in sort_queue(queue)
        if not (settings.skip_requests and s.is_request)
    ]


def select_next_student(
    queue: List[QueueStudent],
    settings: AutoAssignSettings
) -> Optional[QueueStudent]:
    """
    Pick the student the scheduler should count down for.

    In batch mode nothing is picked until batch_size eligible students are
    waiting; then only the first of them is returned.
    """
    candidates = eligible_students(queue, settings)
    if not candidates:
        return None
    if settings.batch_mode and len(candidates) < settings.batch_size:
        return None
    return candidates[0]


def rank_instructors(
    candidates: List[Instructor],
    snapshot: Snapshot,
    as_of: Optional[datetime] = None
) -> List[Instructor]:
    """
    Sort candidates by balance, lowest first.

    Ties keep the candidates' original order.
    """
    balances = balances_for(candidates, snapshot, as_of)
    return sorted(candidates, key=lambda i: balances[i.instructor_id])


def balances_for(
    candidates: List[Instructor],
    snapshot: Snapshot,
    as_of: Optional[datetime] = None
) -> Dict[str, float]:
    return {
        i.instructor_id: calculate_balance(
            i.instructor_id,
            snapshot.assignments,
            snapshot.instructors,
            snapshot.period,
            snapshot.loads,
            snapshot.rotation,
            as_of
        )
        for i in candidates
    }


def plan_assignment(
    student: QueueStudent,
    snapshot: Snapshot,
    policy: Optional[EnginePolicy] = None,
    instructor_id: Optional[str] = None,
    load_id: Optional[str] = None,
    video_instructor_id: Optional[str] = None,
    as_of: Optional[datetime] = None
) -> AssignmentPlan:
    """
    Choose instructor, video instructor and load for a student.

    Algorithm:
    1. Filter the roster to eligible instructors (optionally one fixed id)
    2. Rank them by balance, lowest first
    3. For outside video, rank eligible video instructors the same way
    4. Take the first load (by position) with room that the crew can fly

    Args:
        student: Student to place
        snapshot: Current instructors, loads, records and period
        policy: Engine policy
        instructor_id: Force a specific primary instructor
        load_id: Force a specific load
        video_instructor_id: Force a specific video instructor
        as_of: Date used for pending balance

    Returns:
        The assignment plan

    Raises:
        NoQualifiedInstructor: Nobody eligible can take the student
        NoAvailableLoad: No open load has room for the jump
    """
    policy = policy or EnginePolicy()
    sid = student.student_id

    candidates = eligible(snapshot.instructors, student.jump_type, student.weight, student.name)
    if instructor_id is not None:
        candidates = [i for i in candidates if i.instructor_id == instructor_id]
        if not candidates:
            raise NoQualifiedInstructor(
                sid,
                message=f"Instructor {instructor_id} cannot take student {sid}",
                details={"student_id": sid, "instructor_id": instructor_id}
            )
    if not candidates:
        raise NoQualifiedInstructor(sid)

    loads = snapshot.loads
    if load_id is not None:
        loads = [l for l in loads if l.load_id == load_id]
        if not loads:
            raise NoAvailableLoad(sid, message=f"Load {load_id} not found")

    seats = seat_cost(student.jump)
    if not candidate_loads(loads, seats, policy.load, snapshot.aircraft):
        raise NoAvailableLoad(sid, details={"student_id": sid, "seats": seats})

    balances = balances_for(candidates, snapshot, as_of)
    ranked = sorted(candidates, key=lambda i: balances[i.instructor_id])
    needs_video = isinstance(student.jump, TandemJump) and student.jump.outside_video
    video_missing = False

    for primary in ranked:
        videos = [None]
        if needs_video:
            videos = _video_candidates(student, primary, snapshot, policy, video_instructor_id, as_of)
            if not videos:
                video_missing = True
                continue

        for video in videos:
            crew = [primary] + ([video] if video else [])
            load = select_load(loads, seats, policy.load, snapshot.aircraft, crew)
            if load is not None:
                return AssignmentPlan(
                    student=student,
                    instructor=primary,
                    load_id=load.load_id,
                    seats=seats,
                    video_instructor=video,
                    balances=balances
                )

    if video_missing:
        raise NoQualifiedInstructor(
            sid,
            message=f"No video instructor available for student {sid}",
            details={"student_id": sid, "role": "video"}
        )
    raise NoAvailableLoad(
        sid,
        message=f"No open load the qualified instructors can fly for student {sid}",
        details={"student_id": sid, "seats": seats}
    )


def _video_candidates(
    student: QueueStudent,
    primary: Instructor,
    snapshot: Snapshot,
    policy: EnginePolicy,
    video_instructor_id: Optional[str],
    as_of: Optional[datetime]
) -> List[Instructor]:
    weight = student.weight
    if policy.video_pair_weight:
        weight += primary.body_weight
    pool = eligible_video(snapshot.instructors, weight, exclude_ids=[primary.instructor_id])
    if video_instructor_id is not None:
        pool = [i for i in pool if i.instructor_id == video_instructor_id]
    return rank_instructors(pool, snapshot, as_of)


def calculate_assignment_metrics(plan: AssignmentPlan) -> dict:
    """
    Summarize a plan for logging and API responses.

    Args:
        plan: Assignment plan

    Returns:
        Dictionary describing the decision
    """
    ranked = sorted(plan.balances.items(), key=lambda item: item[1])
    return {
        "student_id": plan.student.student_id,
        "instructor_id": plan.instructor.instructor_id,
        "video_instructor_id": (
            plan.video_instructor.instructor_id if plan.video_instructor else None
        ),
        "load_id": plan.load_id,
        "seats": plan.seats,
        "candidates": len(plan.balances),
        "lowest_balance": ranked[0][1] if ranked else 0,
    }
