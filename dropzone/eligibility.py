"""
Instructor eligibility.

Filters the roster down to instructors who may take a given student.
Aircraft qualification is checked during load selection.
"""

from typing import Iterable, List, Optional

from .types import Instructor, JumpType


def _weight_limit(instructor: Instructor, jump_type: JumpType) -> Optional[int]:
    if jump_type == JumpType.TANDEM:
        return instructor.tandem_weight_limit
    if jump_type == JumpType.AFF:
        return instructor.aff_weight_limit
    return None


def _has_capability(instructor: Instructor, jump_type: JumpType) -> bool:
    if jump_type == JumpType.TANDEM:
        return instructor.can_tandem
    if jump_type == JumpType.AFF:
        return instructor.can_aff
    return instructor.can_video


def is_eligible(
    instructor: Instructor,
    jump_type: JumpType,
    student_weight: int,
    student_name: Optional[str] = None
) -> bool:
    """
    Check a single instructor against a student's requirements.

    Args:
        instructor: Instructor to check
        jump_type: Requested discipline
        student_weight: Student weight
        student_name: Used for AFF-locked instructors

    Returns:
        True if the instructor can take the student right now
    """
    if instructor.archived or not instructor.clocked_in:
        return False
    if not _has_capability(instructor, jump_type):
        return False

    limit = _weight_limit(instructor, jump_type)
    if limit and student_weight > limit:
        return False

    # Locked AFF instructors only take their own students
    if jump_type == JumpType.AFF and instructor.aff_locked:
        if student_name is None or student_name not in instructor.aff_students:
            return False

    return True


def eligible(
    instructors: Iterable[Instructor],
    jump_type: JumpType,
    student_weight: int,
    student_name: Optional[str] = None
) -> List[Instructor]:
    """Instructors who can take the student, in their original order."""
    return [
        i for i in instructors
        if is_eligible(i, jump_type, student_weight, student_name)
    ]


def within_video_range(instructor: Instructor, weight: int) -> bool:
    """True if no range is configured or weight is inside [min, max]."""
    if instructor.video_min_weight is not None and weight < instructor.video_min_weight:
        return False
    if instructor.video_max_weight is not None and weight > instructor.video_max_weight:
        return False
    return True


def eligible_video(
    instructors: Iterable[Instructor],
    student_weight: int,
    exclude_ids: Iterable[str] = ()
) -> List[Instructor]:
    """
    Instructors who can fly outside video for a student.

    Args:
        instructors: Roster
        student_weight: Weight checked against the range (with the primary's
            body weight added when EnginePolicy.video_pair_weight is set)
        exclude_ids: Instructors already on the jump (the primary)

    Returns:
        Qualified video instructors in their original order
    """
    excluded = set(exclude_ids)
    return [
        i for i in instructors
        if i.instructor_id not in excluded
        and not i.archived
        and i.clocked_in
        and i.can_video
        and within_video_range(i, student_weight)
    ]


def is_qualified_for_aircraft(instructor: Instructor, aircraft_id: Optional[str]) -> bool:
    """A load without an aircraft, or an unrestricted instructor, always qualifies."""
    if not aircraft_id:
        return True
    if not instructor.aircraft_ids:
        return True
    return aircraft_id in instructor.aircraft_ids
