"""
Data models for the drop zone rotation engine.

This module defines the core data structures used in assignment:
- Instructors available for work
- Students waiting in the queue, with a tagged jump variant
- Loads (aircraft flights) and the seats committed on them
- Completed assignment records and the active period
- Policy and settings objects that tune the engine
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Union
from enum import Enum


class JumpType(Enum):
    """Jump discipline."""
    TANDEM = "tandem"
    AFF = "aff"
    VIDEO = "video"


class LoadStatus(Enum):
    """Lifecycle of a load."""
    BUILDING = "building"
    READY = "ready"
    DEPARTED = "departed"
    COMPLETED = "completed"


class AFFLevel(Enum):
    """AFF levels 1-4 are lower, 5-7 upper."""
    LOWER = "lower"
    UPPER = "upper"


class Team(Enum):
    RED = "red"
    BLUE = "blue"
    GOLD = "gold"


class DaysOff(Enum):
    """Which pair of weekdays the rotating team has off."""
    MON_TUE = "mon-tue"
    WED_THU = "wed-thu"


class DeleteReason(Enum):
    LOAD_REVERTED = "load_reverted"
    MANUAL_DELETE = "manual_delete"
    COMMIT_ABORTED = "commit_aborted"


class PayRates:
    """Pay rates used for rotation balance (not always equal to paychecks)."""
    TANDEM_BASE = 40
    TANDEM_WEIGHT_TAX = 20      # per weight tax tier
    TANDEM_HANDCAM = 30
    AFF_LOWER = 55
    AFF_UPPER = 45
    VIDEO_INSTRUCTOR = 45


DEFAULT_CAPACITY = 18
SEATS_PER_TANDEM = 2
SEATS_PER_AFF = 2
SEATS_PER_VIDEO = 1
SEATS_PER_FUN_JUMPER = 1


# ==================== JUMP VARIANTS ====================

@dataclass
class TandemJump:
    """
    Tandem jump details.

    Attributes:
        weight_tax: Number of weight tax tiers applied to the student
        handcam: Whether the instructor flies a handcam
        outside_video: Whether an outside video instructor is requested
    """
    weight_tax: int = 0
    handcam: bool = False
    outside_video: bool = False

    def __post_init__(self):
        if self.weight_tax < 0:
            raise ValueError(f"Weight tax cannot be negative, got {self.weight_tax}")

    @property
    def jump_type(self) -> JumpType:
        return JumpType.TANDEM


@dataclass
class AFFJump:
    """
    AFF jump details.

    Attributes:
        level: Lower (1-4) or upper (5-7) AFF level
    """
    level: AFFLevel = AFFLevel.LOWER

    @property
    def jump_type(self) -> JumpType:
        return JumpType.AFF


@dataclass
class VideoJump:
    """A video-only jump, recorded for the video instructor."""

    @property
    def jump_type(self) -> JumpType:
        return JumpType.VIDEO


Jump = Union[TandemJump, AFFJump, VideoJump]


# ==================== PEOPLE ====================

@dataclass
class Instructor:
    """
    An instructor on the roster.

    Attributes:
        instructor_id: Unique identifier
        name: Display name
        can_tandem / can_aff / can_video: Capability flags
        tandem_weight_limit / aff_weight_limit: Max student weight (None = no limit)
        video_min_weight / video_max_weight: Optional weight range for video work
        body_weight: Instructor's own weight
        clocked_in: Whether the instructor is currently working
        archived: Archived instructors are never assigned
        aff_locked: Only accepts AFF students listed in aff_students
        aff_students: Names of the instructor's own AFF students
        team: Rotation team
        covering_for: Id of the instructor this one is covering for
        aircraft_ids: Aircraft the instructor may fly (empty = all)
    """
    instructor_id: str
    name: str
    can_tandem: bool = False
    can_aff: bool = False
    can_video: bool = False
    tandem_weight_limit: Optional[int] = None
    aff_weight_limit: Optional[int] = None
    video_min_weight: Optional[int] = None
    video_max_weight: Optional[int] = None
    body_weight: int = 0
    clocked_in: bool = False
    archived: bool = False
    aff_locked: bool = False
    aff_students: List[str] = field(default_factory=list)
    team: Team = Team.BLUE
    covering_for: Optional[str] = None
    aircraft_ids: List[str] = field(default_factory=list)


@dataclass
class QueueStudent:
    """
    A student waiting for an instructor and a seat.

    Attributes:
        student_id: Queue entry identifier
        name: Student name
        weight: Student weight
        jump: Tandem or AFF details
        timestamp: ISO 8601 time the student joined the queue
        is_request: Request jumps can be skipped by auto-assign
        group_id: Optional group membership
        account_id: Optional student account reference
    """
    student_id: str
    name: str
    weight: int
    jump: Jump
    timestamp: str
    is_request: bool = False
    group_id: Optional[str] = None
    account_id: Optional[str] = None

    def __post_init__(self):
        if self.weight <= 0:
            raise ValueError(f"Student weight must be positive, got {self.weight}")
        if isinstance(self.jump, VideoJump):
            raise ValueError("Queue students must request a tandem or AFF jump")

    @property
    def jump_type(self) -> JumpType:
        return self.jump.jump_type


# ==================== LOADS ====================

@dataclass
class LoadAssignment:
    """
    A student seated on a load with an instructor.

    Attributes:
        assignment_id: Unique identifier
        student_id: Queue entry the seat was created from
        student_name: Student name
        student_weight: Student weight
        instructor_id: Primary instructor
        instructor_name: Primary instructor name
        jump: Jump details (drives seat cost and pay)
        is_request: Request jumps do not count toward rotation
        group_id: Optional group membership
        video_instructor_id: Outside video instructor, if any
        video_instructor_name: Outside video instructor name
        covering_for: Absent instructor the primary is covering for
        original_queue_timestamp: When the student first joined the queue
        is_deleted / deleted_at / deleted_reason: Soft-delete marker
    """
    assignment_id: str
    student_id: str
    student_name: str
    student_weight: int
    instructor_id: Optional[str]
    jump: Jump
    instructor_name: str = ""
    is_request: bool = False
    group_id: Optional[str] = None
    video_instructor_id: Optional[str] = None
    video_instructor_name: str = ""
    covering_for: Optional[str] = None
    original_queue_timestamp: Optional[str] = None
    is_deleted: bool = False
    deleted_at: Optional[str] = None
    deleted_reason: Optional[DeleteReason] = None


@dataclass
class FunJumper:
    """A licensed jumper taking one seat on a load."""
    user_id: str
    user_name: str
    request_id: Optional[str] = None


@dataclass
class Aircraft:
    aircraft_id: str
    name: str
    capacity: int = DEFAULT_CAPACITY
    is_active: bool = True

    def __post_init__(self):
        if self.capacity <= 0:
            raise ValueError(f"Aircraft capacity must be positive, got {self.capacity}")


@dataclass
class Load:
    """
    An aircraft flight being filled.

    Attributes:
        load_id: Unique identifier
        position: Ordering position (first opened, first filled)
        status: Load lifecycle status
        capacity: Explicit capacity override (None = aircraft default)
        aircraft_id: Aircraft flying this load
        assignments: Committed student seats
        fun_jumpers: Fun jumper seats
    """
    load_id: str
    position: int
    status: LoadStatus = LoadStatus.BUILDING
    capacity: Optional[int] = None
    aircraft_id: Optional[str] = None
    name: str = ""
    assignments: List[LoadAssignment] = field(default_factory=list)
    fun_jumpers: List[FunJumper] = field(default_factory=list)

    def live_assignments(self) -> List[LoadAssignment]:
        """Assignments that have not been soft-deleted."""
        return [a for a in self.assignments if not a.is_deleted]


# ==================== RECORDS ====================

@dataclass
class Assignment:
    """
    A completed (or missed) jump, kept for audit and balance.

    Attributes:
        assignment_id: Unique identifier
        instructor_id: Instructor credited with the jump
        jump: Jump details
        timestamp: ISO 8601 time of the jump
        is_missed_jump: Audit-only record with no pay
        load_id: Load the record was created from
    """
    assignment_id: str
    instructor_id: str
    jump: Jump
    timestamp: str
    instructor_name: str = ""
    student_name: str = ""
    student_weight: int = 0
    is_request: bool = False
    is_missed_jump: bool = False
    covering_for: Optional[str] = None
    video_instructor_id: Optional[str] = None
    video_instructor_name: str = ""
    load_id: Optional[str] = None
    is_deleted: bool = False
    deleted_at: Optional[str] = None
    deleted_reason: Optional[DeleteReason] = None


@dataclass
class Period:
    """
    A rotation window. Balances only count work inside the active period.
    """
    period_id: str
    name: str
    start: datetime
    end: datetime
    is_active: bool = True

    def __post_init__(self):
        if self.end < self.start:
            raise ValueError(f"Period end {self.end} is before start {self.start}")

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment <= self.end


# ==================== POLICY ====================

@dataclass
class AutoAssignSettings:
    """
    Operator-controlled auto-assign settings.

    Attributes:
        delay: Countdown length in seconds
        skip_requests: Leave request-flagged students for manual assignment
        batch_mode: Wait for batch_size eligible students before starting
        batch_size: Minimum queued students in batch mode
    """
    delay: int = 5
    skip_requests: bool = True
    batch_mode: bool = False
    batch_size: int = 3

    def __post_init__(self):
        if self.delay < 0:
            raise ValueError(f"Delay cannot be negative, got {self.delay}")
        if self.batch_size < 1:
            raise ValueError(f"Batch size must be at least 1, got {self.batch_size}")


@dataclass
class RotationPolicy:
    """
    Team rotation modifier applied to balance.

    Attributes:
        team_off: Team whose off days are currently due
        days_off: Weekdays the team has off
        multiplier: Balance multiplier for work done on an off day
    """
    team_off: Team = Team.BLUE
    days_off: DaysOff = DaysOff.MON_TUE
    multiplier: float = 1.2


@dataclass
class LoadPolicy:
    """
    Attributes:
        default_capacity: Capacity when neither load nor aircraft sets one
        allow_ready_loads: Whether ready loads still accept new work
    """
    default_capacity: int = DEFAULT_CAPACITY
    allow_ready_loads: bool = False


@dataclass
class EnginePolicy:
    """
    Policy configuration for the assignment engine.

    Attributes:
        load: Load selection policy
        write_retries: Extra attempts for the queue removal write
        video_pair_weight: Check video ranges against primary body weight plus
            student weight instead of the student alone
    """
    load: LoadPolicy = field(default_factory=LoadPolicy)
    write_retries: int = 2
    video_pair_weight: bool = False


@dataclass
class Snapshot:
    """Current view of the shared collections, read just before a decision."""
    instructors: List[Instructor]
    loads: List[Load]
    assignments: List[Assignment]
    period: Period
    rotation: RotationPolicy = field(default_factory=RotationPolicy)
    aircraft: Dict[str, Aircraft] = field(default_factory=dict)
