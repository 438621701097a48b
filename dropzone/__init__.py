"""
Drop Zone Rotation Engine

Fairness-aware assignment of queued skydiving students to qualified
instructors and aircraft loads, immediately or after a cancellable
countdown.
"""

__version__ = '0.1.0'

from .types import (
    AFFJump,
    AFFLevel,
    Aircraft,
    Assignment,
    AutoAssignSettings,
    DaysOff,
    DeleteReason,
    EnginePolicy,
    FunJumper,
    Instructor,
    JumpType,
    Load,
    LoadAssignment,
    LoadPolicy,
    LoadStatus,
    Period,
    QueueStudent,
    RotationPolicy,
    Snapshot,
    TandemJump,
    Team,
    VideoJump,
)

from .errors import (
    AssignmentError,
    NoAvailableLoad,
    NoQualifiedInstructor,
    RepositoryError,
    StudentNotQueued,
    WriteFailure,
)

from .balance import calculate_balance, calculate_balances, calculate_total_earnings, current_period
from .eligibility import eligible, eligible_video
from .capacity import available_slots, has_capacity, seat_cost, select_load

from .algorithm import (
    AssignmentPlan,
    plan_assignment,
    rank_instructors,
    select_next_student,
)

from .commit import AssignmentService, CommitOutcome, ManualOverrides
from .repository import HttpStore, InMemoryStore, LoggingNotificationSink
from .scheduler import AutoAssignScheduler, CountdownHandle, SchedulerState
from .server import create_app, run_server

__all__ = [
    'AFFJump',
    'AFFLevel',
    'Aircraft',
    'Assignment',
    'AutoAssignSettings',
    'DaysOff',
    'DeleteReason',
    'EnginePolicy',
    'FunJumper',
    'Instructor',
    'JumpType',
    'Load',
    'LoadAssignment',
    'LoadPolicy',
    'LoadStatus',
    'Period',
    'QueueStudent',
    'RotationPolicy',
    'Snapshot',
    'TandemJump',
    'Team',
    'VideoJump',
    'AssignmentError',
    'NoAvailableLoad',
    'NoQualifiedInstructor',
    'RepositoryError',
    'StudentNotQueued',
    'WriteFailure',
    'calculate_balance',
    'calculate_balances',
    'calculate_total_earnings',
    'current_period',
    'eligible',
    'eligible_video',
    'available_slots',
    'has_capacity',
    'seat_cost',
    'select_load',
    'AssignmentPlan',
    'plan_assignment',
    'rank_instructors',
    'select_next_student',
    'AssignmentService',
    'CommitOutcome',
    'ManualOverrides',
    'HttpStore',
    'InMemoryStore',
    'LoggingNotificationSink',
    'AutoAssignScheduler',
    'CountdownHandle',
    'SchedulerState',
    'create_app',
    'run_server',
]
