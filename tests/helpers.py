"""
Builders and fakes shared by the test modules.
"""

from datetime import datetime

from dropzone.errors import RepositoryError
from dropzone.repository import InMemoryStore, NotificationSink
from dropzone.types import (
    Assignment,
    Instructor,
    Load,
    LoadAssignment,
    Period,
    QueueStudent,
    TandemJump,
    Team,
)

# 2024-02-16 is a Friday, outside every off-day window
FRIDAY = "2024-02-16T10:00:00Z"
MONDAY = "2024-02-12T10:00:00Z"
AS_OF_FRIDAY = datetime(2024, 2, 16, 12, 0)


def make_period() -> Period:
    return Period(
        period_id="2024-2-period-1",
        name="Period 1",
        start=datetime(2024, 2, 5),
        end=datetime(2024, 2, 18, 23, 59, 59)
    )


def make_instructor(instructor_id: str, **kwargs) -> Instructor:
    fields = dict(
        name=instructor_id.upper(),
        can_tandem=True,
        can_aff=True,
        clocked_in=True,
        team=Team.RED,
    )
    fields.update(kwargs)
    return Instructor(instructor_id=instructor_id, **fields)


def make_student(student_id: str, jump=None, weight: int = 180,
                 timestamp: str = "2024-02-16T09:00:00Z", **kwargs) -> QueueStudent:
    return QueueStudent(
        student_id=student_id,
        name=kwargs.pop("name", f"Student {student_id}"),
        weight=weight,
        jump=jump or TandemJump(),
        timestamp=timestamp,
        **kwargs
    )


def make_seat(assignment_id: str, jump=None, instructor_id: str = "i1", **kwargs) -> LoadAssignment:
    return LoadAssignment(
        assignment_id=assignment_id,
        student_id=kwargs.pop("student_id", f"s-{assignment_id}"),
        student_name=kwargs.pop("student_name", f"Student {assignment_id}"),
        student_weight=kwargs.pop("student_weight", 180),
        instructor_id=instructor_id,
        jump=jump or TandemJump(),
        **kwargs
    )


def make_load(load_id: str, position: int, **kwargs) -> Load:
    return Load(load_id=load_id, position=position, **kwargs)


def make_record(assignment_id: str, instructor_id: str, jump=None,
                timestamp: str = FRIDAY, **kwargs) -> Assignment:
    return Assignment(
        assignment_id=assignment_id,
        instructor_id=instructor_id,
        jump=jump or TandemJump(),
        timestamp=timestamp,
        **kwargs
    )




class RecordingSink(NotificationSink):
    """Keeps every notification for assertions."""

    def __init__(self):
        self.events = []

    def notify(self, level, title, message=""):
        self.events.append((level, title, message))

    def levels(self):
        return [e[0] for e in self.events]


class FlakyStore(InMemoryStore):
    """
    In-memory store whose writes can be made to fail.

    Attributes:
        load_update_failures: Number of upcoming load updates to reject
        remove_failures: Number of upcoming queue removals to reject
        writes: Log of successful writes as (kind, id)
    """

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.load_update_failures = 0
        self.remove_failures = 0
        self.writes = []

    async def update_load(self, load_id, changes):
        if self.load_update_failures:
            self.load_update_failures -= 1
            raise RepositoryError("load update rejected")
        await super().update_load(load_id, changes)
        self.writes.append(("load", load_id))

    async def remove(self, student_id):
        if self.remove_failures:
            self.remove_failures -= 1
            raise RepositoryError("queue removal timed out")
        await super().remove(student_id)
        self.writes.append(("queue", student_id))
