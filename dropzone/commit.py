"""
The shared commit path.

Automatic and manual assignment both end here, so they revalidate and
write in exactly the same way:

1. Re-read the queue, roster, loads, records and period
2. Plan the assignment against that fresh state
3. Re-read the chosen load and append the seat to it
4. Remove the student from the queue

Steps 3 and 4 are two separate writes. If the queue removal keeps failing
after retries, the appended seat is soft-deleted so the student is never
both seated and still waiting.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from .algorithm import AssignmentPlan, calculate_assignment_metrics, plan_assignment
from .capacity import accepts_work, has_capacity, is_on_load
from .codec import jump_from_dict
from .errors import (
    AssignmentError,
    NoAvailableLoad,
    NoQualifiedInstructor,
    RepositoryError,
    StudentNotQueued,
    WriteFailure,
)
from .repository import (
    AircraftRepository,
    AssignmentRepository,
    InstructorRepository,
    LoadRepository,
    LoggingNotificationSink,
    NotificationSink,
    PeriodProvider,
    QueueRepository,
    SettingsProvider,
)
from .types import (
    Assignment,
    DeleteReason,
    EnginePolicy,
    Load,
    LoadAssignment,
    LoadStatus,
    QueueStudent,
    Snapshot,
)

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _new_id() -> str:
    return uuid.uuid4().hex


@dataclass
class ManualOverrides:
    """
    Operator options for a manual assignment.

    Attributes:
        covering_for: Clocked-out instructor the assigned one works for
        missed_jump: Record a missed jump (no seat, no pay) instead
        video_instructor_id: Force a specific outside video instructor
        is_request: Override the student's request flag
    """
    covering_for: Optional[str] = None
    missed_jump: bool = False
    video_instructor_id: Optional[str] = None
    is_request: Optional[bool] = None


@dataclass
class CommitOutcome:
    """
    Result of an assignment attempt. Failures are reported, not raised.

    Attributes:
        student_id: Student the attempt was for
        success: Whether the assignment was written
        load_id: Load the student was seated on
        seat: The committed load seat
        record: Audit record (missed jumps)
        error: Typed failure
        cancelled: The countdown was cancelled before commit
    """
    student_id: str
    success: bool
    load_id: Optional[str] = None
    seat: Optional[LoadAssignment] = None
    record: Optional[Assignment] = None
    error: Optional[AssignmentError] = None
    cancelled: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "student_id": self.student_id,
            "success": self.success,
            "load_id": self.load_id,
            "assignment_id": (
                self.seat.assignment_id if self.seat
                else self.record.assignment_id if self.record else None
            ),
            "error": self.error.to_dict() if self.error else None,
            "cancelled": self.cancelled,
        }


class AssignmentService:
    """
    Validates and commits assignments against the shared collections.

    Args:
        queue: Queue repository
        instructors: Instructor repository (read only)
        loads: Load repository
        assignments: Completed-record repository
        settings: Settings provider (rotation policy)
        periods: Active period provider
        aircraft: Optional aircraft repository for default capacities
        notifier: Notification sink
        policy: Engine policy
    """

    def __init__(
        self,
        queue: QueueRepository,
        instructors: InstructorRepository,
        loads: LoadRepository,
        assignments: AssignmentRepository,
        settings: SettingsProvider,
        periods: PeriodProvider,
        aircraft: Optional[AircraftRepository] = None,
        notifier: Optional[NotificationSink] = None,
        policy: Optional[EnginePolicy] = None
    ):
        self.queue = queue
        self.instructors = instructors
        self.loads = loads
        self.assignments = assignments
        self.settings = settings
        self.periods = periods
        self.aircraft = aircraft
        self.notifier = notifier or LoggingNotificationSink()
        self.policy = policy or EnginePolicy()

    @classmethod
    def from_store(cls, store, notifier: Optional[NotificationSink] = None,
                   policy: Optional[EnginePolicy] = None) -> "AssignmentService":
        """Build a service whose collaborators all live in one store."""
        return cls(store, store, store, store, store, store, store, notifier, policy)

    async def snapshot(self) -> Snapshot:
        """Read the current state of everything a decision depends on."""
        instructors, loads, records, period, rotation = await asyncio.gather(
            self.instructors.list_instructors(),
            self.loads.list_loads(),
            self.assignments.list_assignments(),
            self.periods.get_active_period(),
            self.settings.get_rotation(),
        )
        aircraft = await self.aircraft.list_aircraft() if self.aircraft else []
        return Snapshot(
            instructors=instructors,
            loads=loads,
            assignments=records,
            period=period,
            rotation=rotation,
            aircraft={a.aircraft_id: a for a in aircraft if a.is_active}
        )

    # ==================== ASSIGNMENT ====================

    async def commit_student(
        self,
        student: QueueStudent,
        instructor_id: Optional[str] = None,
        load_id: Optional[str] = None,
        overrides: Optional[ManualOverrides] = None,
        from_queue: bool = True,
        source: str = "auto"
    ) -> CommitOutcome:
        """
        Revalidate and commit one student.

        Never raises for recoverable failures; they come back in the
        outcome and are sent to the notifier.
        """
        overrides = overrides or ManualOverrides()
        try:
            if from_queue:
                student = await self._current_queue_entry(student.student_id)
            if overrides.is_request is not None:
                student = replace(student, is_request=overrides.is_request)

            snapshot = await self.snapshot()
            if overrides.covering_for is not None:
                self._check_covered_instructor(student, overrides.covering_for, snapshot)

            plan = plan_assignment(
                student,
                snapshot,
                self.policy,
                instructor_id=instructor_id,
                load_id=load_id,
                video_instructor_id=overrides.video_instructor_id
            )
            seat = self._build_seat(plan, overrides.covering_for)
            load = await self._current_load(plan, snapshot)
            await self._write(load, seat, remove_from_queue=from_queue)

        except RepositoryError as e:
            return self._fail(student, AssignmentError(
                f"Could not read current state: {e}", code="READ_FAILURE",
                details={"student_id": student.student_id}
            ), source)
        except AssignmentError as e:
            return self._fail(student, e, source)

        metrics = calculate_assignment_metrics(plan)
        logger.info(f"Assigned ({source}) {student.name}: {metrics}")
        self.notifier.notify(
            "success",
            f"Assigned {student.name}",
            f"to {plan.instructor.name} on load {plan.load_id}"
        )
        return CommitOutcome(student.student_id, True, load_id=plan.load_id, seat=seat)

    async def commit_manual_assignment(
        self,
        student_or_fields: Union[QueueStudent, Dict[str, Any]],
        instructor_id: Optional[str] = None,
        load_id: Optional[str] = None,
        overrides: Optional[ManualOverrides] = None
    ) -> CommitOutcome:
        """
        Operator-driven assignment, with no countdown.

        Accepts a queued student or the fields of a walk-in student (who is
        not in the queue, so nothing is removed from it).

        Args:
            student_or_fields: QueueStudent or dict of student fields
            instructor_id: Instructor to assign (None = lowest balance)
            load_id: Load to use (None = first with room)
            overrides: Covering, missed jump and video options

        Returns:
            Commit outcome
        """
        overrides = overrides or ManualOverrides()
        from_queue = isinstance(student_or_fields, QueueStudent)
        try:
            student = student_or_fields if from_queue else self._walk_in(student_or_fields)
        except (KeyError, ValueError, TypeError) as e:
            error = AssignmentError(f"Invalid student data: {e}", code="INVALID_STUDENT")
            self.notifier.notify("error", "Manual assignment failed", error.message)
            return CommitOutcome(str(student_or_fields.get("student_id", "")), False, error=error)

        if overrides.missed_jump:
            return await self.record_missed_jump(student, instructor_id, overrides)

        return await self.commit_student(
            student, instructor_id, load_id, overrides, from_queue=from_queue, source="manual"
        )

    async def record_missed_jump(
        self,
        student: QueueStudent,
        instructor_id: Optional[str],
        overrides: Optional[ManualOverrides] = None
    ) -> CommitOutcome:
        """
        Write an audit record of a missed jump.

        The record pays nothing, takes no seat and leaves the queue alone.
        """
        overrides = overrides or ManualOverrides()
        if not instructor_id:
            error = NoQualifiedInstructor(
                student.student_id, message="A missed jump must name an instructor"
            )
            return self._fail(student, error, "manual")

        try:
            roster = {i.instructor_id: i for i in await self.instructors.list_instructors()}
            instructor = roster.get(instructor_id)
            if instructor is None:
                raise NoQualifiedInstructor(
                    student.student_id, message=f"Instructor {instructor_id} not found"
                )
            record = Assignment(
                assignment_id=_new_id(),
                instructor_id=instructor_id,
                instructor_name=instructor.name,
                jump=student.jump,
                timestamp=_now(),
                student_name=student.name,
                student_weight=student.weight,
                is_request=student.is_request,
                is_missed_jump=True,
                covering_for=overrides.covering_for
            )
            try:
                await self.assignments.create_assignment(record)
            except RepositoryError as e:
                raise WriteFailure("record", reconciled=True, message=f"Could not save missed jump: {e}") from e
        except RepositoryError as e:
            return self._fail(student, AssignmentError(
                f"Could not read current state: {e}", code="READ_FAILURE"
            ), "manual")
        except AssignmentError as e:
            return self._fail(student, e, "manual")

        logger.info(f"Recorded missed jump for {instructor.name} ({student.name})")
        self.notifier.notify("info", "Missed jump recorded", f"{instructor.name} - {student.name}")
        return CommitOutcome(student.student_id, True, record=record)

    # ==================== LOAD LIFECYCLE ====================

    async def soft_delete_load_assignment(
        self,
        load_id: str,
        assignment_id: str,
        reason: DeleteReason = DeleteReason.MANUAL_DELETE
    ) -> LoadAssignment:
        """Mark a seat deleted. The seat stays on the load for audit and frees its capacity."""
        load = await self._load(load_id)
        updated = []
        target = None
        for seat in load.assignments:
            if seat.assignment_id == assignment_id and not seat.is_deleted:
                seat = replace(seat, is_deleted=True, deleted_at=_now(), deleted_reason=reason)
                target = seat
            updated.append(seat)
        if target is None:
            raise AssignmentError(
                f"Assignment {assignment_id} not found on load {load_id}",
                code="ASSIGNMENT_NOT_FOUND",
                details={"load_id": load_id, "assignment_id": assignment_id}
            )
        await self.loads.update_load(load_id, {"assignments": updated})
        logger.info(f"Soft-deleted seat {assignment_id} on load {load_id} ({reason.value})")
        return target

    async def soft_delete_assignment(
        self,
        assignment_id: str,
        reason: DeleteReason = DeleteReason.MANUAL_DELETE
    ) -> None:
        await self.assignments.update_assignment(assignment_id, {
            "is_deleted": True,
            "deleted_at": _now(),
            "deleted_reason": reason,
        })
        logger.info(f"Soft-deleted assignment {assignment_id} ({reason.value})")

    async def complete_load(self, load_id: str) -> List[Assignment]:
        """
        Turn a departed load's seats into completed assignment records.

        Returns:
            The records created

        Raises:
            WriteFailure: A record or the status could not be written. Records
                already written are soft-deleted and the load stays departed.
        """
        load = await self._load(load_id)
        if load.status != LoadStatus.DEPARTED:
            raise AssignmentError(
                f"Load {load_id} must be departed to complete, it is {load.status.value}",
                code="INVALID_LOAD_STATUS",
                details={"load_id": load_id, "status": load.status.value}
            )

        created = []
        timestamp = _now()
        for seat in load.live_assignments():
            if not seat.instructor_id:
                continue
            record = Assignment(
                assignment_id=_new_id(),
                instructor_id=seat.instructor_id,
                instructor_name=seat.instructor_name,
                jump=seat.jump,
                timestamp=timestamp,
                student_name=seat.student_name,
                student_weight=seat.student_weight,
                is_request=seat.is_request,
                covering_for=seat.covering_for,
                video_instructor_id=seat.video_instructor_id,
                video_instructor_name=seat.video_instructor_name,
                load_id=load_id
            )
            try:
                await self.assignments.create_assignment(record)
            except RepositoryError as e:
                logger.error(f"Failed to create record for {seat.student_name} on load {load_id}: {e}")
                reconciled = await self._discard_records(created)
                raise WriteFailure(
                    "record", reconciled=reconciled,
                    message=f"Could not complete load {load_id}: {e}",
                    details={"load_id": load_id}
                ) from e
            created.append(record)

        try:
            await self.loads.update_load(load_id, {"status": LoadStatus.COMPLETED})
        except RepositoryError as e:
            reconciled = await self._discard_records(created)
            raise WriteFailure(
                "load_status", reconciled=reconciled,
                message=f"Could not mark load {load_id} completed: {e}",
                details={"load_id": load_id}
            ) from e
        logger.info(f"Completed load {load_id} with {len(created)} records")
        return created

    async def revert_load(self, load_id: str) -> int:
        """
        Undo a load completion: soft-delete its records and mark it departed.

        Returns:
            Number of records soft-deleted
        """
        load = await self._load(load_id)
        if load.status != LoadStatus.COMPLETED:
            raise AssignmentError(
                f"Load {load_id} is not completed",
                code="INVALID_LOAD_STATUS",
                details={"load_id": load_id, "status": load.status.value}
            )

        records = [
            r for r in await self.assignments.list_assignments()
            if r.load_id == load_id and not r.is_deleted
        ]
        for record in records:
            await self.soft_delete_assignment(record.assignment_id, DeleteReason.LOAD_REVERTED)
        await self.loads.update_load(load_id, {"status": LoadStatus.DEPARTED})
        return len(records)

    # ==================== INTERNALS ====================

    async def _current_queue_entry(self, student_id: str) -> QueueStudent:
        for entry in await self.queue.list_queue():
            if entry.student_id == student_id:
                return entry
        raise StudentNotQueued(student_id)

    async def _current_load(self, plan: AssignmentPlan, snapshot: Snapshot) -> Load:
        """Re-read the chosen load right before the append, which replaces its seat list."""
        load = await self._load(plan.load_id)
        crew = [plan.instructor] + ([plan.video_instructor] if plan.video_instructor else [])
        fits = (
            accepts_work(load, self.policy.load)
            and has_capacity(load, plan.seats, snapshot.aircraft, self.policy.load.default_capacity)
            and not any(is_on_load(load, i.instructor_id) for i in crew)
        )
        if not fits:
            sid = plan.student.student_id
            raise NoAvailableLoad(
                sid,
                message=f"Load {load.load_id} changed before {plan.student.name} could be seated",
                details={"student_id": sid, "load_id": load.load_id}
            )
        return load

    async def _discard_records(self, records: List[Assignment]) -> bool:
        """Soft-delete records from a failed completion so the load can be completed again."""
        reconciled = True
        for record in records:
            try:
                await self.soft_delete_assignment(record.assignment_id, DeleteReason.COMMIT_ABORTED)
            except RepositoryError:
                logger.error(f"Record {record.assignment_id} left behind by a failed completion", exc_info=True)
                reconciled = False
        return reconciled

    async def _load(self, load_id: str) -> Load:
        for load in await self.loads.list_loads():
            if load.load_id == load_id:
                return load
        raise AssignmentError(f"Load {load_id} not found", code="LOAD_NOT_FOUND",
                              details={"load_id": load_id})

    @staticmethod
    def _check_covered_instructor(student: QueueStudent, covered_id: str, snapshot: Snapshot) -> None:
        covered = next((i for i in snapshot.instructors if i.instructor_id == covered_id), None)
        if covered is None:
            raise NoQualifiedInstructor(
                student.student_id,
                message=f"Covered instructor {covered_id} not found",
                details={"student_id": student.student_id, "covering_for": covered_id}
            )
        if covered.clocked_in:
            logger.warning(f"Covering for {covered.name}, who is still clocked in")

    @staticmethod
    def _walk_in(fields: Dict[str, Any]) -> QueueStudent:
        return QueueStudent(
            student_id=fields.get("student_id") or _new_id(),
            name=fields["name"],
            weight=int(fields["weight"]),
            jump=jump_from_dict(fields["jump"]),
            timestamp=fields.get("timestamp") or _now(),
            is_request=bool(fields.get("is_request", False)),
            group_id=fields.get("group_id")
        )

    @staticmethod
    def _build_seat(plan: AssignmentPlan, covering_for: Optional[str]) -> LoadAssignment:
        student = plan.student
        video = plan.video_instructor
        return LoadAssignment(
            assignment_id=_new_id(),
            student_id=student.student_id,
            student_name=student.name,
            student_weight=student.weight,
            instructor_id=plan.instructor.instructor_id,
            instructor_name=plan.instructor.name,
            jump=student.jump,
            is_request=student.is_request,
            group_id=student.group_id,
            video_instructor_id=video.instructor_id if video else None,
            video_instructor_name=video.name if video else "",
            covering_for=covering_for,
            original_queue_timestamp=student.timestamp
        )

    async def _write(self, load: Load, seat: LoadAssignment, remove_from_queue: bool) -> None:
        try:
            await self.loads.update_load(load.load_id, {"assignments": load.assignments + [seat]})
        except RepositoryError as e:
            raise WriteFailure(
                "load_append", reconciled=True,
                message=f"Could not add {seat.student_name} to load {load.load_id}: {e}"
            ) from e

        if not remove_from_queue:
            return

        attempts = 1 + self.policy.write_retries
        for attempt in range(1, attempts + 1):
            try:
                await self.queue.remove(seat.student_id)
                return
            except RepositoryError as e:
                logger.warning(f"Queue removal for {seat.student_id} failed (attempt {attempt}/{attempts}): {e}")

        try:
            await self.soft_delete_load_assignment(load.load_id, seat.assignment_id,
                                                   DeleteReason.COMMIT_ABORTED)
        except (RepositoryError, AssignmentError) as e:
            logger.error(
                f"Seat {seat.assignment_id} on load {load.load_id} is orphaned: "
                f"student {seat.student_id} is still queued", exc_info=True
            )
            raise WriteFailure(
                "queue_remove", reconciled=False,
                message=f"Could not remove {seat.student_name} from the queue or release the seat"
            ) from e
        raise WriteFailure(
            "queue_remove", reconciled=True,
            message=f"Could not remove {seat.student_name} from the queue; seat released"
        )

    def _fail(self, student: QueueStudent, error: AssignmentError, source: str) -> CommitOutcome:
        level = "error" if isinstance(error, WriteFailure) else "warning"
        logger.warning(f"{source.capitalize()} assignment of {student.name} failed: {error.message}")
        self.notifier.notify(level, f"Could not assign {student.name}", error.message)
        return CommitOutcome(student.student_id, False, error=error)
