"""
Auto-assign scheduler.

States:
    IDLE -> COUNTDOWN -> COMMITTING -> IDLE
    COUNTDOWN -> IDLE (cancel)

The scheduler is driven from outside: call evaluate_and_maybe_schedule()
whenever the queue or settings change (or on a timer, see run_forever).
When it picks a student it arms a cancellable countdown; when the
countdown expires the shared commit path revalidates everything against
fresh state and either commits or reports why it could not.
"""

import asyncio
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Union

from .algorithm import select_next_student
from .commit import AssignmentService, CommitOutcome, ManualOverrides
from .errors import AssignmentError, RepositoryError
from .repository import QueueRepository, SettingsProvider
from .types import QueueStudent

logger = logging.getLogger(__name__)


class SchedulerState(Enum):
    IDLE = "idle"
    COUNTDOWN = "countdown"
    COMMITTING = "committing"


class CountdownHandle:
    """
    A pending assignment that can be invalidated.

    Once cancelled the handle can never commit: the flag is checked
    before committing and the underlying task is cancelled. A handle that
    has started committing ignores cancel and runs to completion.
    """

    def __init__(self, student: QueueStudent, delay: int):
        self.student = student
        self.delay = delay
        self.remaining = delay
        self._valid = True
        self.committing = False
        self._task: Optional[asyncio.Task] = None
        self._commit: Optional[asyncio.Future] = None

    @property
    def valid(self) -> bool:
        return self._valid

    def cancel(self) -> bool:
        """Invalidate the countdown. Returns False once the commit has started."""
        if self.committing:
            return False
        self._valid = False
        if self._task is not None and not self._task.done():
            self._task.cancel()
        return True

    async def wait(self) -> None:
        """Wait for the countdown (and commit) to finish or be cancelled."""
        if self._task is None:
            return
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        if self._commit is not None and not self._commit.done():
            await self._commit


class AutoAssignScheduler:
    """
    Owns the auto-assign state machine.

    Args:
        service: Shared commit path
        queue: Queue repository (defaults to the service's)
        settings: Settings provider (defaults to the service's)
        enabled: Start enabled
        sleep: Coroutine used to wait one countdown second
        on_tick: Called with the remaining seconds on each countdown tick
    """

    def __init__(
        self,
        service: AssignmentService,
        queue: Optional[QueueRepository] = None,
        settings: Optional[SettingsProvider] = None,
        enabled: bool = True,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        on_tick: Optional[Callable[[QueueStudent, int], None]] = None
    ):
        self.service = service
        self.queue = queue or service.queue
        self.settings = settings or service.settings
        self.enabled = enabled
        self.state = SchedulerState.IDLE
        self.last_outcome: Optional[CommitOutcome] = None
        self.running = False
        self._sleep = sleep
        self._on_tick = on_tick
        self._handle: Optional[CountdownHandle] = None

    @property
    def current_student(self) -> Optional[QueueStudent]:
        return self._handle.student if self._handle else None

    @property
    def countdown(self) -> int:
        """Seconds left on the visible counter (0 when idle)."""
        return self._handle.remaining if self._handle else 0

    @property
    def pending(self) -> Optional[CountdownHandle]:
        return self._handle

    def enable(self) -> None:
        self.enabled = True

    def disable(self) -> None:
        """Stop scheduling new work and drop any pending countdown."""
        self.enabled = False
        self.cancel_pending_assignment()

    async def evaluate_and_maybe_schedule(self) -> Optional[CountdownHandle]:
        """
        Start a countdown if the queue calls for one.

        Idempotent: does nothing while disabled or while a countdown or
        commit is in progress.

        Returns:
            The new countdown handle, or None
        """
        if not self.enabled or self.state != SchedulerState.IDLE:
            return None

        try:
            settings, queue = await asyncio.gather(
                self.settings.get_settings(),
                self.queue.list_queue()
            )
        except RepositoryError as e:
            logger.error(f"Could not read queue or settings: {e}")
            return None

        # Another trigger may have started a countdown while we were reading
        if not self.enabled or self.state != SchedulerState.IDLE:
            return None

        student = select_next_student(queue, settings)
        if student is None:
            return None
        return self._start_countdown(student, settings.delay)

    def cancel_pending_assignment(self) -> bool:
        """
        Cancel the pending countdown.

        The student stays in the queue and nothing is written. A commit
        that has already started cannot be cancelled.

        Returns:
            True if a countdown was cancelled
        """
        handle = self._handle
        if handle is None or self.state != SchedulerState.COUNTDOWN:
            return False

        handle.cancel()
        self._handle = None
        self.state = SchedulerState.IDLE
        self.last_outcome = CommitOutcome(handle.student.student_id, False, cancelled=True)
        logger.info(f"Cancelled auto-assign of {handle.student.name} with {handle.remaining}s left")
        return True

    async def commit_manual_assignment(
        self,
        student_or_fields: Union[QueueStudent, Dict[str, Any]],
        instructor_id: Optional[str] = None,
        load_id: Optional[str] = None,
        overrides: Optional[ManualOverrides] = None
    ) -> CommitOutcome:
        """Manual assignment through the same commit path, no countdown."""
        return await self.service.commit_manual_assignment(
            student_or_fields, instructor_id, load_id, overrides
        )

    async def join(self) -> None:
        """Wait until any pending countdown has committed or been cancelled."""
        if self._handle is not None:
            await self._handle.wait()

    async def shutdown(self) -> None:
        """
        Tear down timers so nothing fires against stale state.

        A pending countdown is cancelled; a commit already in progress is
        awaited so its writes finish together.
        """
        self.running = False
        handle = self._handle
        if handle is None:
            return
        handle.cancel()
        await handle.wait()
        self._handle = None
        self.state = SchedulerState.IDLE

    def _start_countdown(self, student: QueueStudent, delay: int) -> CountdownHandle:
        handle = CountdownHandle(student, delay)
        self._handle = handle
        self.state = SchedulerState.COUNTDOWN
        handle._task = asyncio.create_task(self._run_countdown(handle))
        logger.info(f"Auto-assigning {student.name} in {delay}s")
        return handle

    async def _run_countdown(self, handle: CountdownHandle) -> None:
        try:
            while handle.remaining > 0:
                if self._on_tick:
                    self._on_tick(handle.student, handle.remaining)
                await self._sleep(1)
                handle.remaining -= 1

            if not handle.valid:
                return

            self.state = SchedulerState.COMMITTING
            handle.committing = True
            # Shielded so the two writes are never split by a cancellation
            handle._commit = asyncio.ensure_future(
                self.service.commit_student(handle.student, source="auto")
            )
            outcome = await asyncio.shield(handle._commit)
            self.last_outcome = outcome
            if not outcome.success:
                logger.info(f"{handle.student.name} stays queued for the next cycle")
        except Exception as e:
            logger.error(f"Auto-assign of {handle.student.name} failed: {e}", exc_info=True)
            self.last_outcome = CommitOutcome(
                handle.student.student_id, False,
                error=AssignmentError(str(e), code="UNEXPECTED_ERROR")
            )
        finally:
            if self._handle is handle:
                self._handle = None
                self.state = SchedulerState.IDLE

    async def run_forever(self, poll_interval: float = 5.0) -> None:
        """Main scheduling loop: evaluate the queue every poll_interval seconds."""
        logger.info("Starting auto-assign scheduler...")
        self.running = True

        try:
            while self.running:
                try:
                    await self.evaluate_and_maybe_schedule()
                    await asyncio.sleep(poll_interval)
                except Exception as e:
                    logger.error(f"Error in scheduler loop: {e}", exc_info=True)
                    await asyncio.sleep(poll_interval)
        finally:
            await self.shutdown()


def main() -> None:
    """Run the scheduler against the configured data service."""
    from . import config
    from .repository import HttpStore

    logging.basicConfig(level=logging.INFO, format=config.LOG_FORMAT, datefmt=config.DATE_FORMAT)

    store = HttpStore(config.DATA_SERVICE_URL, config.DATA_SERVICE_TIMEOUT)
    service = AssignmentService.from_store(store, policy=config.engine_policy())
    scheduler = AutoAssignScheduler(service)

    async def _run():
        if not await store.health_check():
            logger.warning(f"Data service at {config.DATA_SERVICE_URL} is not healthy yet")
        await scheduler.run_forever(config.POLL_INTERVAL_SECONDS)

    try:
        asyncio.run(_run())
    except KeyboardInterrupt:
        logger.info("Shutting down...")


if __name__ == "__main__":
    main()
