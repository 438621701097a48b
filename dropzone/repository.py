"""
Collaborator contracts and their implementations.

The engine never persists anything itself. It reads and writes the shared
queue, roster, loads and records through these interfaces, which may be
backed by another process and modified concurrently by other operators.

Implementations:
- InMemoryStore: everything in process, used for tests and local runs
- HttpStore: aiohttp client for a REST data service
- LoggingNotificationSink: notifications written to the log
"""

import asyncio
import copy
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional

import aiohttp

from .codec import (
    aircraft_from_dict,
    assignment_from_dict,
    instructor_from_dict,
    load_from_dict,
    period_from_dict,
    rotation_from_dict,
    settings_from_dict,
    student_from_dict,
    to_dict,
)
from .errors import RepositoryError
from .types import (
    Aircraft,
    Assignment,
    AutoAssignSettings,
    Instructor,
    Load,
    Period,
    QueueStudent,
    RotationPolicy,
)

logger = logging.getLogger(__name__)


# ==================== CONTRACTS ====================

class QueueRepository(ABC):
    @abstractmethod
    async def list_queue(self) -> List[QueueStudent]:
        """Live queue in order."""

    @abstractmethod
    async def remove(self, student_id: str) -> None:
        ...

    @abstractmethod
    async def remove_many(self, student_ids: Iterable[str]) -> None:
        ...


class InstructorRepository(ABC):
    @abstractmethod
    async def list_instructors(self) -> List[Instructor]:
        ...


class LoadRepository(ABC):
    @abstractmethod
    async def list_loads(self) -> List[Load]:
        ...

    @abstractmethod
    async def update_load(self, load_id: str, changes: Dict[str, Any]) -> None:
        """Replace the given fields of a load."""


class AssignmentRepository(ABC):
    @abstractmethod
    async def list_assignments(self) -> List[Assignment]:
        ...

    @abstractmethod
    async def create_assignment(self, assignment: Assignment) -> Assignment:
        ...

    @abstractmethod
    async def update_assignment(self, assignment_id: str, changes: Dict[str, Any]) -> None:
        ...


class AircraftRepository(ABC):
    @abstractmethod
    async def list_aircraft(self) -> List[Aircraft]:
        ...


class SettingsProvider(ABC):
    @abstractmethod
    async def get_settings(self) -> AutoAssignSettings:
        ...

    @abstractmethod
    async def get_rotation(self) -> RotationPolicy:
        ...


class PeriodProvider(ABC):
    @abstractmethod
    async def get_active_period(self) -> Period:
        ...


class NotificationSink(ABC):
    """Receives human-readable events. Must not block."""

    @abstractmethod
    def notify(self, level: str, title: str, message: str = "") -> None:
        ...


class LoggingNotificationSink(NotificationSink):
    """Writes notifications to the log."""

    LEVELS = {
        "success": logging.INFO,
        "info": logging.INFO,
        "warning": logging.WARNING,
        "error": logging.ERROR,
    }

    def notify(self, level: str, title: str, message: str = "") -> None:
        logger.log(self.LEVELS.get(level, logging.INFO), f"[{level}] {title} {message}".rstrip())


# ==================== IN MEMORY ====================

class InMemoryStore(
    QueueRepository,
    InstructorRepository,
    LoadRepository,
    AssignmentRepository,
    AircraftRepository,
    SettingsProvider,
    PeriodProvider,
):
    """
    All collaborators in one process.

    Reads return copies, so callers only change state through writes, as
    they would against a remote store.
    """

    def __init__(
        self,
        period: Period,
        queue: Optional[List[QueueStudent]] = None,
        instructors: Optional[List[Instructor]] = None,
        loads: Optional[List[Load]] = None,
        assignments: Optional[List[Assignment]] = None,
        aircraft: Optional[List[Aircraft]] = None,
        settings: Optional[AutoAssignSettings] = None,
        rotation: Optional[RotationPolicy] = None
    ):
        self.period = period
        self.queue = list(queue or [])
        self.instructors = list(instructors or [])
        self.loads = list(loads or [])
        self.assignments = list(assignments or [])
        self.aircraft = list(aircraft or [])
        self.settings = settings or AutoAssignSettings()
        self.rotation = rotation or RotationPolicy()

    async def list_queue(self) -> List[QueueStudent]:
        return copy.deepcopy(self.queue)

    async def remove(self, student_id: str) -> None:
        self.queue = [s for s in self.queue if s.student_id != student_id]

    async def remove_many(self, student_ids: Iterable[str]) -> None:
        ids = set(student_ids)
        self.queue = [s for s in self.queue if s.student_id not in ids]

    async def list_instructors(self) -> List[Instructor]:
        return copy.deepcopy(self.instructors)

    async def list_loads(self) -> List[Load]:
        return copy.deepcopy(self.loads)

    async def update_load(self, load_id: str, changes: Dict[str, Any]) -> None:
        load = self._find(self.loads, "load_id", load_id)
        for name, value in changes.items():
            setattr(load, name, copy.deepcopy(value))

    async def list_assignments(self) -> List[Assignment]:
        return copy.deepcopy(self.assignments)

    async def create_assignment(self, assignment: Assignment) -> Assignment:
        self.assignments.append(copy.deepcopy(assignment))
        return assignment

    async def update_assignment(self, assignment_id: str, changes: Dict[str, Any]) -> None:
        record = self._find(self.assignments, "assignment_id", assignment_id)
        for name, value in changes.items():
            setattr(record, name, copy.deepcopy(value))

    async def list_aircraft(self) -> List[Aircraft]:
        return copy.deepcopy(self.aircraft)

    async def get_settings(self) -> AutoAssignSettings:
        return copy.deepcopy(self.settings)

    async def get_rotation(self) -> RotationPolicy:
        return copy.deepcopy(self.rotation)

    async def get_active_period(self) -> Period:
        return copy.deepcopy(self.period)

    @staticmethod
    def _find(items: list, key: str, value: str):
        for item in items:
            if getattr(item, key) == value:
                return item
        raise RepositoryError(f"{key} {value} not found")


# ==================== HTTP ====================

class HttpStore(
    QueueRepository,
    InstructorRepository,
    LoadRepository,
    AssignmentRepository,
    AircraftRepository,
    SettingsProvider,
    PeriodProvider,
):
    """
    Collaborators backed by a REST data service.

    Every failure (connection error, timeout, non-2xx status, malformed
    body) is raised as RepositoryError so the engine can handle them the
    same way.
    """

    def __init__(self, base_url: str = "http://localhost:9000", timeout: float = 10.0):
        self.base_url = base_url.rstrip("/")
        self.timeout = aiohttp.ClientTimeout(total=timeout)

    async def _request(self, method: str, path: str, payload: Any = None) -> Any:
        url = f"{self.base_url}{path}"
        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.request(method, url, json=payload) as resp:
                    if resp.status >= 400:
                        body = await resp.text()
                        raise RepositoryError(f"{method} {path} failed with {resp.status}: {body}")
                    if resp.status == 204:
                        return None
                    return await resp.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"{method} {url} failed: {e}")
            raise RepositoryError(f"{method} {path} failed: {e}") from e

    @staticmethod
    def _decode(parser, data: Any, path: str):
        """Decode a response body, reporting malformed data as RepositoryError."""
        try:
            return parser(data)
        except (KeyError, ValueError, TypeError, AttributeError) as e:
            logger.error(f"Malformed response from {path}: {e!r}")
            raise RepositoryError(f"Malformed response from {path}: {e!r}") from e

    async def _get_list(self, path: str, parser) -> list:
        data = await self._request("GET", path)
        return self._decode(lambda items: [parser(item) for item in items], data, path)

    async def health_check(self) -> bool:
        """Check if the data service is reachable."""
        try:
            data = await self._request("GET", "/health")
            logger.info(f"Data service health: {data}")
            return True
        except RepositoryError as e:
            logger.error(f"Health check failed: {e}")
        return False

    async def list_queue(self) -> List[QueueStudent]:
        return await self._get_list("/queue", student_from_dict)

    async def remove(self, student_id: str) -> None:
        await self._request("DELETE", f"/queue/{student_id}")

    async def remove_many(self, student_ids: Iterable[str]) -> None:
        await self._request("POST", "/queue/remove", {"student_ids": list(student_ids)})

    async def list_instructors(self) -> List[Instructor]:
        return await self._get_list("/instructors", instructor_from_dict)

    async def list_loads(self) -> List[Load]:
        return await self._get_list("/loads", load_from_dict)

    async def update_load(self, load_id: str, changes: Dict[str, Any]) -> None:
        await self._request("PATCH", f"/loads/{load_id}", to_dict(changes))

    async def list_assignments(self) -> List[Assignment]:
        return await self._get_list("/assignments", assignment_from_dict)

    async def create_assignment(self, assignment: Assignment) -> Assignment:
        data = await self._request("POST", "/assignments", to_dict(assignment))
        return self._decode(assignment_from_dict, data, "/assignments") if data else assignment

    async def update_assignment(self, assignment_id: str, changes: Dict[str, Any]) -> None:
        await self._request("PATCH", f"/assignments/{assignment_id}", to_dict(changes))

    async def list_aircraft(self) -> List[Aircraft]:
        return await self._get_list("/aircraft", aircraft_from_dict)

    async def get_settings(self) -> AutoAssignSettings:
        data = await self._request("GET", "/settings/auto-assign")
        return self._decode(settings_from_dict, data or {}, "/settings/auto-assign")

    async def get_rotation(self) -> RotationPolicy:
        data = await self._request("GET", "/settings/rotation")
        return self._decode(rotation_from_dict, data or {}, "/settings/rotation")

    async def get_active_period(self) -> Period:
        data = await self._request("GET", "/periods/active")
        return self._decode(period_from_dict, data, "/periods/active")
