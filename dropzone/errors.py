"""
Assignment engine exceptions.

Every failure the engine can recover from is an AssignmentError. They are
raised inside the commit path and caught at the engine's entry points,
which report them instead of letting them escape.
"""

from typing import Any, Dict, Optional


class AssignmentError(Exception):
    """Base exception for assignment failures."""

    def __init__(
        self,
        message: str,
        code: str = "ASSIGNMENT_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }


class NoQualifiedInstructor(AssignmentError):
    """No clocked-in instructor satisfies capability and weight constraints."""

    def __init__(self, student_id: str = None, message: str = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message or f"No qualified instructor for student {student_id}",
            code="NO_QUALIFIED_INSTRUCTOR",
            details=details or {"student_id": student_id}
        )


class NoAvailableLoad(AssignmentError):
    """No open load has enough free seats."""

    def __init__(self, student_id: str = None, message: str = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message or f"No load with room for student {student_id}",
            code="NO_AVAILABLE_LOAD",
            details=details or {"student_id": student_id}
        )


class StudentNotQueued(AssignmentError):
    """The student left the queue before the commit ran."""

    def __init__(self, student_id: str = None):
        super().__init__(
            message=f"Student {student_id} is no longer in the queue",
            code="STUDENT_NOT_QUEUED",
            details={"student_id": student_id}
        )


class WriteFailure(AssignmentError):
    """
    A repository write failed during commit.

    Attributes:
        stage: Which write failed ("load_append", "queue_remove", "record",
            "load_status")
        reconciled: True if the engine left the collections consistent
    """

    def __init__(self, stage: str, reconciled: bool, message: str = None, details: Optional[Dict[str, Any]] = None):
        self.stage = stage
        self.reconciled = reconciled
        error_details = details or {}
        error_details.update({"stage": stage, "reconciled": reconciled})
        super().__init__(
            message=message or f"Write failed during {stage}",
            code="WRITE_FAILURE",
            details=error_details
        )


class RepositoryError(Exception):
    """Raised by repositories when a read or write is rejected or times out."""
