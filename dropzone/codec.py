"""
JSON conversion for engine types.

Used by the HTTP repository and the Flask API. Decoders raise KeyError for
missing required fields and ValueError for invalid values.
"""

from dataclasses import fields, is_dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from .types import (
    AFFJump,
    AFFLevel,
    Aircraft,
    Assignment,
    AutoAssignSettings,
    DaysOff,
    DeleteReason,
    FunJumper,
    Instructor,
    Jump,
    JumpType,
    Load,
    LoadAssignment,
    LoadStatus,
    Period,
    QueueStudent,
    RotationPolicy,
    TandemJump,
    Team,
    VideoJump,
)


def to_dict(obj: Any) -> Any:
    """Encode dataclasses, enums and datetimes into JSON-ready values."""
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, datetime):
        return obj.isoformat()
    if is_dataclass(obj):
        data = {f.name: to_dict(getattr(obj, f.name)) for f in fields(obj)}
        if isinstance(obj, (TandemJump, AFFJump, VideoJump)):
            data["jump_type"] = obj.jump_type.value
        return data
    if isinstance(obj, (list, tuple)):
        return [to_dict(v) for v in obj]
    if isinstance(obj, dict):
        return {k: to_dict(v) for k, v in obj.items()}
    return obj


def _reason(value: Optional[str]) -> Optional[DeleteReason]:
    return DeleteReason(value) if value else None


def jump_from_dict(data: Dict[str, Any]) -> Jump:
    jump_type = JumpType(data["jump_type"])
    if jump_type == JumpType.TANDEM:
        return TandemJump(
            weight_tax=int(data.get("weight_tax") or 0),
            handcam=bool(data.get("handcam", False)),
            outside_video=bool(data.get("outside_video", False))
        )
    if jump_type == JumpType.AFF:
        return AFFJump(level=AFFLevel(data.get("level", AFFLevel.LOWER.value)))
    return VideoJump()


def instructor_from_dict(data: Dict[str, Any]) -> Instructor:
    return Instructor(
        instructor_id=data["instructor_id"],
        name=data.get("name", ""),
        can_tandem=bool(data.get("can_tandem", False)),
        can_aff=bool(data.get("can_aff", False)),
        can_video=bool(data.get("can_video", False)),
        tandem_weight_limit=data.get("tandem_weight_limit"),
        aff_weight_limit=data.get("aff_weight_limit"),
        video_min_weight=data.get("video_min_weight"),
        video_max_weight=data.get("video_max_weight"),
        body_weight=int(data.get("body_weight") or 0),
        clocked_in=bool(data.get("clocked_in", False)),
        archived=bool(data.get("archived", False)),
        aff_locked=bool(data.get("aff_locked", False)),
        aff_students=list(data.get("aff_students") or []),
        team=Team(data.get("team", Team.BLUE.value)),
        covering_for=data.get("covering_for"),
        aircraft_ids=list(data.get("aircraft_ids") or [])
    )


def student_from_dict(data: Dict[str, Any]) -> QueueStudent:
    return QueueStudent(
        student_id=data["student_id"],
        name=data["name"],
        weight=int(data["weight"]),
        jump=jump_from_dict(data["jump"]),
        timestamp=data["timestamp"],
        is_request=bool(data.get("is_request", False)),
        group_id=data.get("group_id"),
        account_id=data.get("account_id")
    )


def load_assignment_from_dict(data: Dict[str, Any]) -> LoadAssignment:
    return LoadAssignment(
        assignment_id=data["assignment_id"],
        student_id=data["student_id"],
        student_name=data.get("student_name", ""),
        student_weight=int(data.get("student_weight") or 0),
        instructor_id=data.get("instructor_id"),
        jump=jump_from_dict(data["jump"]),
        instructor_name=data.get("instructor_name", ""),
        is_request=bool(data.get("is_request", False)),
        group_id=data.get("group_id"),
        video_instructor_id=data.get("video_instructor_id"),
        video_instructor_name=data.get("video_instructor_name", ""),
        covering_for=data.get("covering_for"),
        original_queue_timestamp=data.get("original_queue_timestamp"),
        is_deleted=bool(data.get("is_deleted", False)),
        deleted_at=data.get("deleted_at"),
        deleted_reason=_reason(data.get("deleted_reason"))
    )


def load_from_dict(data: Dict[str, Any]) -> Load:
    return Load(
        load_id=data["load_id"],
        position=int(data["position"]),
        status=LoadStatus(data.get("status", LoadStatus.BUILDING.value)),
        capacity=data.get("capacity"),
        aircraft_id=data.get("aircraft_id"),
        name=data.get("name", ""),
        assignments=[load_assignment_from_dict(a) for a in data.get("assignments") or []],
        fun_jumpers=[
            FunJumper(user_id=f["user_id"], user_name=f.get("user_name", ""),
                      request_id=f.get("request_id"))
            for f in data.get("fun_jumpers") or []
        ]
    )


def assignment_from_dict(data: Dict[str, Any]) -> Assignment:
    return Assignment(
        assignment_id=data["assignment_id"],
        instructor_id=data["instructor_id"],
        jump=jump_from_dict(data["jump"]),
        timestamp=data["timestamp"],
        instructor_name=data.get("instructor_name", ""),
        student_name=data.get("student_name", ""),
        student_weight=int(data.get("student_weight") or 0),
        is_request=bool(data.get("is_request", False)),
        is_missed_jump=bool(data.get("is_missed_jump", False)),
        covering_for=data.get("covering_for"),
        video_instructor_id=data.get("video_instructor_id"),
        video_instructor_name=data.get("video_instructor_name", ""),
        load_id=data.get("load_id"),
        is_deleted=bool(data.get("is_deleted", False)),
        deleted_at=data.get("deleted_at"),
        deleted_reason=_reason(data.get("deleted_reason"))
    )


def aircraft_from_dict(data: Dict[str, Any]) -> Aircraft:
    return Aircraft(
        aircraft_id=data["aircraft_id"],
        name=data.get("name", ""),
        capacity=int(data["capacity"]),
        is_active=bool(data.get("is_active", True))
    )


def period_from_dict(data: Dict[str, Any]) -> Period:
    return Period(
        period_id=data["period_id"],
        name=data.get("name", ""),
        start=datetime.fromisoformat(data["start"].replace("Z", "+00:00")),
        end=datetime.fromisoformat(data["end"].replace("Z", "+00:00")),
        is_active=bool(data.get("is_active", True))
    )


def settings_from_dict(data: Dict[str, Any]) -> AutoAssignSettings:
    defaults = AutoAssignSettings()
    return AutoAssignSettings(
        delay=int(data.get("delay", defaults.delay)),
        skip_requests=bool(data.get("skip_requests", defaults.skip_requests)),
        batch_mode=bool(data.get("batch_mode", defaults.batch_mode)),
        batch_size=int(data.get("batch_size", defaults.batch_size))
    )


def rotation_from_dict(data: Dict[str, Any]) -> RotationPolicy:
    defaults = RotationPolicy()
    return RotationPolicy(
        team_off=Team(data.get("team_off", defaults.team_off.value)),
        days_off=DaysOff(data.get("days_off", defaults.days_off.value)),
        multiplier=float(data.get("multiplier", defaults.multiplier))
    )
