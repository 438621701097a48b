"""
Balance calculation for rotation fairness.

An instructor's balance is what they have earned (or are committed to
earn) inside the active period. The instructor with the lowest balance is
the one who gets the next piece of work.

Everything here is pure: the functions are safe to call repeatedly from a
sort key.
"""

from datetime import date, datetime, timedelta, timezone
from typing import Dict, List, Optional

from .types import (
    AFFJump,
    AFFLevel,
    Assignment,
    DaysOff,
    Instructor,
    Jump,
    Load,
    LoadStatus,
    PayRates,
    Period,
    RotationPolicy,
    TandemJump,
    Team,
    VideoJump,
)


def parse_timestamp(value: str) -> datetime:
    """
    Parse an ISO 8601 timestamp into a naive UTC datetime.

    Args:
        value: Timestamp such as "2024-02-13T10:00:00Z"

    Returns:
        Naive datetime in UTC
    """
    moment = datetime.fromisoformat(value.replace("Z", "+00:00"))
    return _naive(moment)


def _naive(moment: datetime) -> datetime:
    if moment.tzinfo is not None:
        return moment.astimezone(timezone.utc).replace(tzinfo=None)
    return moment


# ==================== PAY ====================

def jump_pay(jump: Jump) -> int:
    """
    Base pay for the primary instructor of a jump, without modifiers.

    Outside video is not included; it is credited to the video instructor.
    """
    if isinstance(jump, TandemJump):
        pay = PayRates.TANDEM_BASE
        pay += jump.weight_tax * PayRates.TANDEM_WEIGHT_TAX
        if jump.handcam:
            pay += PayRates.TANDEM_HANDCAM
        return pay
    if isinstance(jump, AFFJump):
        return PayRates.AFF_LOWER if jump.level == AFFLevel.LOWER else PayRates.AFF_UPPER
    if isinstance(jump, VideoJump):
        return PayRates.VIDEO_INSTRUCTOR
    raise TypeError(f"Unknown jump variant: {jump!r}")


def assignment_pay(assignment: Assignment) -> int:
    """Pay for a completed record. Missed jumps pay nothing."""
    if assignment.is_missed_jump:
        return 0
    return jump_pay(assignment.jump)


def is_working_off_day(instructor: Instructor, day: datetime, rotation: RotationPolicy) -> bool:
    """
    Check if the instructor is working on one of their team's off days.

    Gold team has no off days. Only the team named in the rotation is off.
    """
    if instructor.team == Team.GOLD:
        return False
    if instructor.team != rotation.team_off:
        return False

    weekday = day.weekday()  # Monday == 0
    if rotation.days_off == DaysOff.MON_TUE:
        return weekday in (0, 1)
    return weekday in (2, 3)


def _modified(pay: int, instructor: Instructor, day: datetime, rotation: RotationPolicy) -> float:
    if is_working_off_day(instructor, day, rotation):
        return round(pay * rotation.multiplier)
    return pay


# ==================== BALANCE ====================

def calculate_balance(
    instructor_id: str,
    assignments: List[Assignment],
    instructors: List[Instructor],
    period: Period,
    loads: Optional[List[Load]] = None,
    rotation: Optional[RotationPolicy] = None,
    as_of: Optional[datetime] = None
) -> float:
    """
    Calculate an instructor's rotation balance.

    Counts completed records inside the period plus pending seats on
    loads that have not completed yet. Request jumps, missed jumps and
    soft-deleted records never count. Outside video pays the video
    instructor, and covering work pays whoever actually jumped.

    Args:
        instructor_id: Instructor to calculate for
        assignments: All completed assignment records
        instructors: All instructors (needed for the team modifier)
        period: Active period
        loads: All loads, for pending work
        rotation: Team rotation modifier policy
        as_of: Date used for pending work (defaults to now)

    Returns:
        Balance, lower means next in line
    """
    instructor = next((i for i in instructors if i.instructor_id == instructor_id), None)
    if instructor is None:
        return 0

    rotation = rotation or RotationPolicy()
    start, end = _naive(period.start), _naive(period.end)
    total = 0

    for record in assignments:
        if record.is_deleted or record.is_request or record.is_missed_jump:
            continue
        when = parse_timestamp(record.timestamp)
        if when < start or when > end:
            continue

        if record.instructor_id == instructor_id:
            total += _modified(assignment_pay(record), instructor, when, rotation)
        if record.video_instructor_id == instructor_id:
            total += _modified(PayRates.VIDEO_INSTRUCTOR, instructor, when, rotation)

    today = as_of or datetime.now()
    for load in loads or []:
        if load.status == LoadStatus.COMPLETED:
            continue
        for seat in load.live_assignments():
            if seat.is_request:
                continue
            if seat.instructor_id == instructor_id:
                total += _modified(jump_pay(seat.jump), instructor, today, rotation)
            if seat.video_instructor_id == instructor_id:
                total += _modified(PayRates.VIDEO_INSTRUCTOR, instructor, today, rotation)

    return total


def calculate_balances(
    instructors: List[Instructor],
    assignments: List[Assignment],
    period: Period,
    loads: Optional[List[Load]] = None,
    rotation: Optional[RotationPolicy] = None,
    as_of: Optional[datetime] = None
) -> Dict[str, float]:
    """Balance for every instructor, keyed by id."""
    return {
        i.instructor_id: calculate_balance(
            i.instructor_id, assignments, instructors, period, loads, rotation, as_of
        )
        for i in instructors
    }


def calculate_total_earnings(
    instructor_id: str,
    assignments: List[Assignment],
    period: Period
) -> int:
    """
    Actual earnings for payroll.

    Unlike balance, request jumps are paid and no off-day modifier
    applies. Missed and soft-deleted records are excluded.
    """
    start, end = _naive(period.start), _naive(period.end)
    total = 0
    for record in assignments:
        if record.is_deleted or record.is_missed_jump:
            continue
        when = parse_timestamp(record.timestamp)
        if when < start or when > end:
            continue
        if record.instructor_id == instructor_id:
            total += assignment_pay(record)
        if record.video_instructor_id == instructor_id:
            total += PayRates.VIDEO_INSTRUCTOR
    return total


# ==================== PERIODS ====================

def _first_monday(year: int, month: int) -> date:
    first = date(year, month, 1)
    return first + timedelta(days=(7 - first.weekday()) % 7)


def _period(start: date, end_exclusive: date, label: str, period_id: str) -> Period:
    start_dt = datetime.combine(start, datetime.min.time())
    end_dt = datetime.combine(end_exclusive, datetime.min.time()) - timedelta(microseconds=1)
    return Period(
        period_id=period_id,
        name=f"{label}: {start.isoformat()} - {end_dt.date().isoformat()}",
        start=start_dt,
        end=end_dt,
        is_active=True
    )


def current_period(today: Optional[date] = None) -> Period:
    """
    Work out the pay period containing a date.

    Period 1 runs from the first Monday of the month to the day before the
    third Monday; period 2 runs from the third Monday to the day before the
    next month's first Monday.
    """
    today = today or date.today()
    first_monday = _first_monday(today.year, today.month)
    third_monday = first_monday + timedelta(days=14)

    if first_monday <= today < third_monday:
        return _period(first_monday, third_monday, "Period 1",
                       f"{today.year}-{today.month}-period-1")

    if today >= third_monday:
        year, month = (today.year + 1, 1) if today.month == 12 else (today.year, today.month + 1)
        return _period(third_monday, _first_monday(year, month), "Period 2",
                       f"{today.year}-{today.month}-period-2")

    # Before the first Monday: still in last month's period 2
    year, month = (today.year - 1, 12) if today.month == 1 else (today.year, today.month - 1)
    prev_third_monday = _first_monday(year, month) + timedelta(days=14)
    return _period(prev_third_monday, first_monday, "Period 2", f"{year}-{month}-period-2")
