"""
Unit tests for the assignment algorithm.

Run with: pytest tests/test_algorithm.py
"""

import pytest

from dropzone.algorithm import (
    calculate_assignment_metrics,
    plan_assignment,
    rank_instructors,
    select_next_student,
    sort_queue,
)
from dropzone.errors import NoAvailableLoad, NoQualifiedInstructor
from dropzone.types import AFFJump, AutoAssignSettings, EnginePolicy, Snapshot, TandemJump

from helpers import (
    AS_OF_FRIDAY,
    make_instructor,
    make_load,
    make_period,
    make_record,
    make_seat,
    make_student,
)


def snapshot(instructors, loads=None, records=None):
    return Snapshot(
        instructors=instructors,
        loads=loads if loads is not None else [make_load("L1", 1)],
        assignments=records or [],
        period=make_period()
    )


class TestStudentSelection:
    """Test which student the scheduler picks."""

    def test_fifo_by_timestamp(self):
        queue = [
            make_student("late", timestamp="2024-02-16T09:05:00Z"),
            make_student("early", timestamp="2024-02-16T09:00:00Z"),
        ]
        assert [s.student_id for s in sort_queue(queue)] == ["early", "late"]
        assert select_next_student(queue, AutoAssignSettings()).student_id == "early"

    def test_skip_requests(self):
        queue = [
            make_student("req", timestamp="2024-02-16T09:00:00Z", is_request=True),
            make_student("walk", timestamp="2024-02-16T09:01:00Z"),
        ]
        assert select_next_student(queue, AutoAssignSettings(skip_requests=True)).student_id == "walk"
        assert select_next_student(queue, AutoAssignSettings(skip_requests=False)).student_id == "req"

    def test_single_mode_starts_on_first(self):
        queue = [make_student("s1")]
        assert select_next_student(queue, AutoAssignSettings(batch_mode=False)).student_id == "s1"

    def test_batch_mode_waits_for_batch(self):
        """Batch of 3 needs 3 skip-filtered students before anything starts."""
        settings = AutoAssignSettings(batch_mode=True, batch_size=3)
        queue = [
            make_student("s1", timestamp="2024-02-16T09:00:00Z"),
            make_student("s2", timestamp="2024-02-16T09:01:00Z"),
            make_student("r1", timestamp="2024-02-16T09:02:00Z", is_request=True),
        ]
        assert select_next_student(queue, settings) is None

        queue.append(make_student("s3", timestamp="2024-02-16T09:03:00Z"))
        assert select_next_student(queue, settings).student_id == "s1"

    def test_empty_queue(self):
        assert select_next_student([], AutoAssignSettings()) is None


class TestRanking:
    """Test balance ranking."""

    def test_lower_balance_first(self):
        """With identical qualifications the lower balance always wins."""
        roster = [make_instructor("i1"), make_instructor("i2")]
        records = [make_record("a1", "i1")]
        ranked = rank_instructors(roster, snapshot(roster, records=records), AS_OF_FRIDAY)
        assert [i.instructor_id for i in ranked] == ["i2", "i1"]

    def test_ties_keep_roster_order(self):
        roster = [make_instructor("b"), make_instructor("a")]
        ranked = rank_instructors(roster, snapshot(roster), AS_OF_FRIDAY)
        assert [i.instructor_id for i in ranked] == ["b", "a"]

    def test_pending_seats_shift_ranking(self):
        roster = [make_instructor("i1"), make_instructor("i2")]
        loads = [make_load("L1", 1, assignments=[make_seat("s1", AFFJump(), instructor_id="i1")])]
        ranked = rank_instructors(roster, snapshot(roster, loads), AS_OF_FRIDAY)
        assert ranked[0].instructor_id == "i2"


class TestPlan:
    """Test full assignment planning."""

    def test_picks_lowest_balance_and_first_load(self):
        roster = [make_instructor("i1"), make_instructor("i2")]
        records = [make_record("a1", "i1")]
        loads = [make_load("L2", 2), make_load("L1", 1)]

        plan = plan_assignment(make_student("s1"), snapshot(roster, loads, records), as_of=AS_OF_FRIDAY)

        assert plan.instructor.instructor_id == "i2"
        assert plan.load_id == "L1"
        assert plan.seats == 2

    def test_no_qualified_instructor(self):
        roster = [make_instructor("i1", clocked_in=False)]
        with pytest.raises(NoQualifiedInstructor):
            plan_assignment(make_student("s1"), snapshot(roster))

    def test_no_available_load(self):
        roster = [make_instructor("i1")]
        loads = [make_load("L1", 1, capacity=2, assignments=[make_seat("x")])]
        with pytest.raises(NoAvailableLoad):
            plan_assignment(make_student("s1"), snapshot(roster, loads))

    def test_outside_video_needs_three_seats(self):
        roster = [make_instructor("i1"), make_instructor("v1", can_tandem=False, can_video=True)]
        loads = [make_load("L1", 1, capacity=4, assignments=[make_seat("x")])]
        student = make_student("s1", TandemJump(outside_video=True))
        with pytest.raises(NoAvailableLoad):
            plan_assignment(student, snapshot(roster, loads))

    def test_outside_video_assigns_video_instructor(self):
        roster = [make_instructor("i1"), make_instructor("v1", can_tandem=False, can_video=True)]
        student = make_student("s1", TandemJump(outside_video=True))

        plan = plan_assignment(student, snapshot(roster), as_of=AS_OF_FRIDAY)

        assert plan.instructor.instructor_id == "i1"
        assert plan.video_instructor.instructor_id == "v1"
        assert plan.seats == 3

    def test_missing_video_instructor(self):
        roster = [make_instructor("i1")]
        student = make_student("s1", TandemJump(outside_video=True))
        with pytest.raises(NoQualifiedInstructor) as exc:
            plan_assignment(student, snapshot(roster))
        assert exc.value.details["role"] == "video"

    def test_video_range_uses_student_weight(self):
        camera = make_instructor("v1", can_tandem=False, can_video=True, video_max_weight=350)
        heavy = make_instructor("heavy", body_weight=220)
        student = make_student("s1", TandemJump(outside_video=True), weight=180)

        plan = plan_assignment(student, snapshot([heavy, camera]), as_of=AS_OF_FRIDAY)

        assert plan.video_instructor.instructor_id == "v1"

    def test_video_range_with_pair_weight(self):
        """With video_pair_weight the range covers primary plus student."""
        policy = EnginePolicy(video_pair_weight=True)
        camera = make_instructor("v1", can_tandem=False, can_video=True, video_max_weight=350)
        heavy = make_instructor("heavy", body_weight=220)
        student = make_student("s1", TandemJump(outside_video=True), weight=180)

        with pytest.raises(NoQualifiedInstructor) as exc:
            plan_assignment(student, snapshot([heavy, camera]), policy)
        assert exc.value.details["role"] == "video"

        light = make_instructor("light", body_weight=160)
        plan = plan_assignment(student, snapshot([heavy, light, camera]), policy, as_of=AS_OF_FRIDAY)

        assert plan.instructor.instructor_id == "light"
        assert plan.video_instructor.instructor_id == "v1"

    def test_instructor_already_on_load_goes_to_next_load(self):
        roster = [make_instructor("i1")]
        loads = [make_load("L1", 1, assignments=[make_seat("a1", instructor_id="i1")]), make_load("L2", 2)]

        plan = plan_assignment(make_student("s1"), snapshot(roster, loads), as_of=AS_OF_FRIDAY)

        assert plan.load_id == "L2"

    def test_forced_instructor_must_be_eligible(self):
        roster = [make_instructor("i1"), make_instructor("i2", clocked_in=False)]
        with pytest.raises(NoQualifiedInstructor):
            plan_assignment(make_student("s1"), snapshot(roster), instructor_id="i2")

    def test_forced_load(self):
        roster = [make_instructor("i1")]
        loads = [make_load("L1", 1), make_load("L2", 2)]
        plan = plan_assignment(make_student("s1"), snapshot(roster, loads), load_id="L2")
        assert plan.load_id == "L2"

    def test_unknown_forced_load(self):
        roster = [make_instructor("i1")]
        with pytest.raises(NoAvailableLoad):
            plan_assignment(make_student("s1"), snapshot(roster), load_id="nope")

    def test_aircraft_restriction_falls_through_to_next_instructor(self):
        roster = [make_instructor("otter_only", aircraft_ids=["otter"]), make_instructor("any")]
        records = [make_record("a1", "any")]
        loads = [make_load("L1", 1, aircraft_id="caravan")]

        plan = plan_assignment(make_student("s1"), snapshot(roster, loads, records), as_of=AS_OF_FRIDAY)

        assert plan.instructor.instructor_id == "any"

    def test_nobody_can_fly_the_open_loads(self):
        roster = [make_instructor("i1", aircraft_ids=["otter"])]
        loads = [make_load("L1", 1, aircraft_id="caravan")]
        with pytest.raises(NoAvailableLoad):
            plan_assignment(make_student("s1"), snapshot(roster, loads))

    def test_metrics(self):
        roster = [make_instructor("i1"), make_instructor("i2")]
        records = [make_record("a1", "i1")]
        plan = plan_assignment(make_student("s1"), snapshot(roster, records=records), as_of=AS_OF_FRIDAY)

        metrics = calculate_assignment_metrics(plan)

        assert metrics["instructor_id"] == "i2"
        assert metrics["candidates"] == 2
        assert metrics["lowest_balance"] == 0
