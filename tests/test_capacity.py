"""
Unit tests for the load capacity model.

Run with: pytest tests/test_capacity.py
"""

from dataclasses import replace

from dropzone.capacity import (
    available_slots,
    candidate_loads,
    has_capacity,
    is_on_load,
    load_capacity,
    occupied_seats,
    renumber_building_loads,
    seat_cost,
    select_load,
)
from dropzone.types import (
    AFFJump,
    Aircraft,
    FunJumper,
    LoadPolicy,
    LoadStatus,
    TandemJump,
    VideoJump,
)

from helpers import make_instructor, make_load, make_seat


def mixed_load(**kwargs):
    """Capacity 18: one tandem with video, five tandems and one AFF."""
    seats = [make_seat("video", TandemJump(outside_video=True))]
    seats += [make_seat(f"t{n}", TandemJump()) for n in range(5)]
    seats.append(make_seat("aff", AFFJump()))
    return make_load("L1", 1, capacity=18, assignments=seats, **kwargs)


class TestSeatCost:
    """Test seat costs per jump."""

    def test_costs(self):
        assert seat_cost(TandemJump()) == 2
        assert seat_cost(TandemJump(outside_video=True)) == 3
        assert seat_cost(AFFJump()) == 2
        assert seat_cost(VideoJump()) == 1


class TestSlots:
    """Test seat accounting on a load."""

    def test_mixed_load(self):
        load = mixed_load()
        assert occupied_seats(load) == 15
        assert available_slots(load) == 3
        assert has_capacity(load, 3)
        assert not has_capacity(load, 4)

    def test_fun_jumpers_take_one_seat(self):
        load = mixed_load(fun_jumpers=[FunJumper("u1", "Alex"), FunJumper("u2", "Kim")])
        assert occupied_seats(load) == 17
        assert not has_capacity(load, 2)
        assert has_capacity(load, 1)

    def test_soft_deleted_seat_frees_capacity(self):
        load = mixed_load()
        before = available_slots(load)
        deleted = replace(load.assignments[0], is_deleted=True)
        load.assignments[0] = deleted

        assert available_slots(load) == before + 3
        assert len(load.assignments) == 7

    def test_overfilled_load_goes_negative(self):
        load = mixed_load()
        load.capacity = 12
        assert available_slots(load) == -3
        assert not has_capacity(load, 0)

    def test_capacity_precedence(self):
        aircraft = {"otter": Aircraft("otter", "Twin Otter", capacity=22)}
        assert load_capacity(make_load("L1", 1, capacity=14, aircraft_id="otter"), aircraft) == 14
        assert load_capacity(make_load("L1", 1, aircraft_id="otter"), aircraft) == 22
        assert load_capacity(make_load("L1", 1, aircraft_id="caravan"), aircraft) == 18
        assert load_capacity(make_load("L1", 1), default_capacity=16) == 16

    def test_zero_capacity_override(self):
        """An explicit capacity of 0 closes the load instead of falling back."""
        aircraft = {"otter": Aircraft("otter", "Twin Otter", capacity=22)}
        load = make_load("L1", 1, capacity=0, aircraft_id="otter")

        assert load_capacity(load, aircraft) == 0
        assert select_load([load], 1, aircraft=aircraft) is None


class TestLoadSelection:
    """Test which load new work goes to."""

    def test_first_opened_first_filled(self):
        loads = [make_load("L3", 3), make_load("L1", 1), make_load("L2", 2)]
        assert select_load(loads, 2).load_id == "L1"

    def test_full_loads_skipped(self):
        full = make_load("L1", 1, capacity=2, assignments=[make_seat("a")])
        loads = [full, make_load("L2", 2)]
        assert select_load(loads, 2).load_id == "L2"

    def test_only_building_loads_by_default(self):
        loads = [make_load("L1", 1, status=LoadStatus.READY), make_load("L2", 2, status=LoadStatus.DEPARTED)]
        assert candidate_loads(loads, 2) == []
        assert select_load(loads, 2) is None

    def test_ready_loads_when_allowed(self):
        loads = [make_load("L1", 1, status=LoadStatus.READY)]
        policy = LoadPolicy(allow_ready_loads=True)
        assert select_load(loads, 2, policy).load_id == "L1"

    def test_crew_aircraft_qualification(self):
        loads = [make_load("L1", 1, aircraft_id="caravan"), make_load("L2", 2, aircraft_id="otter")]
        crew = [make_instructor("i1", aircraft_ids=["otter"])]
        assert select_load(loads, 2, crew=crew).load_id == "L2"

    def test_crew_already_on_load(self):
        """An instructor already jumping a load, as primary or video, is not seated there again."""
        loads = [
            make_load("L1", 1, assignments=[make_seat("a1", instructor_id="i1")]),
            make_load("L2", 2, assignments=[make_seat("a2", instructor_id="i3", video_instructor_id="i2")]),
            make_load("L3", 3),
        ]
        assert select_load(loads, 2, crew=[make_instructor("i1")]).load_id == "L2"
        assert select_load(loads, 2, crew=[make_instructor("i2")]).load_id == "L1"
        assert select_load(loads, 3, crew=[make_instructor("i1"), make_instructor("i2")]).load_id == "L3"

    def test_deleted_seat_does_not_hold_instructor(self):
        load = make_load("L1", 1, assignments=[make_seat("a1", instructor_id="i1", is_deleted=True)])
        assert not is_on_load(load, "i1")
        assert select_load([load], 2, crew=[make_instructor("i1")]).load_id == "L1"

    def test_renumber_building_loads(self):
        loads = [
            make_load("ready", 1, status=LoadStatus.READY),
            make_load("b1", 2),
            make_load("b2", 5),
            make_load("gone", 4, status=LoadStatus.DEPARTED),
        ]
        result = {l.load_id: l.position for l in renumber_building_loads(loads)}
        assert result == {"b1": 1, "b2": 2, "ready": 1, "gone": 4}
        assert loads[2].position == 5
