import pytest

from dropzone.commit import AssignmentService

from helpers import FlakyStore, RecordingSink, make_period


@pytest.fixture
def period():
    return make_period()


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def store(period):
    return FlakyStore(period=period)


@pytest.fixture
def service(store, sink):
    return AssignmentService.from_store(store, notifier=sink)
