import pytest

from call_relay.session import AdmissionPolicy, CreatorLeavePolicy
from call_relay.table import CallTable


class FakeClock:
    def __init__(self, start=1_700_000_000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def gated(clock):
    return CallTable(admission=AdmissionPolicy.GATED, clock=clock)


@pytest.fixture
def open_table(clock):
    return CallTable(admission=AdmissionPolicy.OPEN, clock=clock)


@pytest.fixture
def deleting(clock):
    return CallTable(admission=AdmissionPolicy.OPEN,
                     creator_leaves=CreatorLeavePolicy.DELETE, clock=clock)
