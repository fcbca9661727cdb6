"""
Shared fixtures: a manual clock, an issued ledger and pool factories.
"""

from types import SimpleNamespace

import pytest

from tokenvest.core.contracts import FixedSupplyToken, VestingPool

GENESIS = 1_700_000_000
TOTAL_SUPPLY = 10_000_000


class ManualClock:
    def __init__(self, start_time: int):
        self.current_time = start_time

    def now(self) -> int:
        return self.current_time

    def advance(self, seconds: int):
        self.current_time += seconds

    def set(self, timestamp: int):
        self.current_time = timestamp


@pytest.fixture
def clock():
    return ManualClock(GENESIS)


@pytest.fixture
def accounts():
    return SimpleNamespace(
        admin="0x" + "ad" * 20,
        alice="0x" + "a1" * 20,
        bob="0x" + "b0" * 20,
        carol="0x" + "c0" * 20,
    )


@pytest.fixture
def ledger(clock, accounts):
    token = FixedSupplyToken(
        name="Vest Token",
        symbol="VEST",
        issuer=accounts.admin,
        time_provider=clock.now,
    )
    token.issue(accounts.admin, accounts.admin, TOTAL_SUPPLY)
    return token


@pytest.fixture
def make_pool(ledger, clock, accounts):
    """Build a pool starting 100s after genesis, optionally funded by the admin."""

    def _make(start=None, duration=300, funding=0, **kwargs):
        pool = VestingPool(
            ledger,
            accounts.admin,
            start=GENESIS + 100 if start is None else start,
            duration=duration,
            time_provider=clock.now,
            **kwargs,
        )
        if funding:
            ledger.transfer(accounts.admin, pool.address, funding)
        return pool

    return _make


@pytest.fixture
def pool(make_pool):
    return make_pool(funding=1_000_000)
