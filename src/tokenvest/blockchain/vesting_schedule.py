from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable

TimeProvider = Callable[[], int]


def system_time() -> int:
    return int(time.time())


def resolve_time(time_provider: TimeProvider) -> int:
    """Call a time provider and coerce its result to an integer timestamp."""
    timestamp = time_provider()
    if isinstance(timestamp, bool):
        raise ValueError("time_provider must return an integer timestamp")
    try:
        return int(timestamp)
    except (TypeError, ValueError) as exc:
        raise ValueError("time_provider must return an integer timestamp") from exc


@dataclass
class BeneficiaryRecord:
    allocation: int = 0
    released: int = 0
    vested_at_revoke: int = 0
    revoked: bool = False
    registered: bool = False

    def copy(self) -> "BeneficiaryRecord":
        return BeneficiaryRecord(
            allocation=self.allocation,
            released=self.released,
            vested_at_revoke=self.vested_at_revoke,
            revoked=self.revoked,
            registered=self.registered,
        )

    def to_dict(self) -> dict:
        return {
            "allocation": self.allocation,
            "released": self.released,
            "vested_at_revoke": self.vested_at_revoke,
            "revoked": self.revoked,
            "registered": self.registered,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "BeneficiaryRecord":
        return cls(
            allocation=int(data.get("allocation", 0)),
            released=int(data.get("released", 0)),
            vested_at_revoke=int(data.get("vested_at_revoke", 0)),
            revoked=bool(data.get("revoked", False)),
            registered=bool(data.get("registered", False)),
        )


class LinearVestingSchedule:
    """
    Cliff + linear accrual shared by every beneficiary of a pool.

    Nothing accrues before ``start``; the cliff is expressed by choosing a
    start later than pool creation. Between ``start`` and ``start + duration``
    the vested amount grows linearly and is truncated to whole units, so the
    last fractional unit only vests at the end of the window.
    """

    def __init__(self, start: int, duration: int):
        if isinstance(start, bool) or not isinstance(start, int):
            raise ValueError("Schedule start must be an integer timestamp.")
        if start < 0:
            raise ValueError("Schedule start cannot be negative.")
        if isinstance(duration, bool) or not isinstance(duration, int) or duration <= 0:
            raise ValueError("Schedule duration must be a positive integer.")
        self.start = start
        self.duration = duration

    @property
    def end(self) -> int:
        return self.start + self.duration

    def vested_amount(self, record: BeneficiaryRecord, current_time: int) -> int:
        """
        Calculates how many units of a record have vested at current_time.

        A revoked record is pinned at its revocation snapshot regardless of
        the clock.
        """
        if record.revoked:
            return record.vested_at_revoke

        if not record.registered or record.allocation == 0:
            return 0

        # Start is exclusive: zero elapsed time means zero vested
        if current_time <= self.start:
            return 0

        if current_time >= self.end:
            return record.allocation

        elapsed = current_time - self.start
        return record.allocation * elapsed // self.duration

    def elapsed_fraction(self, current_time: int) -> float:
        """Share of the accrual window that has passed, clamped to [0, 1]."""
        if current_time <= self.start:
            return 0.0
        if current_time >= self.end:
            return 1.0
        return (current_time - self.start) / self.duration
