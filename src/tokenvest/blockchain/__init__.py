"""
tokenvest vesting schedule.

Pure schedule math and the beneficiary record it operates on.
"""

from .vesting_schedule import (
    BeneficiaryRecord,
    LinearVestingSchedule,
    TimeProvider,
    resolve_time,
    system_time,
)

__all__ = [
    "BeneficiaryRecord",
    "LinearVestingSchedule",
    "TimeProvider",
    "resolve_time",
    "system_time",
]
