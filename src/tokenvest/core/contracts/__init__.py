"""
tokenvest contracts.

- FixedSupplyToken: fixed-supply value ledger with delegated and signed approvals
- VestingPool: cliff + linear vesting pool with revocation
"""

from .fixed_supply_token import FixedSupplyToken, LedgerEvent
from .vesting_pool import PoolEvent, RevocationResult, ValueLedger, VestingPool

__all__ = [
    # Value ledger
    "FixedSupplyToken",
    "LedgerEvent",
    # Vesting pool
    "VestingPool",
    "PoolEvent",
    "RevocationResult",
    "ValueLedger",
]
