"""
Vesting pool instrumentation.

Prometheus metrics for registrations, releases and claw-backs, plus the
funding monitor. A pool must hold at least its outstanding obligations
(everything vested or still vesting that has not been released) in its ledger
balance. The pool never enforces this; it is exported here so an under-funded
pool shows up on a dashboard before a beneficiary's release fails.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from prometheus_client import Counter, Gauge

from .constants import LOG_ADDRESS_PREFIX

if TYPE_CHECKING:
    from .contracts.vesting_pool import VestingPool

logger = logging.getLogger(__name__)

beneficiaries_registered_counter = Counter(
    "tokenvest_beneficiaries_registered_total",
    "Total beneficiaries registered with a vesting pool",
    ["pool"],
)

tokens_released_counter = Counter(
    "tokenvest_tokens_released_total",
    "Total units released to beneficiaries",
    ["pool"],
)

tokens_clawed_back_counter = Counter(
    "tokenvest_tokens_clawed_back_total",
    "Total unvested units returned to the admin on revocation",
    ["pool"],
)

outstanding_obligations_gauge = Gauge(
    "tokenvest_pool_outstanding_obligations",
    "Units the pool still owes to beneficiaries",
    ["pool"],
)

ledger_balance_gauge = Gauge(
    "tokenvest_pool_ledger_balance",
    "Current ledger balance held by the pool",
    ["pool"],
)

funding_shortfall_gauge = Gauge(
    "tokenvest_pool_funding_shortfall",
    "Obligations not covered by the pool's ledger balance (0 when funded)",
    ["pool"],
)


@dataclass(frozen=True)
class FundingReport:
    """Snapshot of a pool's obligations against its ledger balance."""

    obligations: int
    ledger_balance: int

    @property
    def shortfall(self) -> int:
        return max(0, self.obligations - self.ledger_balance)

    @property
    def surplus(self) -> int:
        return max(0, self.ledger_balance - self.obligations)

    @property
    def is_funded(self) -> bool:
        return self.obligations <= self.ledger_balance


def record_registration(pool_address: str) -> None:
    beneficiaries_registered_counter.labels(pool=pool_address).inc()


def record_release(pool_address: str, amount: int) -> None:
    """Increment the released counter for a pool."""
    if amount <= 0:
        return
    tokens_released_counter.labels(pool=pool_address).inc(amount)


def record_clawback(pool_address: str, amount: int) -> None:
    """Increment the claw-back counter for a pool."""
    if amount <= 0:
        return
    tokens_clawed_back_counter.labels(pool=pool_address).inc(amount)


def update_funding_gauges(pool: "VestingPool") -> FundingReport:
    """
    Refresh the funding gauges for a pool and warn when it is under-funded.

    Args:
        pool: Pool to inspect

    Returns:
        The funding report the gauges were set from
    """
    report = pool.funding_report()
    outstanding_obligations_gauge.labels(pool=pool.address).set(report.obligations)
    ledger_balance_gauge.labels(pool=pool.address).set(report.ledger_balance)
    funding_shortfall_gauge.labels(pool=pool.address).set(report.shortfall)

    if not report.is_funded:
        logger.warning(
            "Vesting pool is under-funded",
            extra={
                "event": "vesting_pool.underfunded",
                "pool": pool.address[:LOG_ADDRESS_PREFIX],
                "obligations": report.obligations,
                "ledger_balance": report.ledger_balance,
                "shortfall": report.shortfall,
            },
        )
    return report
