"""
Vesting pool contract.

Releases a fixed pool of ledger value to many beneficiaries over a shared
cliff + linear schedule:
- Admin registers each beneficiary once with a fixed allocation
- Beneficiaries release whatever has vested and not yet been paid out
- Admin can revoke a beneficiary, freezing their vested ceiling and
  returning the unvested remainder

Every write runs as a single unit of work: guards are checked before any
mutation, bookkeeping is updated before the outbound ledger transfer, and any
failure (including a failed or re-entrant transfer) reverses the call's own
changes. Writes committed by re-entrant calls made during the transfer stay in
place.

The pool does not check that its ledger balance covers its obligations. Use
``funding_report()`` or the gauges in ``tokenvest.core.funding_metrics`` to
monitor it.
"""

from __future__ import annotations

import hashlib
import itertools
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from functools import partial
from typing import Any, Callable, Iterator, Protocol

from ...blockchain.vesting_schedule import (
    BeneficiaryRecord,
    LinearVestingSchedule,
    TimeProvider,
    resolve_time,
    system_time,
)
from .. import funding_metrics
from ..config import settings
from ..constants import (
    EVENT_BENEFICIARY_REGISTERED,
    EVENT_BENEFICIARY_REVOKED,
    EVENT_TOKENS_RELEASED,
    LOG_ADDRESS_PREFIX,
    UINT256_MAX,
    ZERO_ADDRESS,
)
from ..funding_metrics import FundingReport
from ..vesting_exceptions import (
    AlreadyRegisteredError,
    AlreadyRevokedError,
    InvalidAddressError,
    InvalidAllocationError,
    InvalidDurationError,
    LedgerError,
    NotRegisteredError,
    NothingToReleaseError,
    TransferFailedError,
    UnauthorizedError,
    VestingError,
    get_error_context,
)

logger = logging.getLogger(__name__)

_pool_nonce = itertools.count(1)

UndoStep = Callable[[], None]


class ValueLedger(Protocol):
    """The ledger operations a pool relies on."""

    def transfer(self, sender: str, recipient: str, amount: int) -> bool: ...

    def balance_of(self, account: str) -> int: ...


@dataclass
class PoolEvent:
    """Represents a vesting pool event."""

    event_type: str  # "BeneficiaryRegistered", "TokensReleased" or "BeneficiaryRevoked"
    beneficiary: str
    amount: int
    unvested_amount: int = 0
    timestamp: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_type": self.event_type,
            "beneficiary": self.beneficiary,
            "amount": self.amount,
            "unvested_amount": self.unvested_amount,
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class RevocationResult:
    vested: int
    unvested: int


class VestingPool:
    """
    Vesting ledger for a single pool.

    Pool parameters (ledger, admin, start, duration) are fixed at
    construction and exposed read-only. Beneficiary records are owned by the
    pool and are only changed by ``register_beneficiary``, ``release`` and
    ``revoke``; readers get copies.

    Usage:
        pool = VestingPool(ledger, admin="0xadmin", start=t0 + cliff, duration=365 * 86400)
        ledger.transfer("0xadmin", pool.address, 1_000_000)
        pool.register_beneficiary("0xadmin", "0xalice", 600_000)
        pool.release("0xalice")
    """

    def __init__(
        self,
        ledger: ValueLedger,
        admin: str,
        start: int,
        duration: int,
        address: str = "",
        time_provider: TimeProvider | None = None,
        metrics_enabled: bool | None = None,
        funding_check: bool | None = None,
    ) -> None:
        """
        Create a pool.

        Args:
            ledger: Value ledger holding the pool's balance
            admin: Address allowed to register and revoke; receives claw-backs
            start: Timestamp at which linear accrual begins
            duration: Length of the accrual window in seconds (> 0)
            address: Pool identity on the ledger (derived when omitted)
            time_provider: Callable returning the current integer timestamp
            metrics_enabled: Export Prometheus metrics (defaults to settings)
            funding_check: Refresh funding gauges after every write (defaults to settings)

        Raises:
            InvalidAddressError: If ledger or admin is missing
            InvalidDurationError: If duration is not a positive integer
            VestingError: If start is not a non-negative integer
        """
        if ledger is None:
            raise InvalidAddressError("VestingPool: ledger is required")

        admin_norm = self._normalize(admin)
        self._validate_address(admin_norm, "admin")

        if isinstance(duration, bool) or not isinstance(duration, int) or duration <= 0:
            raise InvalidDurationError(
                "VestingPool: duration must be a positive integer",
                details={"duration": duration},
            )
        if isinstance(start, bool) or not isinstance(start, int) or start < 0:
            raise VestingError(
                "VestingPool: start must be a non-negative integer timestamp",
                details={"start": start},
            )

        self._ledger = ledger
        self._admin = admin_norm
        self._schedule = LinearVestingSchedule(start, duration)
        self._time_provider = time_provider or system_time
        self._metrics_enabled = settings.metrics_enabled if metrics_enabled is None else metrics_enabled
        self._funding_check = settings.funding_check if funding_check is None else funding_check

        if not address:
            addr_input = f"{admin_norm}:{start}:{duration}:{next(_pool_nonce)}".encode()
            address = "0x" + hashlib.sha3_256(addr_input).digest()[-20:].hex()
        self.address = self._normalize(address)
        self._validate_address(self.address, "pool address")

        self._records: dict[str, BeneficiaryRecord] = {}
        self._order: list[str] = []
        self.events: list[PoolEvent] = []

        logger.info(
            "Vesting pool created",
            extra={
                "event": "vesting_pool.created",
                "pool": self.address[:LOG_ADDRESS_PREFIX],
                "admin": admin_norm[:LOG_ADDRESS_PREFIX],
                "start": start,
                "duration": duration,
            },
        )

    # ==================== Immutable Parameters ====================

    @property
    def ledger(self) -> ValueLedger:
        return self._ledger

    @property
    def admin(self) -> str:
        return self._admin

    @property
    def start(self) -> int:
        return self._schedule.start

    @property
    def duration(self) -> int:
        return self._schedule.duration

    @property
    def schedule(self) -> LinearVestingSchedule:
        return self._schedule

    # ==================== View Functions ====================

    def vested_amount(self, beneficiary: str, timestamp: int | None = None) -> int:
        """
        Units vested for a beneficiary at a given time.

        Args:
            beneficiary: Beneficiary address
            timestamp: Time to evaluate at (defaults to now)

        Returns:
            Vested units; the revocation snapshot for revoked beneficiaries,
            0 for unknown ones
        """
        when = self._now() if timestamp is None else timestamp
        return self._schedule.vested_amount(self._record(self._normalize(beneficiary)), when)

    def releasable(self, beneficiary: str) -> int:
        """Units the beneficiary could release right now."""
        record = self._record(self._normalize(beneficiary))
        return max(0, self._schedule.vested_amount(record, self._now()) - record.released)

    def record_of(self, beneficiary: str) -> BeneficiaryRecord:
        """
        Snapshot of a beneficiary's record.

        Unknown beneficiaries get an empty record with ``registered=False``.
        The returned object is a copy.
        """
        return self._record(self._normalize(beneficiary)).copy()

    def beneficiaries(self) -> list[str]:
        """Registered beneficiaries in registration order."""
        return list(self._order)

    def outstanding_obligations(self) -> int:
        """
        Units the pool still owes: each beneficiary's ceiling minus released.

        The ceiling is the allocation for live beneficiaries and the frozen
        vested amount for revoked ones.
        """
        total = 0
        for record in self._records.values():
            ceiling = record.vested_at_revoke if record.revoked else record.allocation
            total += ceiling - record.released
        return total

    def funding_report(self) -> FundingReport:
        return FundingReport(
            obligations=self.outstanding_obligations(),
            ledger_balance=self._ledger.balance_of(self.address),
        )

    def events_for(self, beneficiary: str) -> list[PoolEvent]:
        beneficiary_norm = self._normalize(beneficiary)
        return [event for event in self.events if event.beneficiary == beneficiary_norm]

    # ==================== State-Changing Functions ====================

    def register_beneficiary(self, caller: str, beneficiary: str, allocation: int) -> BeneficiaryRecord:
        """
        Register a beneficiary with a fixed allocation (admin only).

        Registration is allowed at any time; a beneficiary registered after
        accrual began can immediately release what has already vested.

        Args:
            caller: Address invoking the operation
            beneficiary: Address to register
            allocation: Total units owed to the beneficiary (> 0)

        Returns:
            Snapshot of the new record

        Raises:
            UnauthorizedError: If caller is not the admin
            InvalidAddressError: If beneficiary is empty or the zero address
            InvalidAllocationError: If allocation is not a positive integer
            AlreadyRegisteredError: If beneficiary already has a record
        """
        self._require_admin(caller, "register_beneficiary")

        beneficiary_norm = self._normalize(beneficiary)
        if not beneficiary_norm or beneficiary_norm == ZERO_ADDRESS:
            raise self._rejected(InvalidAddressError("VestingPool: beneficiary is zero address"))

        if (
            isinstance(allocation, bool)
            or not isinstance(allocation, int)
            or allocation <= 0
            or allocation > UINT256_MAX
        ):
            raise self._rejected(
                InvalidAllocationError(
                    "VestingPool: allocation must be a positive integer",
                    details={"beneficiary": beneficiary_norm, "allocation": allocation},
                )
            )

        if self._record(beneficiary_norm).registered:
            raise self._rejected(
                AlreadyRegisteredError(
                    "VestingPool: beneficiary already registered",
                    details={"beneficiary": beneficiary_norm},
                )
            )

        with self._unit_of_work() as undo:
            record = BeneficiaryRecord(allocation=allocation, registered=True)
            self._records[beneficiary_norm] = record
            self._order.append(beneficiary_norm)
            undo.append(partial(self._forget, beneficiary_norm))
            self._emit(EVENT_BENEFICIARY_REGISTERED, beneficiary_norm, allocation, undo=undo)

        logger.info(
            "Beneficiary registered",
            extra={
                "event": "vesting_pool.registered",
                "pool": self.address[:LOG_ADDRESS_PREFIX],
                "beneficiary": beneficiary_norm[:LOG_ADDRESS_PREFIX],
                "allocation": allocation,
            },
        )
        if self._metrics_enabled:
            funding_metrics.record_registration(self.address)
        self._after_write()
        return record.copy()

    def release(self, caller: str) -> int:
        """
        Pay out everything the caller has vested but not yet received.

        The caller is the beneficiary. Revoked beneficiaries keep the right to
        release up to their frozen vested amount.

        Args:
            caller: Beneficiary claiming for themself

        Returns:
            Units transferred to the caller

        Raises:
            NothingToReleaseError: If nothing is currently claimable
            TransferFailedError: If the ledger rejects the payout
        """
        beneficiary = self._normalize(caller)
        record = self._record(beneficiary)
        now = self._now()
        claimable = self._schedule.vested_amount(record, now) - record.released

        if claimable <= 0:
            raise self._rejected(
                NothingToReleaseError(
                    "VestingPool: no tokens are due",
                    details={"beneficiary": beneficiary, "released": record.released},
                )
            )

        with self._unit_of_work() as undo:
            # Bookkeeping first so a re-entrant release computes zero
            record.released += claimable
            undo.append(partial(self._unrelease, record, claimable))
            self._emit(EVENT_TOKENS_RELEASED, beneficiary, claimable, undo=undo)
            self._transfer_out(beneficiary, claimable)

        logger.info(
            "Tokens released",
            extra={
                "event": "vesting_pool.released",
                "pool": self.address[:LOG_ADDRESS_PREFIX],
                "beneficiary": beneficiary[:LOG_ADDRESS_PREFIX],
                "amount": claimable,
                "total_released": record.released,
                "vesting_progress": self._schedule.elapsed_fraction(now),
            },
        )
        if self._metrics_enabled:
            funding_metrics.record_release(self.address, claimable)
        self._after_write()
        return claimable

    def revoke(self, caller: str, beneficiary: str) -> RevocationResult:
        """
        Revoke a beneficiary (admin only).

        Freezes the beneficiary's vested ceiling at its current value and
        returns the unvested remainder to the admin. Value that had already
        vested stays claimable by the beneficiary.

        Args:
            caller: Address invoking the operation
            beneficiary: Beneficiary to revoke

        Returns:
            The vested and unvested amounts at revocation time

        Raises:
            UnauthorizedError: If caller is not the admin
            NotRegisteredError: If beneficiary has no record
            AlreadyRevokedError: If beneficiary was already revoked
            TransferFailedError: If the ledger rejects the claw-back
        """
        self._require_admin(caller, "revoke")

        beneficiary_norm = self._normalize(beneficiary)
        record = self._record(beneficiary_norm)
        if not record.registered:
            raise self._rejected(
                NotRegisteredError(
                    "VestingPool: beneficiary not registered",
                    details={"beneficiary": beneficiary_norm},
                )
            )
        if record.revoked:
            raise self._rejected(
                AlreadyRevokedError(
                    "VestingPool: beneficiary already revoked",
                    details={"beneficiary": beneficiary_norm},
                )
            )

        now = self._now()
        vested = self._schedule.vested_amount(record, now)
        unvested = record.allocation - vested

        with self._unit_of_work() as undo:
            prior_vested_at_revoke = record.vested_at_revoke
            record.revoked = True
            record.vested_at_revoke = vested
            undo.append(partial(self._unrevoke, record, prior_vested_at_revoke))
            self._emit(EVENT_BENEFICIARY_REVOKED, beneficiary_norm, vested, unvested, undo=undo)
            if unvested > 0:
                self._transfer_out(self._admin, unvested)

        logger.info(
            "Beneficiary revoked",
            extra={
                "event": "vesting_pool.revoked",
                "pool": self.address[:LOG_ADDRESS_PREFIX],
                "beneficiary": beneficiary_norm[:LOG_ADDRESS_PREFIX],
                "vested": vested,
                "unvested": unvested,
                "vesting_progress": self._schedule.elapsed_fraction(now),
            },
        )
        if self._metrics_enabled:
            funding_metrics.record_clawback(self.address, unvested)
        self._after_write()
        return RevocationResult(vested=vested, unvested=unvested)

    # ==================== Helpers ====================

    def _now(self) -> int:
        return resolve_time(self._time_provider)

    def _record(self, beneficiary_norm: str) -> BeneficiaryRecord:
        return self._records.get(beneficiary_norm) or BeneficiaryRecord()

    @contextmanager
    def _unit_of_work(self) -> Iterator[list[UndoStep]]:
        """
        Journal the block's own changes and reverse them if it raises.

        Each write registers an undo step for every record field, registration
        and event it touches. Records changed by re-entrant calls that already
        committed (for example a release made from a receiver hook) are left
        alone, so they stay in step with the ledger.
        """
        undo: list[UndoStep] = []
        try:
            yield undo
        except Exception as exc:
            for step in reversed(undo):
                step()
            logger.warning(
                "Vesting pool operation rolled back",
                extra={
                    "event": "vesting_pool.rolled_back",
                    "pool": self.address[:LOG_ADDRESS_PREFIX],
                    **get_error_context(exc),
                },
            )
            raise

    def _forget(self, beneficiary_norm: str) -> None:
        self._records.pop(beneficiary_norm, None)
        if beneficiary_norm in self._order:
            self._order.remove(beneficiary_norm)

    @staticmethod
    def _unrelease(record: BeneficiaryRecord, amount: int) -> None:
        record.released -= amount

    @staticmethod
    def _unrevoke(record: BeneficiaryRecord, prior_vested_at_revoke: int) -> None:
        record.revoked = False
        record.vested_at_revoke = prior_vested_at_revoke

    def _drop_event(self, event: PoolEvent) -> None:
        for index in range(len(self.events) - 1, -1, -1):
            if self.events[index] is event:
                del self.events[index]
                return

    def _transfer_out(self, recipient: str, amount: int) -> None:
        try:
            ok = self._ledger.transfer(self.address, recipient, amount)
        except VestingError:
            raise
        except LedgerError as exc:
            raise TransferFailedError(
                f"VestingPool: ledger transfer of {amount} failed: {exc}",
                details={"recipient": recipient, "amount": amount},
            ) from exc
        if not ok:
            raise TransferFailedError(
                f"VestingPool: ledger refused transfer of {amount}",
                details={"recipient": recipient, "amount": amount},
            )

    def _after_write(self) -> None:
        if self._metrics_enabled and self._funding_check:
            funding_metrics.update_funding_gauges(self)

    def _require_admin(self, caller: str, operation: str) -> None:
        if self._normalize(caller) != self._admin:
            raise self._rejected(
                UnauthorizedError(
                    f"VestingPool: caller is not admin ({operation})",
                    details={"operation": operation},
                )
            )

    def _rejected(self, error: VestingError) -> VestingError:
        logger.warning(
            "Vesting pool operation rejected",
            extra={
                "event": "vesting_pool.rejected",
                "pool": self.address[:LOG_ADDRESS_PREFIX],
                **get_error_context(error),
            },
        )
        return error

    def _emit(
        self,
        event_type: str,
        beneficiary: str,
        amount: int,
        unvested: int = 0,
        undo: list[UndoStep] | None = None,
    ) -> PoolEvent:
        event = PoolEvent(
            event_type=event_type,
            beneficiary=beneficiary,
            amount=amount,
            unvested_amount=unvested,
            timestamp=self._now(),
        )
        self.events.append(event)
        if undo is not None:
            undo.append(partial(self._drop_event, event))
        return event

    @staticmethod
    def _normalize(address: str) -> str:
        return (address or "").strip().lower()

    @staticmethod
    def _validate_address(address: str, field: str) -> None:
        if not address or address == ZERO_ADDRESS:
            raise InvalidAddressError(f"VestingPool: {field} is zero address")

    # ==================== Serialization ====================

    def to_dict(self) -> dict[str, Any]:
        """Serialize pool parameters, records and events."""
        return {
            "address": self.address,
            "admin": self._admin,
            "start": self.start,
            "duration": self.duration,
            "beneficiaries": list(self._order),
            "records": {addr: record.to_dict() for addr, record in self._records.items()},
            "events": [event.to_dict() for event in self.events],
        }

    @classmethod
    def from_dict(
        cls,
        data: dict[str, Any],
        ledger: ValueLedger,
        time_provider: TimeProvider | None = None,
        **kwargs: Any,
    ) -> "VestingPool":
        """Rebuild a pool from ``to_dict`` output against a live ledger."""
        pool = cls(
            ledger,
            admin=data["admin"],
            start=data["start"],
            duration=data["duration"],
            address=data["address"],
            time_provider=time_provider,
            **kwargs,
        )
        pool._records = {
            addr: BeneficiaryRecord.from_dict(record) for addr, record in data.get("records", {}).items()
        }
        pool._order = list(data.get("beneficiaries", pool._records.keys()))
        pool.events = [PoolEvent(**event) for event in data.get("events", [])]
        return pool
