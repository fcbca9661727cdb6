"""
Fixed-supply fungible token used as the vesting pool's value ledger.

The whole supply is issued exactly once; after that the token only moves
balances around. Supported operations:
- transfer / balance_of
- approve / allowance / transfer_from (delegated approvals)
- permit (signed approvals over secp256k1)
- receiver hooks invoked after an account is credited

Receiver hooks run while the transfer is still in progress and may call back
into other contracts. If a hook raises, the transfer's own balance changes,
allowance spend and events are reversed; anything committed by calls made from
inside the hook is kept.
"""

from __future__ import annotations

import hashlib
import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from functools import partial
from typing import Callable, Iterator

from ...blockchain.vesting_schedule import TimeProvider, resolve_time, system_time
from ..constants import (
    EVENT_APPROVAL,
    EVENT_ISSUED,
    EVENT_TRANSFER,
    LOG_ADDRESS_PREFIX,
    UINT256_MAX,
    ZERO_ADDRESS,
)
from ..crypto_utils import (
    address_from_public_key,
    permit_digest as crypto_permit_digest,
    verify_signature_hex,
)
from ..vesting_exceptions import (
    AlreadyIssuedError,
    InsufficientAllowanceError,
    InsufficientBalanceError,
    InvalidAddressError,
    InvalidAmountError,
    InvalidPermitSignatureError,
    PermitExpiredError,
    UnauthorizedError,
)

logger = logging.getLogger(__name__)

ReceiverHook = Callable[[str, int], None]
UndoStep = Callable[[], None]


@dataclass
class LedgerEvent:
    """Represents a token ledger event."""

    event_type: str  # "Transfer", "Approval" or "Issued"
    from_address: str
    to_address: str
    value: int
    timestamp: int = 0


@dataclass
class FixedSupplyToken:
    """
    Fixed-supply token ledger.

    The issuer mints the entire supply with a single ``issue`` call; there is
    no further minting. Balances, allowances and permit nonces are kept
    in memory and can be serialized with ``to_dict``.
    """

    # Token metadata
    name: str
    symbol: str
    decimals: int = 18

    # Account allowed to perform the one-time issuance
    issuer: str = ""

    address: str = ""

    total_supply: int = 0
    issued: bool = False

    # State
    balances: dict[str, int] = field(default_factory=dict)
    allowances: dict[str, dict[str, int]] = field(default_factory=dict)
    nonces: dict[str, int] = field(default_factory=dict)
    events: list[LedgerEvent] = field(default_factory=list)

    receivers: dict[str, ReceiverHook] = field(default_factory=dict, repr=False, compare=False)
    time_provider: TimeProvider = field(default=system_time, repr=False, compare=False)

    def __post_init__(self) -> None:
        self.issuer = self._normalize(self.issuer)
        self._validate_address(self.issuer, "issuer")
        if not self.address:
            addr_hash = hashlib.sha3_256(f"{self.name}{self.symbol}{self.issuer}".encode()).digest()
            self.address = f"0x{addr_hash[-20:].hex()}"
        self.address = self._normalize(self.address)

    # ==================== View Functions ====================

    def balance_of(self, account: str) -> int:
        """
        Get the token balance of an account.

        Args:
            account: Address to check

        Returns:
            Token balance
        """
        return self.balances.get(self._normalize(account), 0)

    def allowance(self, owner: str, spender: str) -> int:
        """Get the amount spender may move on behalf of owner."""
        return self.allowances.get(self._normalize(owner), {}).get(self._normalize(spender), 0)

    def get_nonce(self, owner: str) -> int:
        """Get the next permit nonce for an address."""
        return self.nonces.get(self._normalize(owner), 0)

    # ==================== Issuance ====================

    def issue(self, caller: str, recipient: str, amount: int) -> bool:
        """
        Issue the entire fixed supply (issuer only, once).

        Args:
            caller: Address calling issue (must be issuer)
            recipient: Holder of the initial supply
            amount: Total supply

        Returns:
            True if successful

        Raises:
            UnauthorizedError: If caller is not the issuer
            AlreadyIssuedError: If the supply was already issued
        """
        if self._normalize(caller) != self.issuer:
            raise UnauthorizedError("Ledger: caller is not issuer")
        if self.issued:
            raise AlreadyIssuedError(
                "Ledger: supply already issued",
                details={"total_supply": self.total_supply},
            )

        recipient_norm = self._normalize(recipient)
        self._validate_address(recipient_norm, "recipient")
        self._validate_amount(amount)
        if amount == 0:
            raise InvalidAmountError("Ledger: issued supply must be positive")

        self.total_supply = amount
        self.issued = True
        self.balances[recipient_norm] = amount

        self._emit(EVENT_ISSUED, ZERO_ADDRESS, recipient_norm, amount)
        self._emit(EVENT_TRANSFER, ZERO_ADDRESS, recipient_norm, amount)

        logger.info(
            "Token supply issued",
            extra={
                "event": "ledger.issued",
                "token": self.symbol,
                "to": recipient_norm[:LOG_ADDRESS_PREFIX],
                "amount": amount,
            },
        )
        return True

    # ==================== State-Changing Functions ====================

    def transfer(self, sender: str, recipient: str, amount: int) -> bool:
        """
        Transfer tokens from sender to recipient.

        Args:
            sender: Address sending tokens
            recipient: Address receiving tokens
            amount: Amount to transfer

        Returns:
            True if successful

        Raises:
            InsufficientBalanceError: If sender cannot cover amount
        """
        sender_norm = self._normalize(sender)
        recipient_norm = self._normalize(recipient)

        self._validate_address(recipient_norm, "recipient")
        self._validate_amount(amount)

        sender_balance = self.balances.get(sender_norm, 0)
        if sender_balance < amount:
            raise InsufficientBalanceError(
                f"Ledger: transfer amount exceeds balance ({amount} > {sender_balance})",
                details={"sender": sender_norm, "balance": sender_balance, "amount": amount},
            )

        with self._atomic() as undo:
            self._move(sender_norm, recipient_norm, amount, undo)

        logger.debug(
            "Ledger transfer",
            extra={
                "event": "ledger.transfer",
                "token": self.symbol,
                "from": sender_norm[:LOG_ADDRESS_PREFIX],
                "to": recipient_norm[:LOG_ADDRESS_PREFIX],
                "amount": amount,
            },
        )
        return True

    def approve(self, owner: str, spender: str, amount: int) -> bool:
        """
        Approve spender to move up to amount on behalf of owner.

        Raises:
            InvalidAddressError: If spender is the zero address
        """
        owner_norm = self._normalize(owner)
        spender_norm = self._normalize(spender)
        self._validate_address(spender_norm, "spender")
        self._validate_amount(amount)

        self.allowances.setdefault(owner_norm, {})[spender_norm] = amount
        self._emit(EVENT_APPROVAL, owner_norm, spender_norm, amount)
        return True

    def transfer_from(self, spender: str, from_addr: str, to_addr: str, amount: int) -> bool:
        """
        Transfer tokens using an allowance.

        Args:
            spender: Address executing the transfer
            from_addr: Token owner
            to_addr: Recipient
            amount: Amount to transfer

        Returns:
            True if successful

        Raises:
            InsufficientAllowanceError: If the allowance is too small
            InsufficientBalanceError: If the owner cannot cover amount
        """
        spender_norm = self._normalize(spender)
        from_norm = self._normalize(from_addr)
        to_norm = self._normalize(to_addr)

        self._validate_address(to_norm, "recipient")
        self._validate_amount(amount)

        current_allowance = self.allowance(from_norm, spender_norm)
        if current_allowance < amount:
            raise InsufficientAllowanceError(
                f"Ledger: insufficient allowance ({current_allowance} < {amount})"
            )

        from_balance = self.balances.get(from_norm, 0)
        if from_balance < amount:
            raise InsufficientBalanceError(
                f"Ledger: transfer amount exceeds balance ({amount} > {from_balance})"
            )

        with self._atomic() as undo:
            # Unlimited allowances are never decremented
            if current_allowance != UINT256_MAX:
                self.allowances[from_norm][spender_norm] = current_allowance - amount
                undo.append(partial(self._credit_allowance, from_norm, spender_norm, amount))
            self._move(from_norm, to_norm, amount, undo)

        return True

    # ==================== Permit ====================

    def permit_digest(self, owner: str, spender: str, value: int, nonce: int, deadline: int) -> bytes:
        """Message an owner signs to authorize a permit."""
        return crypto_permit_digest(
            self.address, self._normalize(owner), self._normalize(spender), value, nonce, deadline
        )

    def permit(
        self,
        owner: str,
        spender: str,
        value: int,
        deadline: int,
        public_key: str,
        signature: str,
        current_time: int | None = None,
    ) -> bool:
        """
        Approve via the owner's signature instead of an owner call.

        Args:
            owner: Token owner; must be the address derived from public_key
            spender: Spender to approve
            value: Amount to approve
            deadline: Last timestamp at which the permit is accepted
            public_key: Owner's uncompressed public key (hex, 64 bytes)
            signature: Signature over ``permit_digest`` (hex r||s)
            current_time: Override for the ledger clock

        Returns:
            True if successful

        Raises:
            PermitExpiredError: If the deadline has passed
            InvalidPermitSignatureError: If the key or signature do not match
        """
        now = resolve_time(self.time_provider) if current_time is None else current_time
        if now > deadline:
            raise PermitExpiredError(
                "Ledger: permit expired",
                details={"deadline": deadline, "now": now},
            )

        owner_norm = self._normalize(owner)
        spender_norm = self._normalize(spender)
        self._validate_address(spender_norm, "spender")
        self._validate_amount(value)

        try:
            derived = address_from_public_key(public_key)
        except ValueError as exc:
            raise InvalidPermitSignatureError("Ledger: malformed permit public key") from exc
        if derived != owner_norm:
            raise InvalidPermitSignatureError("Ledger: public key does not belong to owner")

        nonce = self.nonces.get(owner_norm, 0)
        digest = self.permit_digest(owner_norm, spender_norm, value, nonce, deadline)
        if not verify_signature_hex(public_key, digest, signature):
            raise InvalidPermitSignatureError("Ledger: invalid permit signature")

        self.nonces[owner_norm] = nonce + 1
        self.allowances.setdefault(owner_norm, {})[spender_norm] = value
        self._emit(EVENT_APPROVAL, owner_norm, spender_norm, value)
        return True

    # ==================== Receiver Hooks ====================

    def register_receiver(self, account: str, hook: ReceiverHook) -> None:
        """Call hook(sender, amount) whenever account is credited."""
        self.receivers[self._normalize(account)] = hook

    def unregister_receiver(self, account: str) -> None:
        self.receivers.pop(self._normalize(account), None)

    # ==================== Helpers ====================

    def _move(self, from_norm: str, to_norm: str, amount: int, undo: list[UndoStep]) -> None:
        self.balances[from_norm] = self.balances.get(from_norm, 0) - amount
        self.balances[to_norm] = self.balances.get(to_norm, 0) + amount
        undo.append(partial(self._move_back, from_norm, to_norm, amount))

        event = self._emit(EVENT_TRANSFER, from_norm, to_norm, amount)
        undo.append(partial(self._drop_event, event))

        hook = self.receivers.get(to_norm)
        if hook is not None:
            hook(from_norm, amount)

    def _move_back(self, from_norm: str, to_norm: str, amount: int) -> None:
        self.balances[to_norm] = self.balances.get(to_norm, 0) - amount
        self.balances[from_norm] = self.balances.get(from_norm, 0) + amount

    def _credit_allowance(self, owner_norm: str, spender_norm: str, amount: int) -> None:
        spenders = self.allowances.setdefault(owner_norm, {})
        spenders[spender_norm] = spenders.get(spender_norm, 0) + amount

    def _drop_event(self, event: LedgerEvent) -> None:
        for index in range(len(self.events) - 1, -1, -1):
            if self.events[index] is event:
                del self.events[index]
                return

    @contextmanager
    def _atomic(self) -> Iterator[list[UndoStep]]:
        """
        Journal the block's own changes and reverse them if it raises.

        Only the steps the block registers are undone. Transfers committed by
        nested calls from a receiver hook stay in place, so a contract that
        paid out inside the hook keeps books that match the ledger.
        """
        undo: list[UndoStep] = []
        try:
            yield undo
        except Exception:
            for step in reversed(undo):
                step()
            raise

    def _normalize(self, address: str) -> str:
        """Normalize address to lowercase."""
        return (address or "").strip().lower()

    def _validate_address(self, address: str, field: str) -> None:
        if not address or address == ZERO_ADDRESS:
            raise InvalidAddressError(f"Ledger: {field} is zero address")

    def _validate_amount(self, amount: int) -> None:
        if isinstance(amount, bool) or not isinstance(amount, int):
            raise InvalidAmountError("Ledger: amount must be an integer")
        if amount < 0:
            raise InvalidAmountError("Ledger: amount cannot be negative")
        if amount > UINT256_MAX:
            raise InvalidAmountError("Ledger: amount exceeds uint256")

    def _emit(self, event_type: str, from_addr: str, to_addr: str, amount: int) -> LedgerEvent:
        event = LedgerEvent(
            event_type=event_type,
            from_address=from_addr,
            to_address=to_addr,
            value=amount,
            timestamp=resolve_time(self.time_provider),
        )
        self.events.append(event)
        return event

    # ==================== Serialization ====================

    def to_dict(self) -> dict:
        """Serialize token state to dictionary."""
        return {
            "name": self.name,
            "symbol": self.symbol,
            "decimals": self.decimals,
            "issuer": self.issuer,
            "address": self.address,
            "total_supply": self.total_supply,
            "issued": self.issued,
            "balances": dict(self.balances),
            "allowances": {k: dict(v) for k, v in self.allowances.items()},
            "nonces": dict(self.nonces),
        }

    @classmethod
    def from_dict(cls, data: dict, time_provider: TimeProvider | None = None) -> "FixedSupplyToken":
        """Deserialize token state from dictionary."""
        token = cls(
            name=data["name"],
            symbol=data["symbol"],
            decimals=data.get("decimals", 18),
            issuer=data["issuer"],
            address=data.get("address", ""),
            total_supply=data.get("total_supply", 0),
            issued=data.get("issued", False),
            time_provider=time_provider or system_time,
        )
        token.balances = dict(data.get("balances", {}))
        token.allowances = {k: dict(v) for k, v in data.get("allowances", {}).items()}
        token.nonces = dict(data.get("nonces", {}))
        return token
