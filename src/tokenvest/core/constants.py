"""
Shared constants for tokenvest contracts.
"""

ZERO_ADDRESS = "0x" + "0" * 40

UINT256_MAX = 2**256 - 1

# Pool event names
EVENT_BENEFICIARY_REGISTERED = "BeneficiaryRegistered"
EVENT_TOKENS_RELEASED = "TokensReleased"
EVENT_BENEFICIARY_REVOKED = "BeneficiaryRevoked"

# Ledger event names
EVENT_TRANSFER = "Transfer"
EVENT_APPROVAL = "Approval"
EVENT_ISSUED = "Issued"

# Number of address characters kept in log payloads
LOG_ADDRESS_PREFIX = 10
