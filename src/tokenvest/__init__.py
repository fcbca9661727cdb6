"""
tokenvest - time-based release of a fixed token pool to many beneficiaries.

Subpackages:
- core: pool contracts, value ledger, errors, config, logging, metrics
- blockchain: the cliff + linear vesting schedule
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
