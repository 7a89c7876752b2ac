"""
Wallet Transfer Engine

Moves value between wallet accounts as a forward-only saga with a
pending -> completed | failed | refunded lifecycle per transfer.

Components:
- address_resolver: Username / wallet lookup with fuzzy wallet matching
- account_provisioner: Zero-balance accounts for unknown recipient wallets
- fee_calculator: Tiered fees, per-transaction limit, staking rewards
- ledger: Signed balance deltas with conditional debit
- transfer_engine: Saga orchestrator
- transaction_history: SQLite-based transfer records
- account_store: SQLite-based accounts
- wallet_service: Caller-facing surface
- config: YAML configuration and logging setup
"""

from .transfer_engine import (
    TransferEngine,
    TransferRequest,
    TransferResult,
)
from .address_resolver import (
    AddressResolver,
    ResolvedRecipient,
    similarity_score,
    is_valid_wallet_address,
    standardize_wallet_address,
)
from .account_provisioner import (
    AccountProvisioner,
    derive_username,
)
from .fee_calculator import (
    FeeCalculator,
    FeeQuote,
    FeeTier,
    to_decimal,
)
from .ledger import (
    LedgerMutator,
)
from .transaction_history import (
    TransactionHistoryDB,
    TransferRecord,
    TransferStatus,
    TransferType,
)
from .account_store import (
    Account,
    AccountStore,
)
from .config import (
    TransferConfig,
    setup_logging,
)
from .wallet_service import (
    WalletService,
)
from .exceptions import (
    TransferError,
    ConfigError,
    ValidationError,
    SelfTransferError,
    InsufficientBalanceError,
    DailyLimitExceededError,
    InvalidAmountError,
    FeeMismatchError,
    UnknownSenderError,
    InvalidStatusTransition,
    LedgerMutationError,
    AccountNotFoundError,
    DuplicateAccountError,
)

__all__ = [
    # Main engine
    'TransferEngine',
    'TransferRequest',
    'TransferResult',

    # Resolution
    'AddressResolver',
    'ResolvedRecipient',
    'similarity_score',
    'is_valid_wallet_address',
    'standardize_wallet_address',

    # Provisioning
    'AccountProvisioner',
    'derive_username',

    # Fees
    'FeeCalculator',
    'FeeQuote',
    'FeeTier',
    'to_decimal',

    # Ledger
    'LedgerMutator',

    # History tracking
    'TransactionHistoryDB',
    'TransferRecord',
    'TransferStatus',
    'TransferType',

    # Accounts
    'Account',
    'AccountStore',

    # Configuration
    'TransferConfig',
    'setup_logging',

    # Service
    'WalletService',

    # Errors
    'TransferError',
    'ConfigError',
    'ValidationError',
    'SelfTransferError',
    'InsufficientBalanceError',
    'DailyLimitExceededError',
    'InvalidAmountError',
    'FeeMismatchError',
    'UnknownSenderError',
    'InvalidStatusTransition',
    'LedgerMutationError',
    'AccountNotFoundError',
    'DuplicateAccountError',
]

__version__ = '1.0.0'
__description__ = 'Wallet transfer saga with fees, fuzzy recipient matching and refunds'
