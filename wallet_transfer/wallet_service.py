"""
Wallet Service

Caller-facing surface of the transfer engine.

Wires the stores, calculator, resolver, provisioner and ledger together from
a TransferConfig, and exposes transfers, fee/limit previews, staking quotes
and history lookups. Fee previews use the same FeeCalculator instance as the
engine.
"""

from decimal import Decimal
from typing import Any, Dict, List, Optional

from loguru import logger

from .account_provisioner import AccountProvisioner
from .account_store import AccountStore
from .address_resolver import AddressResolver, standardize_wallet_address
from .config import TransferConfig, setup_logging
from .fee_calculator import FeeCalculator, FeeQuote
from .ledger import LedgerMutator
from .transaction_history import TransactionHistoryDB, TransferRecord, TransferStatus
from .transfer_engine import TransferEngine, TransferRequest, TransferResult


class WalletService:
    """
    Entry point for the presentation layer

    Features:
    - Initiate transfers by wallet address or username
    - Fee, limit and staking previews
    - Transfer history and verification
    - Recipient existence checks
    """

    def __init__(
        self,
        config: TransferConfig,
        account_store: AccountStore,
        history_db: TransactionHistoryDB,
        engine: TransferEngine
    ):
        """
        Initialize service

        Args:
            config: Effective configuration
            account_store: Account store instance
            history_db: Transaction history database instance
            engine: Transfer engine instance
        """
        self.config = config
        self.account_store = account_store
        self.history_db = history_db
        self.engine = engine
        self.fee_calculator = engine.fee_calculator

        logger.info("Wallet Service initialized")

    @classmethod
    async def create(
        cls,
        config: Optional[TransferConfig] = None,
        configure_logging: bool = False
    ) -> 'WalletService':
        """
        Open both stores and build the engine

        Args:
            config: Configuration (defaults when None)
            configure_logging: Install the stderr sink at config.log_level

        Returns:
            WalletService
        """
        config = config or TransferConfig()
        if configure_logging:
            setup_logging(config.log_level)

        account_store = await AccountStore.create(config.accounts_db_path)
        history_db = await TransactionHistoryDB.create(config.history_db_path)

        fee_calculator = FeeCalculator.from_config(config)
        engine = TransferEngine(
            account_store=account_store,
            history_db=history_db,
            fee_calculator=fee_calculator,
            resolver=AddressResolver(
                account_store,
                prefix=config.wallet_prefix,
                similarity_threshold=config.similarity_threshold,
                max_suggestions=config.max_suggestions,
            ),
            provisioner=AccountProvisioner(
                account_store,
                prefix=config.wallet_prefix,
                email_domain=config.placeholder_email_domain,
            ),
            ledger=LedgerMutator(account_store),
            fee_wallet=config.fee_wallet,
            wallet_prefix=config.wallet_prefix,
            min_suffix_length=config.min_suffix_length,
        )

        return cls(config, account_store, history_db, engine)

    async def initiate_transfer(
        self,
        sender_id: str,
        sender_wallet: str,
        recipient_token: str,
        amount: Any,
        fee: Any = None,
        note: Optional[str] = None,
        is_username: bool = False
    ) -> TransferResult:
        """
        Send funds to a wallet address or username

        Raises:
            ValidationError: If a precondition fails (nothing is recorded)
        """
        request = TransferRequest(
            sender_id=sender_id,
            sender_wallet=sender_wallet,
            recipient_token=recipient_token,
            amount=amount,
            fee=fee,
            note=note,
            is_username=is_username,
        )
        return await self.engine.initiate_transfer(request)

    def quote_fee(self, amount: Any) -> FeeQuote:
        return self.fee_calculator.quote(amount)

    def check_limit(self, amount: Any) -> bool:
        return self.fee_calculator.within_daily_limit(amount)

    def quote_staking_reward(self, principal: Any, duration_days: Any) -> Decimal:
        return self.fee_calculator.staking_reward(principal, duration_days)

    def early_withdrawal_penalty(self, principal: Any) -> Decimal:
        return self.fee_calculator.early_withdrawal_penalty(principal)

    async def get_transfers(self, account_id: str) -> List[TransferRecord]:
        """Transfer history of an account, newest first"""
        return await self.history_db.list_by_account(account_id)

    async def verify_transfer(
        self,
        account_id: str,
        transfer_id: str,
        expected_status: Optional[TransferStatus] = None
    ) -> Optional[TransferRecord]:
        """
        Look up a transfer owned by an account

        Args:
            account_id: Account that should own the record
            transfer_id: Transfer ID
            expected_status: Status the record must be in (any if None)

        Returns:
            The record, or None if missing, owned by someone else or in
            another status
        """
        record = await self.history_db.get_transfer(transfer_id)
        if record is None or record.account_id != account_id:
            logger.debug(f"Transfer {transfer_id} not found for account {account_id}")
            return None
        if expected_status is not None and record.status is not expected_status:
            logger.debug(f"Transfer {transfer_id} is {record.status.value}, expected {expected_status.value}")
            return None
        return record

    async def recipient_exists(self, wallet_address: str) -> bool:
        wallet_address = standardize_wallet_address(wallet_address, self.config.wallet_prefix)
        return await self.account_store.wallet_exists(wallet_address)

    async def username_exists(self, username: str) -> bool:
        return await self.account_store.username_exists(username.strip())

    async def get_statistics(self) -> Dict[str, Any]:
        return await self.history_db.get_statistics()

    async def reconcile(self, wallet_address: str) -> Dict[str, Any]:
        return await self.history_db.reconcile(wallet_address)

    async def close(self):
        """Close both stores"""
        await self.history_db.close()
        await self.account_store.close()
