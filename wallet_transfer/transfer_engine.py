"""
Transfer Engine

Saga coordinator for wallet-to-wallet transfers:
1. Validation (self-send, sender, fee, limit, balance)
2. Pending transfer record
3. Recipient resolution (fuzzy match, auto-provisioning)
4. Sender debit
5. Recipient credit
6. Fee collection (best-effort)
7. Recipient mirror record
8. Finalize as completed

Steps commit independently. Failures before the sender debit end as
refunded (nothing moved); failures after it end as failed and are left for
manual follow-up. There is no automatic compensation.
"""

from dataclasses import dataclass, asdict, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from loguru import logger

from .account_provisioner import AccountProvisioner
from .account_store import Account, AccountStore
from .address_resolver import (
    AddressResolver,
    WALLET_PREFIX,
    MIN_SUFFIX_LENGTH,
    is_valid_wallet_address,
    standardize_wallet_address,
)
from .exceptions import (
    DailyLimitExceededError,
    FeeMismatchError,
    InsufficientBalanceError,
    InvalidAmountError,
    InvalidStatusTransition,
    LedgerMutationError,
    SelfTransferError,
    TransferError,
    UnknownSenderError,
    ValidationError,
)
from .fee_calculator import FeeCalculator, to_decimal
from .ledger import LedgerMutator
from .transaction_history import (
    TransactionHistoryDB,
    TransferRecord,
    TransferStatus,
    TransferType,
)


@dataclass
class TransferRequest:
    """Transfer request"""
    sender_id: str
    sender_wallet: str
    recipient_token: str
    amount: Decimal
    fee: Optional[Decimal] = None  # Fee shown to the user, checked against the calculator
    note: Optional[str] = None
    is_username: bool = False
    requested_at: datetime = None

    def __post_init__(self):
        self.amount = to_decimal(self.amount)
        if self.fee is not None:
            self.fee = to_decimal(self.fee)
        if self.requested_at is None:
            self.requested_at = datetime.now(timezone.utc)


@dataclass
class TransferResult:
    """Transfer result"""
    success: bool
    transfer_id: Optional[str]
    status: TransferStatus
    message: Optional[str] = None
    recipient_wallet: Optional[str] = None
    amount: Decimal = Decimal("0")
    fee: Decimal = Decimal("0")
    fee_collected: bool = False
    suggestions: List[str] = field(default_factory=list)
    completed_at: Optional[datetime] = None

    def to_dict(self) -> Dict:
        data = asdict(self)
        data['status'] = self.status.value
        data['amount'] = str(self.amount)
        data['fee'] = str(self.fee)
        if self.completed_at:
            data['completed_at'] = self.completed_at.isoformat()
        return data


class TransferEngine:
    """
    Wallet transfer orchestrator

    Only ValidationError subclasses escape initiate_transfer; every other
    outcome is returned as a TransferResult.
    """

    def __init__(
        self,
        account_store: AccountStore,
        history_db: TransactionHistoryDB,
        fee_calculator: FeeCalculator,
        resolver: AddressResolver,
        provisioner: AccountProvisioner,
        ledger: LedgerMutator,
        fee_wallet: str,
        wallet_prefix: str = WALLET_PREFIX,
        min_suffix_length: int = MIN_SUFFIX_LENGTH
    ):
        """
        Initialize transfer engine

        Args:
            account_store: Account lookups
            history_db: Transfer record store
            fee_calculator: Fee schedule and limit (shared with fee quoting)
            resolver: Recipient resolution
            provisioner: Account creation for unknown wallets
            ledger: Balance deltas
            fee_wallet: Wallet of the fee-collection account
            wallet_prefix: Wallet address prefix
            min_suffix_length: Minimum wallet suffix length
        """
        self.account_store = account_store
        self.history_db = history_db
        self.fee_calculator = fee_calculator
        self.resolver = resolver
        self.provisioner = provisioner
        self.ledger = ledger
        self.fee_wallet = fee_wallet
        self.wallet_prefix = wallet_prefix
        self.min_suffix_length = min_suffix_length

        logger.info("Transfer Engine initialized")
        logger.info(f"  Fee wallet: {fee_wallet[:10]}...")
        logger.info(f"  Daily limit: {fee_calculator.daily_limit}")

    async def validate(self, request: TransferRequest) -> Tuple[Account, str, Decimal]:
        """
        Check transfer preconditions (no side effects)

        Args:
            request: Transfer request

        Returns:
            Tuple of (sender account, normalized recipient token, fee)

        Raises:
            ValidationError: On the first failing precondition
        """
        amount = request.amount
        if not amount.is_finite() or amount <= 0:
            raise InvalidAmountError(f"Amount must be a positive number, got {amount}")

        raw_token = (request.recipient_token or "").strip()
        token = raw_token if request.is_username else standardize_wallet_address(raw_token, self.wallet_prefix)
        if not token:
            raise ValidationError("Recipient is required")

        sender_wallet = standardize_wallet_address(request.sender_wallet, self.wallet_prefix)
        if raw_token == sender_wallet or token == sender_wallet:
            raise SelfTransferError("Cannot send to your own wallet")

        sender = await self.account_store.get_by_id(request.sender_id)
        if sender is None or sender.wallet_address != sender_wallet:
            raise UnknownSenderError(f"Sender {request.sender_id} does not own wallet {sender_wallet[:10]}...")

        fee = self.fee_calculator.fee(amount)
        if request.fee is not None and request.fee != fee:
            raise FeeMismatchError(f"Quoted fee {request.fee} does not match fee {fee}")

        if not self.fee_calculator.within_daily_limit(amount):
            raise DailyLimitExceededError(
                f"Amount {amount} exceeds the limit of {self.fee_calculator.daily_limit}"
            )

        if sender.balance < amount + fee:
            raise InsufficientBalanceError(
                f"Insufficient balance: {sender.balance} < {amount + fee} (amount {amount} + fee {fee})"
            )

        return sender, token, fee

    async def initiate_transfer(self, request: TransferRequest) -> TransferResult:
        """
        Execute a transfer

        Process:
        1. Validate (raises, creates nothing)
        2. Persist pending send record
        3. Resolve recipient, provisioning an account if needed, and store
           its wallet on the send record
        4. Debit sender (amount + fee)
        5. Credit recipient (amount)
        6. Credit fee account and record a fee receipt (best-effort)
        7. Create recipient mirror record
        8. Mark the send record completed

        Args:
            request: Transfer request

        Returns:
            TransferResult

        Raises:
            ValidationError: If a precondition fails
        """
        sender, token, fee = await self.validate(request)
        amount = request.amount

        logger.info(f"Starting transfer: {sender.wallet_address[:10]}... -> {token[:10]}...")
        logger.info(f"  Amount: {amount} (fee {fee})")

        # Step 1: Pending record
        record = TransferRecord(
            account_id=sender.id,
            type=TransferType.SEND,
            amount=amount,
            fee=fee,
            sender_wallet=sender.wallet_address,
            recipient_wallet=token,
            note=request.note,
        )
        if not await self.history_db.insert(record):
            logger.error("❌ Transfer failed: could not create transfer record")
            return TransferResult(
                success=False,
                transfer_id=None,
                status=TransferStatus.FAILED,
                message="Could not create transfer record",
                amount=amount,
                fee=fee,
                completed_at=datetime.now(timezone.utc),
            )

        transfer_id = record.transfer_id
        suggestions: List[str] = []
        debited = False

        try:
            # Step 2: Resolve recipient
            resolved = await self.resolver.resolve(
                token, request.is_username, exclude_wallet=sender.wallet_address
            )
            suggestions = resolved.suggestions
            recipient = resolved.account

            # Step 3: Provision unknown wallet
            if recipient is None:
                if request.is_username:
                    return await self._refund(record, f"User {token} not found", suggestions)

                if not is_valid_wallet_address(token, self.wallet_prefix, self.min_suffix_length):
                    return await self._refund(record, f"Invalid wallet address: {token}", suggestions)

                logger.info(f"Recipient {token[:10]}... unknown, provisioning account...")
                recipient = await self.provisioner.provision(token)
                if recipient is None:
                    return await self._refund(
                        record, f"Could not create an account for {token}", suggestions
                    )

            if recipient.id == sender.id:
                return await self._refund(record, "Recipient is the sender's own account", suggestions)

            if recipient.wallet_address != record.recipient_wallet:
                if not await self.history_db.set_recipient_wallet(transfer_id, recipient.wallet_address):
                    raise TransferError(f"Could not store recipient wallet on {transfer_id}")
                record.recipient_wallet = recipient.wallet_address

            logger.info(f"✓ Recipient resolved: {recipient.wallet_address[:10]}...")

            # Step 4: Debit sender
            success, error = await self.ledger.apply_delta(sender.id, -(amount + fee))
            if not success:
                return await self._refund(record, f"Sender debit rejected: {error}", suggestions)
            debited = True
            logger.info(f"✓ Sender debited: {amount + fee}")

            # Step 5: Credit recipient
            success, error = await self.ledger.apply_delta(recipient.id, amount)
            if not success:
                raise LedgerMutationError(f"Recipient credit failed: {error}")
            logger.info(f"✓ Recipient credited: {amount}")

            # Step 6: Fee collection
            fee_collected = await self._collect_fee(transfer_id, fee, sender.wallet_address)

            # Step 7: Mirror record
            mirror = TransferRecord(
                account_id=recipient.id,
                type=TransferType.RECEIVE,
                amount=amount,
                fee=Decimal("0"),
                sender_wallet=sender.wallet_address,
                recipient_wallet=recipient.wallet_address,
                note=request.note or f"Received from {sender.wallet_address}",
                status=TransferStatus.COMPLETED,
                related_transfer_id=transfer_id,
            )
            if not await self.history_db.insert(mirror):
                raise TransferError("Could not create recipient transfer record")

            # Step 8: Finalize
            if not await self.history_db.update_status(transfer_id, TransferStatus.COMPLETED):
                raise TransferError(f"Transfer record {transfer_id} disappeared")

            logger.info(f"✅ Transfer {transfer_id} completed")

            return TransferResult(
                success=True,
                transfer_id=transfer_id,
                status=TransferStatus.COMPLETED,
                recipient_wallet=recipient.wallet_address,
                amount=amount,
                fee=fee,
                fee_collected=fee_collected,
                suggestions=suggestions,
                completed_at=datetime.now(timezone.utc),
            )

        except Exception as e:
            error_msg = str(e)

            if not debited:
                logger.error(f"❌ Transfer {transfer_id} aborted before debit: {error_msg}")
                await self.history_db.record_error(transfer_id, type(e).__name__, error_msg)
                return await self._refund(record, error_msg, suggestions)

            logger.error(f"❌ Transfer {transfer_id} failed after sender debit: {error_msg}")
            await self.history_db.record_error(transfer_id, type(e).__name__, error_msg)
            await self._finalize(record, TransferStatus.FAILED, error_msg)

            return TransferResult(
                success=False,
                transfer_id=transfer_id,
                status=TransferStatus.FAILED,
                message=f"Transfer failed after debit, contact support: {error_msg}",
                amount=amount,
                fee=fee,
                suggestions=suggestions,
                completed_at=datetime.now(timezone.utc),
            )

    async def _collect_fee(self, transfer_id: str, fee: Decimal, sender_wallet: str) -> bool:
        """
        Credit the fee account and record a fee receipt

        Failures are logged and never change the transfer outcome.

        Returns:
            True if the fee account was credited
        """
        if fee <= 0:
            return False

        try:
            fee_account = await self.account_store.get_by_wallet_address(self.fee_wallet)
            if fee_account is None:
                logger.warning(f"⚠ Fee account {self.fee_wallet[:10]}... not found, fee not collected")
                return False

            success, error = await self.ledger.apply_delta(fee_account.id, fee)
            if not success:
                logger.warning(f"⚠ Fee credit failed for {transfer_id}: {error}")
                return False

            receipt = TransferRecord(
                account_id=fee_account.id,
                type=TransferType.RECEIVE,
                amount=fee,
                fee=Decimal("0"),
                sender_wallet=sender_wallet,
                recipient_wallet=fee_account.wallet_address,
                note=f"Transaction fee from {transfer_id}",
                status=TransferStatus.COMPLETED,
            )
            if not await self.history_db.insert(receipt):
                logger.warning(f"⚠ Fee credited but receipt not recorded for {transfer_id}")

            logger.info(f"✓ Fee collected: {fee}")
            return True

        except Exception as e:
            logger.warning(f"⚠ Fee collection failed for {transfer_id}: {e}")
            return False

    async def _refund(
        self,
        record: TransferRecord,
        message: str,
        suggestions: List[str]
    ) -> TransferResult:
        """Finalize a transfer that never debited the sender"""
        logger.warning(f"Transfer {record.transfer_id} refunded: {message}")
        await self._finalize(record, TransferStatus.REFUNDED, message)

        return TransferResult(
            success=False,
            transfer_id=record.transfer_id,
            status=TransferStatus.REFUNDED,
            message=message,
            amount=record.amount,
            fee=record.fee,
            suggestions=suggestions,
            completed_at=datetime.now(timezone.utc),
        )

    async def _finalize(self, record: TransferRecord, status: TransferStatus, message: str):
        """Move the send record to a terminal status, logging if that fails"""
        try:
            if not await self.history_db.update_status(record.transfer_id, status, message):
                logger.error(f"✗ Transfer record {record.transfer_id} not found while finalizing")
        except InvalidStatusTransition as e:
            logger.error(f"✗ Cannot finalize {record.transfer_id} as {status.value}: {e}")
        except Exception as e:
            logger.error(f"✗ Error finalizing {record.transfer_id} as {status.value}: {e}")
