"""
Transaction History Database

SQLite database (via aiosqlite) for transfer records with reconciliation support.

Tables:
- transfers: One row per record (sender "send", recipient "receive" mirror,
  fee-account receipts)
- errors: Error logging

A record is created as pending and moves exactly once to a terminal status
(completed, failed, refunded). While pending, the recipient wallet may be
replaced by the resolved wallet. A terminal record never changes.
"""

import os
import sqlite3
import uuid
from dataclasses import dataclass, asdict, field, replace
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

import aiosqlite
from loguru import logger

from .exceptions import InvalidStatusTransition


class TransferType(Enum):
    SEND = "send"
    RECEIVE = "receive"


class TransferStatus(Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"

    @property
    def is_terminal(self) -> bool:
        return self is not TransferStatus.PENDING


def new_transfer_id() -> str:
    return str(uuid.uuid4())


@dataclass
class TransferRecord:
    """One side of a transfer as seen by a single account"""
    account_id: str
    type: TransferType
    amount: Decimal
    fee: Decimal
    sender_wallet: str
    recipient_wallet: str
    note: Optional[str] = None
    status: TransferStatus = TransferStatus.PENDING
    status_message: Optional[str] = None
    related_transfer_id: Optional[str] = None
    transfer_id: str = field(default_factory=new_transfer_id)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: Optional[datetime] = None

    def transition(self, status: TransferStatus, message: Optional[str] = None) -> 'TransferRecord':
        """
        Return a copy of this record in a new status

        Raises:
            InvalidStatusTransition: If this record is already terminal
                or the target status is pending
        """
        if self.status.is_terminal:
            raise InvalidStatusTransition(
                f"Transfer {self.transfer_id} is already {self.status.value}"
            )
        if not status.is_terminal:
            raise InvalidStatusTransition(
                f"Transfer {self.transfer_id} can only move to a terminal status"
            )
        return replace(
            self,
            status=status,
            status_message=message if message is not None else self.status_message,
            updated_at=datetime.now(timezone.utc),
        )

    @classmethod
    def from_row(cls, row) -> 'TransferRecord':
        return cls(
            transfer_id=row['transfer_id'],
            account_id=row['account_id'],
            type=TransferType(row['type']),
            amount=Decimal(row['amount']),
            fee=Decimal(row['fee']),
            sender_wallet=row['sender_wallet'],
            recipient_wallet=row['recipient_wallet'],
            note=row['note'],
            status=TransferStatus(row['status']),
            status_message=row['status_message'],
            related_transfer_id=row['related_transfer_id'],
            created_at=datetime.fromisoformat(row['created_at']),
            updated_at=datetime.fromisoformat(row['updated_at']) if row['updated_at'] else None,
        )

    def to_dict(self) -> Dict:
        """Convert to dictionary"""
        data = asdict(self)
        data['type'] = self.type.value
        data['status'] = self.status.value
        data['amount'] = str(self.amount)
        data['fee'] = str(self.fee)
        data['created_at'] = self.created_at.isoformat()
        if self.updated_at:
            data['updated_at'] = self.updated_at.isoformat()
        return data


class TransactionHistoryDB:
    """
    Transfer record store

    Features:
    - Insert and terminal-status updates
    - Per-account history
    - Mirror-record lookup by related transfer id
    - Error logging
    - Statistics and reconciliation queries
    """

    def __init__(self, db_path: str):
        self.db_path = db_path
        self.conn: Optional[aiosqlite.Connection] = None

    @staticmethod
    async def create(db_path: str = ":memory:") -> 'TransactionHistoryDB':
        """
        Open the database and create tables

        Args:
            db_path: Path to SQLite database (":memory:" for a private in-memory db)
        """
        self = TransactionHistoryDB(db_path)

        if db_path != ":memory:":
            directory = os.path.dirname(db_path)
            if directory:
                os.makedirs(directory, exist_ok=True)

        self.conn = await aiosqlite.connect(db_path)
        self.conn.row_factory = aiosqlite.Row
        await self._create_tables()

        logger.info(f"Transaction history database initialized: {db_path}")
        return self

    async def _create_tables(self):
        """Create database tables"""
        # Table 1: Transfers
        await self.conn.execute("""
            CREATE TABLE IF NOT EXISTS transfers (
                transfer_id TEXT PRIMARY KEY,
                account_id TEXT NOT NULL,
                type TEXT NOT NULL,
                amount TEXT NOT NULL,
                fee TEXT NOT NULL DEFAULT '0',
                sender_wallet TEXT NOT NULL,
                recipient_wallet TEXT NOT NULL,
                note TEXT,
                status TEXT NOT NULL DEFAULT 'pending',
                status_message TEXT,
                related_transfer_id TEXT,
                created_at TIMESTAMP NOT NULL,
                updated_at TIMESTAMP,
                CONSTRAINT valid_type CHECK (type IN ('send', 'receive')),
                CONSTRAINT valid_status CHECK (status IN ('pending', 'completed', 'failed', 'refunded'))
            )
        """)

        # Table 2: Errors
        await self.conn.execute("""
            CREATE TABLE IF NOT EXISTS errors (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                transfer_id TEXT,
                error_type TEXT NOT NULL,
                error_message TEXT NOT NULL,
                occurred_at TIMESTAMP NOT NULL
            )
        """)

        await self.conn.execute("CREATE INDEX IF NOT EXISTS idx_transfers_account ON transfers(account_id)")
        await self.conn.execute("CREATE INDEX IF NOT EXISTS idx_transfers_related ON transfers(related_transfer_id)")
        await self.conn.execute("CREATE INDEX IF NOT EXISTS idx_transfers_created ON transfers(created_at)")

        await self.conn.commit()
        logger.debug("Database tables created successfully")

    async def insert(self, record: TransferRecord) -> bool:
        """
        Record a transfer

        Args:
            record: Transfer record

        Returns:
            Success status
        """
        try:
            await self.conn.execute("""
                INSERT INTO transfers (
                    transfer_id, account_id, type, amount, fee,
                    sender_wallet, recipient_wallet, note, status, status_message,
                    related_transfer_id, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                record.transfer_id,
                record.account_id,
                record.type.value,
                str(record.amount),
                str(record.fee),
                record.sender_wallet,
                record.recipient_wallet,
                record.note,
                record.status.value,
                record.status_message,
                record.related_transfer_id,
                record.created_at.isoformat(),
                record.updated_at.isoformat() if record.updated_at else None,
            ))

            await self.conn.commit()
            logger.debug(f"✓ Transfer recorded: {record.transfer_id} ({record.type.value}, {record.status.value})")
            return True

        except sqlite3.IntegrityError:
            logger.error(f"✗ Duplicate transfer record: {record.transfer_id}")
            await self.conn.rollback()
            return False
        except sqlite3.Error as e:
            logger.error(f"✗ Error recording transfer: {e}")
            await self.conn.rollback()
            return False

    async def update_status(
        self,
        transfer_id: str,
        status: TransferStatus,
        message: Optional[str] = None
    ) -> bool:
        """
        Move a pending record to a terminal status

        The update only matches pending rows, so a record can never leave a
        terminal status even under concurrent updates.

        Args:
            transfer_id: Transfer ID
            status: New (terminal) status
            message: Optional failure/refund explanation

        Returns:
            True if updated, False if the record does not exist

        Raises:
            InvalidStatusTransition: If the record is already terminal or
                status is not terminal
        """
        if not status.is_terminal:
            raise InvalidStatusTransition(f"Cannot move transfer {transfer_id} back to {status.value}")

        cursor = await self.conn.execute("""
            UPDATE transfers
            SET status = ?, status_message = COALESCE(?, status_message), updated_at = ?
            WHERE transfer_id = ? AND status = 'pending'
        """, (status.value, message, datetime.now(timezone.utc).isoformat(), transfer_id))
        await self.conn.commit()

        if cursor.rowcount == 1:
            logger.debug(f"Transfer {transfer_id} -> {status.value}")
            return True

        existing = await self.get_transfer(transfer_id)
        if existing is None:
            logger.error(f"✗ Cannot update missing transfer: {transfer_id}")
            return False

        raise InvalidStatusTransition(
            f"Transfer {transfer_id} is already {existing.status.value}"
        )

    async def set_recipient_wallet(self, transfer_id: str, wallet_address: str) -> bool:
        """
        Store the effective recipient wallet once it is resolved

        Only pending rows match, so finalized records stay unchanged.

        Returns:
            True if the pending record was updated
        """
        cursor = await self.conn.execute("""
            UPDATE transfers
            SET recipient_wallet = ?, updated_at = ?
            WHERE transfer_id = ? AND status = 'pending'
        """, (wallet_address, datetime.now(timezone.utc).isoformat(), transfer_id))
        await self.conn.commit()

        if cursor.rowcount != 1:
            logger.error(f"✗ Cannot set recipient on transfer {transfer_id} (missing or finalized)")
            return False
        return True

    async def record_error(
        self,
        transfer_id: Optional[str],
        error_type: str,
        error_message: str
    ) -> bool:
        """
        Record an error

        Args:
            transfer_id: Transfer ID (if applicable)
            error_type: Type of error
            error_message: Error message

        Returns:
            Success status
        """
        try:
            await self.conn.execute("""
                INSERT INTO errors (
                    transfer_id, error_type, error_message, occurred_at
                ) VALUES (?, ?, ?, ?)
            """, (transfer_id, error_type, error_message, datetime.now(timezone.utc).isoformat()))

            await self.conn.commit()
            return True

        except sqlite3.Error as e:
            logger.error(f"Error recording error: {e}")
            return False

    async def get_errors(self, transfer_id: str) -> List[Dict]:
        async with self.conn.execute(
            "SELECT * FROM errors WHERE transfer_id = ? ORDER BY id", (transfer_id,)
        ) as cursor:
            return [dict(row) for row in await cursor.fetchall()]

    async def get_transfer(self, transfer_id: str) -> Optional[TransferRecord]:
        """
        Get transfer by ID

        Returns:
            TransferRecord or None
        """
        async with self.conn.execute(
            "SELECT * FROM transfers WHERE transfer_id = ?", (transfer_id,)
        ) as cursor:
            row = await cursor.fetchone()

        if row:
            return TransferRecord.from_row(row)
        return None

    async def list_by_account(self, account_id: str) -> List[TransferRecord]:
        """All records owned by an account, newest first"""
        async with self.conn.execute(
            "SELECT * FROM transfers WHERE account_id = ? ORDER BY created_at DESC", (account_id,)
        ) as cursor:
            rows = await cursor.fetchall()
        return [TransferRecord.from_row(row) for row in rows]

    async def get_related(self, transfer_id: str) -> List[TransferRecord]:
        """Mirror records that point back at a transfer"""
        async with self.conn.execute(
            "SELECT * FROM transfers WHERE related_transfer_id = ? ORDER BY created_at", (transfer_id,)
        ) as cursor:
            rows = await cursor.fetchall()
        return [TransferRecord.from_row(row) for row in rows]

    async def get_transfers_by_status(self, status: TransferStatus) -> List[TransferRecord]:
        async with self.conn.execute(
            "SELECT * FROM transfers WHERE status = ? ORDER BY created_at DESC", (status.value,)
        ) as cursor:
            rows = await cursor.fetchall()
        return [TransferRecord.from_row(row) for row in rows]

    async def _send_records(self) -> List[TransferRecord]:
        async with self.conn.execute("SELECT * FROM transfers WHERE type = 'send'") as cursor:
            rows = await cursor.fetchall()
        return [TransferRecord.from_row(row) for row in rows]

    async def get_statistics(self) -> Dict[str, Any]:
        """
        Get transfer statistics over send records

        Sums are computed in Python so Decimal amounts stay exact.

        Returns:
            Statistics dictionary
        """
        sends = await self._send_records()
        completed = [r for r in sends if r.status is TransferStatus.COMPLETED]

        total_volume = sum((r.amount for r in completed), Decimal("0"))
        total_fees = sum((r.fee for r in completed), Decimal("0"))
        total = len(sends)

        return {
            'total_transfers': total,
            'completed_transfers': len(completed),
            'failed_transfers': sum(1 for r in sends if r.status is TransferStatus.FAILED),
            'refunded_transfers': sum(1 for r in sends if r.status is TransferStatus.REFUNDED),
            'pending_transfers': sum(1 for r in sends if r.status is TransferStatus.PENDING),
            'success_rate': (len(completed) / total * 100) if total > 0 else 0,
            'total_volume': total_volume,
            'total_fees': total_fees,
        }

    async def reconcile(self, wallet_address: str) -> Dict[str, Any]:
        """
        Net completed flow for a wallet

        Args:
            wallet_address: Wallet to reconcile

        Returns:
            Reconciliation report (fees paid count as outflow)
        """
        sends = await self._send_records()
        completed = [r for r in sends if r.status is TransferStatus.COMPLETED]

        total_sent = sum(
            (r.amount + r.fee for r in completed if r.sender_wallet == wallet_address), Decimal("0")
        )
        total_received = sum(
            (r.amount for r in completed if r.recipient_wallet == wallet_address), Decimal("0")
        )

        return {
            'wallet_address': wallet_address,
            'total_sent': total_sent,
            'total_received': total_received,
            'net_flow': total_received - total_sent,
        }

    async def close(self):
        """Close database connection"""
        if self.conn:
            await self.conn.close()
            self.conn = None
            logger.info("Database connection closed")
