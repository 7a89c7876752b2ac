"""
Account Store

SQLite-backed account storage accessed through aiosqlite.

Balances are stored as TEXT and handled as Decimal so repeated deltas never
accumulate float rounding drift. Balance changes go through
apply_balance_delta, which reads and writes inside a single
BEGIN IMMEDIATE transaction (conditional decrement).
"""

import asyncio
import os
import sqlite3
from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, List, Optional

import aiosqlite
from loguru import logger

from .exceptions import AccountNotFoundError, DuplicateAccountError


@dataclass
class Account:
    """Wallet account"""
    id: str
    wallet_address: str
    username: Optional[str]
    email: Optional[str]
    balance: Decimal
    created_at: datetime

    @classmethod
    def from_row(cls, row) -> 'Account':
        return cls(
            id=row['id'],
            wallet_address=row['wallet_address'],
            username=row['username'],
            email=row['email'],
            balance=Decimal(row['balance']),
            created_at=datetime.fromisoformat(row['created_at']),
        )

    def to_dict(self) -> Dict:
        data = asdict(self)
        data['balance'] = str(self.balance)
        data['created_at'] = self.created_at.isoformat()
        return data


class AccountStore:
    """
    Account persistence

    Features:
    - Lookup by id, wallet address and username
    - Privileged creation of accounts on behalf of third parties
    - Atomic conditional balance updates
    """

    def __init__(self, db_path: str):
        self.db_path = db_path
        self.connection: Optional[aiosqlite.Connection] = None
        # Serializes read-modify-write transactions on the shared connection
        self._write_lock = asyncio.Lock()

    @staticmethod
    async def create(db_path: str = ":memory:") -> 'AccountStore':
        """Open the database and create tables"""
        self = AccountStore(db_path)

        if db_path != ":memory:":
            directory = os.path.dirname(db_path)
            if directory:
                os.makedirs(directory, exist_ok=True)

        # isolation_level=None: explicit BEGIN/COMMIT only
        self.connection = await aiosqlite.connect(db_path, isolation_level=None)
        self.connection.row_factory = aiosqlite.Row

        await self._init_schema()

        logger.info(f"Account store initialized: {db_path}")
        return self

    async def _init_schema(self):
        await self.connection.execute("""
            CREATE TABLE IF NOT EXISTS accounts (
                id TEXT PRIMARY KEY,
                wallet_address TEXT UNIQUE NOT NULL,
                username TEXT UNIQUE,
                email TEXT,
                balance TEXT NOT NULL DEFAULT '0',
                created_at TIMESTAMP NOT NULL
            )
        """)
        await self.connection.execute(
            "CREATE INDEX IF NOT EXISTS idx_accounts_username ON accounts(username)"
        )

    async def _fetch_one(self, query: str, params: tuple) -> Optional[Account]:
        async with self.connection.execute(query, params) as cursor:
            row = await cursor.fetchone()
        return Account.from_row(row) if row else None

    async def get_by_id(self, account_id: str) -> Optional[Account]:
        return await self._fetch_one("SELECT * FROM accounts WHERE id = ?", (account_id,))

    async def get_by_wallet_address(self, wallet_address: str) -> Optional[Account]:
        return await self._fetch_one(
            "SELECT * FROM accounts WHERE wallet_address = ?", (wallet_address,)
        )

    async def get_by_username(self, username: str) -> Optional[Account]:
        return await self._fetch_one("SELECT * FROM accounts WHERE username = ?", (username,))

    async def wallet_exists(self, wallet_address: str) -> bool:
        return await self.get_by_wallet_address(wallet_address) is not None

    async def username_exists(self, username: str) -> bool:
        return await self.get_by_username(username) is not None

    async def list_all_wallet_addresses(self, excluding: Optional[str] = None) -> List[Account]:
        """
        All accounts except the one holding `excluding`, ordered by wallet

        Args:
            excluding: Wallet address to leave out (usually the sender's)

        Returns:
            List of Account
        """
        async with self.connection.execute(
            "SELECT * FROM accounts WHERE wallet_address != ? ORDER BY wallet_address ASC",
            (excluding or "",)
        ) as cursor:
            rows = await cursor.fetchall()
        return [Account.from_row(row) for row in rows]

    async def create_privileged(
        self,
        account_id: str,
        wallet_address: str,
        username: Optional[str],
        email: Optional[str],
        initial_balance: Decimal = Decimal("0")
    ) -> Account:
        """
        Create an account on behalf of another user

        Args:
            account_id: New account id
            wallet_address: Unique wallet address
            username: Unique username (optional)
            email: Contact email (optional)
            initial_balance: Starting balance

        Returns:
            The created Account

        Raises:
            DuplicateAccountError: If id, wallet or username is already taken
        """
        if initial_balance < 0:
            raise ValueError("Initial balance must not be negative")

        created_at = datetime.now(timezone.utc)
        try:
            async with self._write_lock:
                await self.connection.execute("""
                    INSERT INTO accounts (id, wallet_address, username, email, balance, created_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                """, (
                    account_id,
                    wallet_address,
                    username,
                    email,
                    str(initial_balance),
                    created_at.isoformat(),
                ))
        except sqlite3.IntegrityError as e:
            raise DuplicateAccountError(f"Account already exists for {wallet_address}: {e}")

        logger.debug(f"Account created: {account_id} ({wallet_address[:10]}...)")
        return Account(
            id=account_id,
            wallet_address=wallet_address,
            username=username,
            email=email,
            balance=initial_balance,
            created_at=created_at,
        )

    async def apply_balance_delta(
        self,
        account_id: str,
        signed_amount: Decimal,
        min_balance: Optional[Decimal] = Decimal("0")
    ) -> Optional[Decimal]:
        """
        Add a signed amount to an account balance

        The read and the write run in one IMMEDIATE transaction, so two
        concurrent debits cannot both pass the balance check.

        Args:
            account_id: Account to update
            signed_amount: Positive to credit, negative to debit
            min_balance: Floor the new balance must respect (None = no floor)

        Returns:
            New balance, or None if the floor would be violated (nothing written)

        Raises:
            AccountNotFoundError: If the account does not exist
        """
        async with self._write_lock:
            await self.connection.execute("BEGIN IMMEDIATE")
            try:
                async with self.connection.execute(
                    "SELECT balance FROM accounts WHERE id = ?", (account_id,)
                ) as cursor:
                    row = await cursor.fetchone()

                if row is None:
                    raise AccountNotFoundError(f"Account {account_id} not found")

                new_balance = Decimal(row['balance']) + signed_amount
                if min_balance is not None and new_balance < min_balance:
                    await self.connection.execute("ROLLBACK")
                    logger.debug(f"Balance delta {signed_amount} rejected for {account_id}: would reach {new_balance}")
                    return None

                await self.connection.execute(
                    "UPDATE accounts SET balance = ? WHERE id = ?",
                    (str(new_balance), account_id)
                )
                await self.connection.execute("COMMIT")
                return new_balance

            except BaseException:
                if self.connection.in_transaction:
                    await self.connection.execute("ROLLBACK")
                raise

    async def close(self):
        """Close database connection"""
        if self.connection:
            await self.connection.close()
            self.connection = None
            logger.info("Account store connection closed")
