"""
Ledger Mutator

Single signed-delta primitive for every balance change a transfer makes:
sender debit -(amount+fee), recipient credit +amount, fee account credit +fee.

Debits go through the store's conditional decrement (floor of zero), so a
debit that would overdraw the account is rejected without writing anything.
The mutator never retries; a rejected delta is reported to the caller.
"""

import sqlite3
from decimal import Decimal
from typing import Optional, Tuple

from loguru import logger

from .account_store import AccountStore
from .exceptions import AccountNotFoundError


class LedgerMutator:
    """Applies balance deltas through the account store"""

    def __init__(self, account_store: AccountStore):
        self.account_store = account_store

    async def apply_delta(
        self,
        account_id: str,
        signed_amount: Decimal
    ) -> Tuple[bool, Optional[str]]:
        """
        Apply a signed balance delta

        Args:
            account_id: Account to update
            signed_amount: Negative to debit, positive to credit

        Returns:
            Tuple of (success, error_message)
        """
        min_balance = Decimal("0") if signed_amount < 0 else None

        try:
            new_balance = await self.account_store.apply_balance_delta(
                account_id, signed_amount, min_balance=min_balance
            )
        except AccountNotFoundError as e:
            logger.error(f"✗ Balance delta {signed_amount} failed: {e}")
            return False, str(e)
        except sqlite3.Error as e:
            logger.error(f"✗ Balance delta {signed_amount} on {account_id} failed: {e}")
            return False, f"Storage error: {e}"

        if new_balance is None:
            logger.warning(f"Balance delta {signed_amount} on {account_id} rejected (insufficient balance)")
            return False, "Insufficient balance"

        logger.debug(f"✓ Balance delta {signed_amount} on {account_id} -> {new_balance}")
        return True, None
