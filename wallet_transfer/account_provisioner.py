"""
Account Provisioner

Creates zero-balance accounts for wallet addresses that receive a transfer
before their owner has registered. This is the only component allowed to
create accounts on behalf of a third party.
"""

import hashlib
import sqlite3
import uuid
from decimal import Decimal
from typing import Optional

from loguru import logger

from .account_store import Account, AccountStore
from .address_resolver import WALLET_PREFIX
from .exceptions import DuplicateAccountError


def derive_username(wallet_address: str, prefix: str = WALLET_PREFIX) -> str:
    """
    Username for a provisioned wallet

    user_ + first 8 suffix characters + 6 hex characters of the wallet's
    SHA-256. Same wallet, same username.
    """
    suffix = wallet_address[len(prefix):] if wallet_address.startswith(prefix) else wallet_address
    digest = hashlib.sha256(wallet_address.encode('utf-8')).hexdigest()
    return f"user_{suffix[:8]}{digest[:6]}"


class AccountProvisioner:
    """Privileged account creation for unknown recipient wallets"""

    def __init__(
        self,
        account_store: AccountStore,
        prefix: str = WALLET_PREFIX,
        email_domain: str = "example.com"
    ):
        self.account_store = account_store
        self.prefix = prefix
        self.email_domain = email_domain

    async def provision(self, wallet_address: str) -> Optional[Account]:
        """
        Create an account for a wallet address

        The caller has already checked the address format.

        Args:
            wallet_address: Recipient wallet

        Returns:
            The new Account, or None if it could not be created
        """
        username = derive_username(wallet_address, self.prefix)
        account_id = str(uuid.uuid4())

        try:
            account = await self.account_store.create_privileged(
                account_id=account_id,
                wallet_address=wallet_address,
                username=username,
                email=f"{username}@{self.email_domain}",
                initial_balance=Decimal("0"),
            )
        except DuplicateAccountError as e:
            logger.error(f"✗ Provisioning failed for {wallet_address[:10]}...: {e}")
            return None
        except sqlite3.Error as e:
            logger.error(f"✗ Provisioning failed for {wallet_address[:10]}... (storage error): {e}")
            return None

        logger.info(f"✓ Provisioned account {username} for {wallet_address[:10]}...")
        return account
