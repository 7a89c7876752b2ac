"""
conftest.py - Shared pytest fixtures for wallet transfer tests

Provides:
- In-memory account store and transfer history
- A fully wired WalletService with seeded accounts
- Ledger fault-injection helper
"""

from decimal import Decimal

import pytest
import pytest_asyncio

from wallet_transfer import (
    AccountStore,
    TransactionHistoryDB,
    TransferConfig,
    WalletService,
)


ALICE_WALLET = "gCoinAlice0001"
BOB_WALLET = "gCoinBob00001"
FEE_WALLET = "gCoinAdmin123456"


# =============================================================================
# STORES
# =============================================================================

@pytest_asyncio.fixture
async def account_store():
    """Empty in-memory account store."""
    store = await AccountStore.create(":memory:")
    yield store
    await store.close()


@pytest_asyncio.fixture
async def history_db():
    """Empty in-memory transfer history."""
    db = await TransactionHistoryDB.create(":memory:")
    yield db
    await db.close()


# =============================================================================
# SERVICE
# =============================================================================

@pytest.fixture
def config():
    """Default configuration with in-memory databases."""
    return TransferConfig()


@pytest_asyncio.fixture
async def service(config):
    """WalletService over fresh in-memory stores."""
    svc = await WalletService.create(config)
    yield svc
    await svc.close()


@pytest_asyncio.fixture
async def accounts(service):
    """
    Seed the standard accounts:
    - alice: 1000 balance, the usual sender
    - bob: empty recipient
    - admin: fee-collection account
    """
    store = service.account_store
    alice = await store.create_privileged("acct-alice", ALICE_WALLET, "alice", "alice@example.com", Decimal("1000"))
    bob = await store.create_privileged("acct-bob", BOB_WALLET, "bob", "bob@example.com")
    admin = await store.create_privileged("acct-admin", FEE_WALLET, "admin", "admin@example.com")
    return {'alice': alice, 'bob': bob, 'admin': admin}


async def balance_of(store: AccountStore, account_id: str) -> Decimal:
    account = await store.get_by_id(account_id)
    return account.balance


def fail_deltas_for(monkeypatch, ledger, account_id: str, error: str = "Storage unavailable"):
    """Make ledger.apply_delta fail for one account, pass through for the rest."""
    original = ledger.apply_delta

    async def apply_delta(target_id, signed_amount):
        if target_id == account_id:
            return False, error
        return await original(target_id, signed_amount)

    monkeypatch.setattr(ledger, "apply_delta", apply_delta)
