"""
Tests for the caller-facing WalletService and the configuration layer.
"""

from decimal import Decimal
from pathlib import Path

import pytest
import yaml

from wallet_transfer import (
    ConfigError,
    InvalidAmountError,
    TransferConfig,
    TransferResult,
    TransferStatus,
    WalletService,
    setup_logging,
)

from tests.conftest import ALICE_WALLET, BOB_WALLET


REPO_CONFIG = Path(__file__).resolve().parent.parent / "transfer_config.yaml"


class TestPreviews:
    """Previews share the engine's calculator."""

    @pytest.mark.asyncio
    async def test_quote_fee_matches_charged_fee(self, service, accounts):
        quote = service.quote_fee(40)

        result = await service.initiate_transfer("acct-alice", ALICE_WALLET, BOB_WALLET, 40)

        assert quote.fee == result.fee
        assert quote.description == "1% of transaction amount"

    @pytest.mark.asyncio
    async def test_check_limit(self, service):
        assert service.check_limit("1000000") is True
        assert service.check_limit("1000000.01") is False

    @pytest.mark.asyncio
    async def test_non_finite_amount_rejected(self, service):
        with pytest.raises(InvalidAmountError):
            service.quote_fee("NaN")
        with pytest.raises(InvalidAmountError):
            service.check_limit("Infinity")

    @pytest.mark.asyncio
    async def test_staking_quotes(self, service):
        assert service.quote_staking_reward(1000, 7) == Decimal("5.75")
        assert service.early_withdrawal_penalty(1000) == Decimal("100.00")


class TestHistory:

    @pytest.mark.asyncio
    async def test_get_transfers_and_verify(self, service, accounts):
        result = await service.initiate_transfer("acct-alice", ALICE_WALLET, BOB_WALLET, 40)

        history = await service.get_transfers("acct-alice")
        assert [r.transfer_id for r in history] == [result.transfer_id]

        verified = await service.verify_transfer("acct-alice", result.transfer_id, TransferStatus.COMPLETED)
        assert verified is not None
        assert verified.amount == Decimal("40")

        assert await service.verify_transfer("acct-alice", result.transfer_id, TransferStatus.FAILED) is None
        assert await service.verify_transfer("acct-bob", result.transfer_id) is None
        assert await service.verify_transfer("acct-alice", "missing") is None

    @pytest.mark.asyncio
    async def test_recipient_checks(self, service, accounts):
        assert await service.recipient_exists(BOB_WALLET)
        assert await service.recipient_exists("Bob00001")
        assert not await service.recipient_exists("gCoinNobody001")
        assert await service.username_exists(" bob ")
        assert not await service.username_exists("nobody")

    @pytest.mark.asyncio
    async def test_statistics(self, service, accounts):
        await service.initiate_transfer("acct-alice", ALICE_WALLET, BOB_WALLET, 40)
        await service.initiate_transfer("acct-alice", ALICE_WALLET, "nobody", 40, is_username=True)

        stats = await service.get_statistics()

        assert stats['total_transfers'] == 2
        assert stats['completed_transfers'] == 1
        assert stats['refunded_transfers'] == 1
        assert stats['total_fees'] == Decimal("0.40")

        flow = await service.reconcile(BOB_WALLET)
        assert flow['net_flow'] == Decimal("40")

    def test_result_to_dict(self):
        data = TransferResult(
            success=False,
            transfer_id="t-1",
            status=TransferStatus.REFUNDED,
            message="User nobody not found",
            amount=Decimal("40"),
            fee=Decimal("0.40"),
        ).to_dict()

        assert data['status'] == "refunded"
        assert data['amount'] == "40"
        assert data['fee'] == "0.40"
        assert data['suggestions'] == []


class TestConfig:

    def test_defaults(self):
        config = TransferConfig()
        assert config.fee_wallet == "gCoinAdmin123456"
        assert config.daily_limit == Decimal("1000000")
        assert config.similarity_threshold == 0.3
        assert len(config.fee_tiers) == 3

    def test_missing_file_uses_defaults(self, tmp_path):
        config = TransferConfig.from_yaml(str(tmp_path / "missing.yaml"))
        assert config == TransferConfig()

    def test_repo_config_loads(self):
        config = TransferConfig.from_yaml(str(REPO_CONFIG))
        assert config.fee_tiers == TransferConfig().fee_tiers
        assert config.history_db_path == "data/transfer_history.db"

    def test_overrides(self, tmp_path):
        path = tmp_path / "transfer_config.yaml"
        path.write_text(yaml.dump({
            'wallet': {'fee_wallet': 'gCoinTreasury01'},
            'fees': {'tiers': [{'flat': 2}, {'up_to': 10, 'rate': '0.05'}], 'currency_label': 'GC'},
            'limits': {'daily_limit': 5000},
            'logging': {'level': 'debug'},
        }))

        config = TransferConfig.from_yaml(str(path))

        assert config.fee_wallet == "gCoinTreasury01"
        assert config.daily_limit == Decimal("5000")
        assert config.log_level == "DEBUG"
        # bounded tiers are sorted ahead of the open-ended one
        assert config.fee_tiers[0].up_to == Decimal("10")
        assert config.fee_tiers[1].up_to is None
        assert config.staking_annual_rate == Decimal("0.30")

    @pytest.mark.parametrize("data", [
        {'fees': {'tiers': [{'up_to': 10}]}},
        {'fees': {'tiers': [{'up_to': 10, 'rate': '0.01', 'flat': 1}]}},
        {'fees': {'tiers': [{'flat': 1}, {'flat': 2}]}},
        {'fees': {'tiers': []}},
        {'limits': {'daily_limit': 0}},
        {'limits': {'daily_limit': 'lots'}},
        {'resolver': {'similarity_threshold': 1.5}},
        {'wallet': {'fee_wallet': 'Admin123456'}},
        {'wallet': {'min_suffix_length': 'eight'}},
        {'fees': {'decimal_places': 'two'}},
        {'resolver': {'similarity_threshold': 'close'}},
        {'resolver': {'max_suggestions': [3]}},
    ])
    def test_invalid_values(self, data):
        with pytest.raises(ConfigError):
            TransferConfig.from_dict(data)

    def test_save_yaml(self, tmp_path):
        config = TransferConfig(daily_limit=Decimal("2500"))

        path = config.save_yaml(str(tmp_path / "out.yaml"))

        assert TransferConfig.from_yaml(str(path)) == config

    @pytest.mark.asyncio
    async def test_service_uses_config(self):
        config = TransferConfig.from_dict({
            'fees': {'tiers': [{'flat': '1'}]},
            'limits': {'daily_limit': 100},
        })
        service = await WalletService.create(config)
        try:
            assert service.quote_fee(50).fee == Decimal("1.00")
            assert service.check_limit(101) is False
            assert service.engine.fee_wallet == config.fee_wallet
        finally:
            await service.close()

    @pytest.mark.asyncio
    async def test_service_configures_logging(self):
        service = await WalletService.create(TransferConfig(log_level="WARNING"), configure_logging=True)
        try:
            assert service.config.log_level == "WARNING"
        finally:
            await service.close()
            setup_logging("INFO")
