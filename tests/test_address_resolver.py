"""
Tests for wallet format checks, similarity scoring and recipient resolution.
"""

from decimal import Decimal

import pytest
from hypothesis import given
from hypothesis import strategies as st

from wallet_transfer import (
    AddressResolver,
    is_valid_wallet_address,
    similarity_score,
    standardize_wallet_address,
)


suffixes = st.text(alphabet="ABCDEFabcdef0123456789", min_size=0, max_size=16)


class TestWalletFormat:

    @pytest.mark.parametrize("wallet", ["gCoinAB12CD34", "gCoinAdmin123456", "gCoinabcdefgh"])
    def test_valid_addresses(self, wallet):
        assert is_valid_wallet_address(wallet) is True

    @pytest.mark.parametrize("wallet", [
        "",
        "gCoinAB12",        # suffix too short
        "gCoinAB12CD3!",    # non-alphanumeric
        "xCoinAB12CD34",    # wrong prefix
        "AB12CD34",         # no prefix
    ])
    def test_invalid_addresses(self, wallet):
        assert is_valid_wallet_address(wallet) is False

    def test_custom_prefix_and_length(self):
        assert is_valid_wallet_address("w.1234", prefix="w.", min_suffix_length=4) is True
        assert is_valid_wallet_address("wx1234", prefix="w.", min_suffix_length=4) is False

    def test_standardize_adds_prefix(self):
        assert standardize_wallet_address("AB12CD34") == "gCoinAB12CD34"

    def test_standardize_keeps_prefixed_address(self):
        assert standardize_wallet_address("  gCoinAB12CD34 ") == "gCoinAB12CD34"

    def test_standardize_empty(self):
        assert standardize_wallet_address("   ") == ""


class TestSimilarityScore:

    def test_exact_match(self):
        assert similarity_score("gCoinAB12CD34", "gCoinAB12CD34") == 1.0

    def test_shared_prefix_partial_match(self):
        assert similarity_score("gCoinAB12CD34", "gCoinAB12CD99") == pytest.approx(0.75)

    def test_length_difference_penalized(self):
        # 7 of 7 shared characters match, minus 1/8 length penalty
        assert similarity_score("gCoinAB12CD34", "gCoinAB12CD3") == pytest.approx(0.875)

    def test_missing_prefix_scores_zero(self):
        assert similarity_score("gCoinAB12CD34", "AB12CD34") == 0.0

    def test_never_negative(self):
        assert similarity_score("gCoinA", "gCoinZZZZZZZZZZZZ") == 0.0

    @given(suffixes, suffixes)
    def test_score_bounded_and_symmetric(self, a, b):
        wallet_a, wallet_b = f"gCoin{a}", f"gCoin{b}"
        score = similarity_score(wallet_a, wallet_b)
        assert 0.0 <= score <= 1.0
        assert score == similarity_score(wallet_b, wallet_a)


class TestResolver:

    @pytest.fixture
    def resolver(self, account_store):
        return AddressResolver(account_store)

    async def _seed(self, store, *wallets):
        for i, wallet in enumerate(wallets):
            await store.create_privileged(f"acct-{i}", wallet, f"user{i}", None, Decimal("0"))

    @pytest.mark.asyncio
    async def test_exact_wallet_match(self, account_store, resolver):
        await self._seed(account_store, "gCoinAB12CD34")

        resolved = await resolver.resolve("gCoinAB12CD34", is_username=False)

        assert resolved.found
        assert resolved.wallet == "gCoinAB12CD34"
        assert resolved.suggestions == []
        assert resolved.auto_selected is False

    @pytest.mark.asyncio
    async def test_fuzzy_match_selects_closest_wallet(self, account_store, resolver):
        await self._seed(account_store, "gCoinAB12CD34", "gCoinAB12EF56", "gCoinZZ99XX00", "gCoinQQ11RR22")

        resolved = await resolver.resolve("gCoinAB12CD99", is_username=False)

        assert resolved.auto_selected is True
        assert resolved.account.wallet_address == "gCoinAB12CD34"
        assert resolved.wallet == "gCoinAB12CD34"
        assert resolved.suggestions[0] == "gCoinAB12CD34"
        assert len(resolved.suggestions) == 3

        scores = [similarity_score(s, "gCoinAB12CD99") for s in resolved.suggestions]
        assert scores == sorted(scores, reverse=True)

    @pytest.mark.asyncio
    async def test_suggestions_returned_without_selection(self, account_store, resolver):
        await self._seed(account_store, "gCoinZZ99XX00", "gCoinQQ11RR22")

        resolved = await resolver.resolve("gCoinAB12CD99", is_username=False)

        assert resolved.account is None
        assert resolved.wallet == "gCoinAB12CD99"
        assert set(resolved.suggestions) == {"gCoinZZ99XX00", "gCoinQQ11RR22"}

    @pytest.mark.asyncio
    async def test_excluded_wallet_never_suggested(self, account_store, resolver):
        await self._seed(account_store, "gCoinAB12CD34")

        resolved = await resolver.resolve("gCoinAB12CD99", is_username=False, exclude_wallet="gCoinAB12CD34")

        assert resolved.account is None
        assert resolved.suggestions == []

    @pytest.mark.asyncio
    async def test_max_suggestions(self, account_store):
        await self._seed(account_store, "gCoinAB12CD34", "gCoinAB12CD35", "gCoinAB12CD36")
        resolver = AddressResolver(account_store, max_suggestions=1)

        resolved = await resolver.resolve("gCoinAB12CD99", is_username=False)

        assert len(resolved.suggestions) == 1

    @pytest.mark.asyncio
    async def test_username_exact_match(self, account_store, resolver):
        await self._seed(account_store, "gCoinAB12CD34")

        resolved = await resolver.resolve("user0", is_username=True)

        assert resolved.account.id == "acct-0"
        assert resolved.wallet == "gCoinAB12CD34"

    @pytest.mark.asyncio
    async def test_username_has_no_fuzzy_fallback(self, account_store, resolver):
        await self._seed(account_store, "gCoinAB12CD34")

        resolved = await resolver.resolve("user01", is_username=True)

        assert resolved.account is None
        assert resolved.wallet is None
        assert resolved.suggestions == []
