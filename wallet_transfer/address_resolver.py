"""
Address Resolver

Maps a recipient token (username or wallet address) to an account.

Wallet tokens that have no exact match fall back to fuzzy matching against
every known wallet. The best candidate is auto-selected when its score
exceeds the similarity threshold, and the top candidates are always returned
as suggestions. Usernames never fall back to fuzzy matching.
"""

import re
import sqlite3
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from loguru import logger

from .account_store import Account, AccountStore


WALLET_PREFIX = "gCoin"
MIN_SUFFIX_LENGTH = 8


def is_valid_wallet_address(
    wallet_address: str,
    prefix: str = WALLET_PREFIX,
    min_suffix_length: int = MIN_SUFFIX_LENGTH
) -> bool:
    """
    Check wallet address format: prefix followed by at least
    min_suffix_length alphanumeric characters

    Args:
        wallet_address: Address to check
        prefix: Wallet prefix
        min_suffix_length: Minimum suffix length

    Returns:
        True if the address is well-formed
    """
    if not wallet_address:
        return False
    pattern = rf"^{re.escape(prefix)}[a-zA-Z0-9]{{{min_suffix_length},}}$"
    return re.match(pattern, wallet_address) is not None


def standardize_wallet_address(wallet_address: str, prefix: str = WALLET_PREFIX) -> str:
    """Strip whitespace and add the prefix to a bare suffix"""
    wallet_address = (wallet_address or "").strip()
    if not wallet_address or wallet_address.startswith(prefix):
        return wallet_address
    return f"{prefix}{wallet_address}"


def similarity_score(candidate: str, target: str, prefix: str = WALLET_PREFIX) -> float:
    """
    Similarity between two wallet addresses in [0, 1]

    Exact match scores 1.0. Otherwise both addresses must carry the prefix;
    the score is the share of matching characters over the shared length of
    the suffixes, minus a penalty of |length difference| / longer length.

    Args:
        candidate: Known wallet address
        target: Address the user typed

    Returns:
        Score (0.0 when the prefix convention is not shared)
    """
    if candidate == target:
        return 1.0
    if not (candidate.startswith(prefix) and target.startswith(prefix)):
        return 0.0

    candidate_suffix = candidate[len(prefix):]
    target_suffix = target[len(prefix):]

    shared_length = min(len(candidate_suffix), len(target_suffix))
    if shared_length == 0:
        return 0.0

    matches = sum(1 for a, b in zip(candidate_suffix, target_suffix) if a == b)
    longer = max(len(candidate_suffix), len(target_suffix))
    penalty = abs(len(candidate_suffix) - len(target_suffix)) / longer

    return max(0.0, matches / shared_length - penalty)


@dataclass
class ResolvedRecipient:
    """
    Outcome of a resolution

    wallet is the effective recipient wallet (the auto-selected candidate's
    wallet after a fuzzy match), or None for an unknown username.
    """
    wallet: Optional[str]
    account: Optional[Account]
    suggestions: List[str] = field(default_factory=list)
    auto_selected: bool = False

    @property
    def found(self) -> bool:
        return self.account is not None


class AddressResolver:
    """
    Resolves recipient tokens against the account store (read-only)
    """

    def __init__(
        self,
        account_store: AccountStore,
        prefix: str = WALLET_PREFIX,
        similarity_threshold: float = 0.3,
        max_suggestions: int = 3
    ):
        self.account_store = account_store
        self.prefix = prefix
        self.similarity_threshold = similarity_threshold
        self.max_suggestions = max_suggestions

    async def resolve(
        self,
        token: str,
        is_username: bool,
        exclude_wallet: Optional[str] = None
    ) -> ResolvedRecipient:
        """
        Resolve a recipient token

        Args:
            token: Username or wallet address
            is_username: Treat the token as a username (exact lookup only)
            exclude_wallet: Wallet left out of fuzzy candidates (the sender's)

        Returns:
            ResolvedRecipient (account is None when nothing matched)
        """
        if is_username:
            account = await self.account_store.get_by_username(token)
            if account:
                logger.debug(f"Username {token} -> {account.wallet_address[:10]}...")
                return ResolvedRecipient(wallet=account.wallet_address, account=account)
            logger.debug(f"Username {token} not found")
            return ResolvedRecipient(wallet=None, account=None)

        account = await self.account_store.get_by_wallet_address(token)
        if account:
            logger.debug(f"Exact wallet match: {token[:10]}...")
            return ResolvedRecipient(wallet=account.wallet_address, account=account)

        ranked = await self._rank_candidates(token, exclude_wallet)
        suggestions = [candidate.wallet_address for candidate, _ in ranked[:self.max_suggestions]]

        if ranked and ranked[0][1] > self.similarity_threshold:
            best, score = ranked[0]
            logger.info(f"Fuzzy match {token[:10]}... -> {best.wallet_address[:10]}... (score {score:.2f})")
            return ResolvedRecipient(
                wallet=best.wallet_address,
                account=best,
                suggestions=suggestions,
                auto_selected=True,
            )

        logger.debug(f"No wallet match for {token[:10]}... ({len(suggestions)} suggestions)")
        return ResolvedRecipient(wallet=token, account=None, suggestions=suggestions)

    async def _rank_candidates(
        self,
        token: str,
        exclude_wallet: Optional[str]
    ) -> List[Tuple[Account, float]]:
        """All candidate accounts with their scores, best first"""
        try:
            candidates = await self.account_store.list_all_wallet_addresses(excluding=exclude_wallet)
        except sqlite3.Error as e:
            logger.error(f"Error listing wallets for fuzzy match: {e}")
            return []

        scored = [
            (candidate, similarity_score(candidate.wallet_address, token, self.prefix))
            for candidate in candidates
        ]
        # sorted() is stable, so ties keep wallet order
        return sorted(scored, key=lambda pair: pair[1], reverse=True)
