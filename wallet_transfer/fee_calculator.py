"""
Fee & Limit Calculator

Pure functions of amount used by both the preview path (WalletService.quote_fee)
and the TransferEngine, so a quoted fee is always the fee that gets charged.

Default policy:
- 1% fee for transfers up to 50
- Flat fee of 5 for transfers up to 100
- Flat fee of 10 above 100
- Per-transaction ceiling of 1,000,000
- Staking reward = principal * APR * days / 365 (APR 30%)
"""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_EVEN, ROUND_UP
from typing import Any, List, Optional

from .exceptions import InvalidAmountError


DAYS_PER_YEAR = Decimal("365")
REWARD_DECIMAL_PLACES = 2


def to_decimal(value: Any) -> Decimal:
    """
    Convert a caller-supplied number to Decimal

    Floats go through str() so 0.1 stays 0.1.

    Raises:
        InvalidAmountError: If the value is not a finite number
    """
    if isinstance(value, bool):
        raise InvalidAmountError(f"Not a number: {value!r}")
    if not isinstance(value, Decimal):
        try:
            value = Decimal(str(value))
        except (InvalidOperation, ValueError, TypeError):
            raise InvalidAmountError(f"Not a number: {value!r}")
    if not value.is_finite():
        raise InvalidAmountError(f"Not a finite number: {value}")
    return value


def format_decimal(value: Decimal) -> str:
    """Decimal without trailing zeros or exponent: 5.00 -> '5', 0.50 -> '0.5'"""
    normalized = value.normalize()
    if normalized == normalized.to_integral_value():
        return str(int(normalized))
    return format(normalized, 'f')


@dataclass(frozen=True)
class FeeTier:
    """
    One band of the fee schedule

    Attributes:
        up_to: Inclusive upper bound of the band (None = unbounded)
        rate: Proportional fee (0.01 = 1%), or None
        flat: Fixed fee, or None
    """
    up_to: Optional[Decimal]
    rate: Optional[Decimal] = None
    flat: Optional[Decimal] = None

    def applies_to(self, amount: Decimal) -> bool:
        return self.up_to is None or amount <= self.up_to

    def fee_for(self, amount: Decimal) -> Decimal:
        if self.rate is not None:
            return amount * self.rate
        return self.flat


@dataclass(frozen=True)
class FeeQuote:
    """Fee preview returned to callers"""
    amount: Decimal
    fee: Decimal
    description: str

    @property
    def total(self) -> Decimal:
        return self.amount + self.fee


class FeeCalculator:
    """
    Tiered fee schedule, per-transaction limit and staking reward

    The same instance is shared by the quoting surface and the engine.
    """

    def __init__(
        self,
        tiers: List[FeeTier],
        daily_limit: Decimal = Decimal("1000000"),
        staking_annual_rate: Decimal = Decimal("0.30"),
        early_withdrawal_penalty_rate: Decimal = Decimal("0.10"),
        decimal_places: int = 2,
        currency_label: str = "GCoins"
    ):
        """
        Initialize calculator

        Args:
            tiers: Fee bands in ascending order, unbounded band last
            daily_limit: Maximum amount of a single transfer
            staking_annual_rate: Advertised APR for staking
            early_withdrawal_penalty_rate: Share of principal forfeited on early unstake
            decimal_places: Fees are rounded up to this precision
            currency_label: Unit name used in fee descriptions
        """
        if not tiers:
            raise ValueError("At least one fee tier is required")

        self.tiers = list(tiers)
        self.daily_limit = daily_limit
        self.staking_annual_rate = staking_annual_rate
        self.early_withdrawal_penalty_rate = early_withdrawal_penalty_rate
        self.currency_label = currency_label
        self._quantizer = Decimal(10) ** -decimal_places

    @classmethod
    def from_config(cls, config) -> 'FeeCalculator':
        """Build a calculator from a TransferConfig"""
        return cls(
            tiers=config.fee_tiers,
            daily_limit=config.daily_limit,
            staking_annual_rate=config.staking_annual_rate,
            early_withdrawal_penalty_rate=config.early_withdrawal_penalty,
            decimal_places=config.fee_decimal_places,
            currency_label=config.currency_label,
        )

    def _tier_for(self, amount: Decimal) -> FeeTier:
        for tier in self.tiers:
            if tier.applies_to(amount):
                return tier
        # amount is above every bounded tier and there is no open-ended one
        return self.tiers[-1]

    def fee(self, amount: Any) -> Decimal:
        """
        Fee charged for a transfer of the given amount

        Args:
            amount: Transfer amount

        Returns:
            Fee rounded up to the configured precision (0 for non-positive amounts)
        """
        amount = to_decimal(amount)
        if amount <= 0:
            return Decimal("0")

        raw_fee = self._tier_for(amount).fee_for(amount)
        return raw_fee.quantize(self._quantizer, rounding=ROUND_UP)

    def fee_description(self, amount: Any) -> str:
        """Human-readable explanation of the fee for this amount"""
        tier = self._tier_for(to_decimal(amount))
        if tier.rate is not None:
            return f"{format_decimal(tier.rate * 100)}% of transaction amount"
        return f"Flat fee of {format_decimal(tier.flat)} {self.currency_label}"

    def quote(self, amount: Any) -> FeeQuote:
        amount = to_decimal(amount)
        return FeeQuote(amount=amount, fee=self.fee(amount), description=self.fee_description(amount))

    def within_daily_limit(self, amount: Any, previous_total: Any = 0) -> bool:
        """
        Check the per-transaction ceiling

        Args:
            amount: Transfer amount
            previous_total: Amount already sent in the same window (default 0)

        Returns:
            True if amount + previous_total does not exceed the limit
        """
        return to_decimal(amount) + to_decimal(previous_total) <= self.daily_limit

    def staking_reward(self, principal: Any, duration_days: Any) -> Decimal:
        """
        Reward accrued by a stake position

        reward = principal * annual_rate * (duration_days / 365)

        Args:
            principal: Staked amount
            duration_days: Lock duration in days

        Returns:
            Reward rounded to 2 decimal places (banker's rounding)
        """
        principal = to_decimal(principal)
        duration_days = to_decimal(duration_days)
        if principal < 0 or duration_days < 0:
            raise ValueError("Principal and duration must not be negative")

        reward = principal * self.staking_annual_rate * duration_days / DAYS_PER_YEAR
        return reward.quantize(Decimal(10) ** -REWARD_DECIMAL_PLACES, rounding=ROUND_HALF_EVEN)

    def early_withdrawal_penalty(self, principal: Any) -> Decimal:
        """Penalty on principal (not on reward) for unstaking before maturity"""
        principal = to_decimal(principal)
        return (principal * self.early_withdrawal_penalty_rate).quantize(
            Decimal(10) ** -REWARD_DECIMAL_PLACES, rounding=ROUND_HALF_EVEN
        )
