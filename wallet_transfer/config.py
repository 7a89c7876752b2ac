"""
Transfer Configuration

Loads transfer_config.yaml and exposes it as a TransferConfig dataclass.

Every setting has a default, so a missing file still produces a working
configuration. The fee-collection wallet lives here so the engine receives it
at construction time instead of reading a module constant.
"""

import sys
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from loguru import logger

from .exceptions import ConfigError
from .fee_calculator import FeeTier


DEFAULT_FEE_TIERS = [
    {'up_to': '50', 'rate': '0.01'},
    {'up_to': '100', 'flat': '5'},
    {'flat': '10'},
]


def _decimal(value: Any, key: str) -> Decimal:
    """Parse a config value as Decimal, naming the key on failure"""
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ConfigError(f"{key}: expected a number, got {value!r}")


def _int(value: Any, key: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{key}: expected an integer, got {value!r}")


def _float(value: Any, key: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{key}: expected a number, got {value!r}")


def parse_fee_tiers(raw_tiers: List[Dict[str, Any]]) -> List[FeeTier]:
    """
    Parse the fees.tiers section

    Args:
        raw_tiers: List of {up_to, rate} or {up_to, flat} mappings

    Returns:
        List of FeeTier in ascending up_to order (unbounded tier last)

    Raises:
        ConfigError: If a tier is malformed or the list is empty
    """
    if not raw_tiers:
        raise ConfigError("fees.tiers must contain at least one tier")

    tiers = []
    for i, raw in enumerate(raw_tiers):
        if not isinstance(raw, dict):
            raise ConfigError(f"fees.tiers[{i}]: expected a mapping, got {raw!r}")

        has_rate = raw.get('rate') is not None
        has_flat = raw.get('flat') is not None
        if has_rate == has_flat:
            raise ConfigError(f"fees.tiers[{i}]: exactly one of 'rate' or 'flat' is required")

        up_to = raw.get('up_to')
        tiers.append(FeeTier(
            up_to=_decimal(up_to, f"fees.tiers[{i}].up_to") if up_to is not None else None,
            rate=_decimal(raw['rate'], f"fees.tiers[{i}].rate") if has_rate else None,
            flat=_decimal(raw['flat'], f"fees.tiers[{i}].flat") if has_flat else None,
        ))

    bounded = [t for t in tiers if t.up_to is not None]
    unbounded = [t for t in tiers if t.up_to is None]
    if len(unbounded) > 1:
        raise ConfigError("fees.tiers: only one tier may omit 'up_to'")

    return sorted(bounded, key=lambda t: t.up_to) + unbounded


@dataclass
class TransferConfig:
    """Effective configuration for the transfer engine"""
    wallet_prefix: str = "gCoin"
    min_suffix_length: int = 8
    fee_wallet: str = "gCoinAdmin123456"
    placeholder_email_domain: str = "example.com"

    fee_tiers: List[FeeTier] = field(default_factory=lambda: parse_fee_tiers(DEFAULT_FEE_TIERS))
    fee_decimal_places: int = 2
    currency_label: str = "GCoins"

    daily_limit: Decimal = Decimal("1000000")

    staking_annual_rate: Decimal = Decimal("0.30")
    early_withdrawal_penalty: Decimal = Decimal("0.10")

    similarity_threshold: float = 0.3
    max_suggestions: int = 3

    accounts_db_path: str = ":memory:"
    history_db_path: str = ":memory:"

    log_level: str = "INFO"

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'TransferConfig':
        """
        Build a config from a parsed YAML mapping

        Sections that are absent keep their defaults.

        Raises:
            ConfigError: If a present value is invalid
        """
        config = cls()
        if not data:
            return config

        wallet = data.get('wallet') or {}
        config.wallet_prefix = str(wallet.get('prefix', config.wallet_prefix))
        config.min_suffix_length = _int(
            wallet.get('min_suffix_length', config.min_suffix_length), 'wallet.min_suffix_length'
        )
        config.fee_wallet = str(wallet.get('fee_wallet', config.fee_wallet))
        config.placeholder_email_domain = str(
            wallet.get('placeholder_email_domain', config.placeholder_email_domain)
        )

        fees = data.get('fees') or {}
        if 'tiers' in fees:
            config.fee_tiers = parse_fee_tiers(fees['tiers'])
        config.fee_decimal_places = _int(
            fees.get('decimal_places', config.fee_decimal_places), 'fees.decimal_places'
        )
        config.currency_label = str(fees.get('currency_label', config.currency_label))

        limits = data.get('limits') or {}
        if 'daily_limit' in limits:
            config.daily_limit = _decimal(limits['daily_limit'], 'limits.daily_limit')

        staking = data.get('staking') or {}
        if 'annual_rate' in staking:
            config.staking_annual_rate = _decimal(staking['annual_rate'], 'staking.annual_rate')
        if 'early_withdrawal_penalty' in staking:
            config.early_withdrawal_penalty = _decimal(
                staking['early_withdrawal_penalty'], 'staking.early_withdrawal_penalty'
            )

        resolver = data.get('resolver') or {}
        config.similarity_threshold = _float(
            resolver.get('similarity_threshold', config.similarity_threshold), 'resolver.similarity_threshold'
        )
        config.max_suggestions = _int(
            resolver.get('max_suggestions', config.max_suggestions), 'resolver.max_suggestions'
        )

        database = data.get('database') or {}
        config.accounts_db_path = str(database.get('accounts_path', config.accounts_db_path))
        config.history_db_path = str(database.get('history_path', config.history_db_path))

        log_section = data.get('logging') or {}
        config.log_level = str(log_section.get('level', config.log_level)).upper()

        config.validate()
        return config

    @classmethod
    def from_yaml(cls, config_path: str = "transfer_config.yaml") -> 'TransferConfig':
        """
        Load configuration from a YAML file

        Args:
            config_path: Path to the config file

        Returns:
            TransferConfig (defaults if the file is missing or unreadable)
        """
        config_file = Path(config_path)
        if not config_file.exists():
            logger.warning(f"Config file {config_file} not found, using defaults")
            return cls()

        try:
            with open(config_file, 'r', encoding='utf-8') as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            logger.warning(f"Failed to read config {config_file}: {e}, using defaults")
            return cls()

        config = cls.from_dict(data)
        logger.info(f"Loaded transfer config from {config_file}")
        return config

    def validate(self):
        """Check cross-field constraints"""
        if self.daily_limit <= 0:
            raise ConfigError("limits.daily_limit must be positive")
        if not 0 <= self.similarity_threshold <= 1:
            raise ConfigError("resolver.similarity_threshold must be between 0 and 1")
        if self.max_suggestions < 0:
            raise ConfigError("resolver.max_suggestions must not be negative")
        if not self.fee_wallet.startswith(self.wallet_prefix):
            raise ConfigError(f"wallet.fee_wallet must start with {self.wallet_prefix}")

    def to_dict(self) -> Dict[str, Any]:
        """Config as the nested mapping used in the YAML file"""
        tiers = []
        for tier in self.fee_tiers:
            entry = {}
            if tier.up_to is not None:
                entry['up_to'] = str(tier.up_to)
            if tier.rate is not None:
                entry['rate'] = str(tier.rate)
            else:
                entry['flat'] = str(tier.flat)
            tiers.append(entry)

        return {
            'wallet': {
                'prefix': self.wallet_prefix,
                'min_suffix_length': self.min_suffix_length,
                'fee_wallet': self.fee_wallet,
                'placeholder_email_domain': self.placeholder_email_domain,
            },
            'fees': {
                'tiers': tiers,
                'decimal_places': self.fee_decimal_places,
                'currency_label': self.currency_label,
            },
            'limits': {
                'daily_limit': str(self.daily_limit),
            },
            'staking': {
                'annual_rate': str(self.staking_annual_rate),
                'early_withdrawal_penalty': str(self.early_withdrawal_penalty),
            },
            'resolver': {
                'similarity_threshold': self.similarity_threshold,
                'max_suggestions': self.max_suggestions,
            },
            'database': {
                'accounts_path': self.accounts_db_path,
                'history_path': self.history_db_path,
            },
            'logging': {
                'level': self.log_level,
            },
        }

    def save_yaml(self, output_path: str = "transfer_config.yaml") -> Path:
        """Write the effective config to a YAML file"""
        output_path = Path(output_path)
        with open(output_path, 'w', encoding='utf-8') as f:
            yaml.dump(self.to_dict(), f, default_flow_style=False, sort_keys=False, allow_unicode=True)

        logger.info(f"✓ Saved transfer config to {output_path}")
        return output_path


def setup_logging(level: str = "INFO"):
    """Replace loguru's default sink with a stderr sink at the given level"""
    logger.remove()
    logger.add(
        sys.stderr,
        level=level.upper(),
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
               "<cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>",
    )
