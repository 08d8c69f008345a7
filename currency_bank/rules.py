"""
Interest Rule Module

Discovers interest rule files on disk and parses them into rule units.

File layout (YAML):

    interest:
      <ruleKey>:
        amount: <decimal>
        coin_type: <coin|copper|silver|gold>
        interest_rate: <decimal percent>
    schedule: '<5-field cron expression>'

Rules inside one file are keyed by (coin_type, amount); a later entry with
the same key replaces the earlier one.
"""

from decimal import Decimal
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Tuple, Union

import yaml

from .currency import CoinType, to_decimal
from .errors import ConfigParseError, ValidationError
from .logging_config import get_logger

logger = get_logger("currency_bank.rules")

RULE_FILE_SUFFIXES = (".yml", ".yaml")
EXAMPLE_FILE_NAME = "example.yml"

EXAMPLE_CONFIG = """\
# Interest Configuration
# -----------------------
# This file defines interest payout rules.
#
# Schedule supports cron syntax:
# minute hour day_of_month month day_of_week
# Example: '0 0 * * *' means daily at midnight.
#
# Each rule pays amount * interest_rate / 100 of coin_type to every account.
# Rules sharing the same coin_type and amount: the last one wins.
#
# Example Structure:
# interest:
#   1:
#     amount: 100000
#     coin_type: coin
#     interest_rate: 2
# schedule: '0 0 * * *'

interest:
  1:
    amount: 100000
    coin_type: coin
    interest_rate: 2
  2:
    amount: 50000
    coin_type: silver
    interest_rate: 1.5

schedule: '0 0 * * *'
"""


@dataclass(frozen=True)
class InterestRule:
    """One interest payout rule"""
    key: str
    amount: Decimal          # Base principal the rate applies to
    coin_type: CoinType
    interest_rate: Decimal   # Percentage, e.g. 2 for 2%

    @property
    def dedup_key(self) -> Tuple[CoinType, Decimal]:
        return (self.coin_type, self.amount)

    @property
    def interest(self) -> Decimal:
        """Amount credited per account per tick"""
        return self.amount * (self.interest_rate / Decimal('100'))


@dataclass
class InterestRuleUnit:
    """Schedule plus deduplicated rules read from one rule file"""
    source: Path
    schedule: str
    rules: List[InterestRule] = field(default_factory=list)

    @property
    def name(self) -> str:
        return self.source.name


def discover_rule_files(root_dir: Union[str, Path]) -> List[Path]:
    """
    Find every rule file under root_dir, recursively

    A missing root directory is created and yields no files.

    Returns:
        Rule file paths in sorted order
    """
    root = Path(root_dir)
    if not root.exists():
        root.mkdir(parents=True, exist_ok=True)
        logger.info(f"Created config directory for interest configs: {root}")
        return []

    return sorted(
        path for path in root.rglob("*")
        if path.is_file() and path.suffix.lower() in RULE_FILE_SUFFIXES
    )


def load_rule_unit(path: Union[str, Path]) -> InterestRuleUnit:
    """
    Read and parse one rule file

    Raises:
        ConfigParseError: If the file is unreadable, is not a mapping,
            has no schedule, or contains an invalid rule
    """
    path = Path(path)
    try:
        content = path.read_text(encoding="utf-8")
        data = yaml.safe_load(content)
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigParseError(f"Cannot read interest file {path.name}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigParseError(f"Invalid YAML in {path.name}: {e}") from e

    return parse_rule_unit(data, path)


def parse_rule_unit(data: Any, source: Union[str, Path]) -> InterestRuleUnit:
    """Build a rule unit from already-loaded YAML data"""
    source = Path(source)
    if not isinstance(data, dict):
        raise ConfigParseError(f"Interest file {source.name} must contain a mapping")

    schedule = data.get("schedule")
    if schedule is None or not str(schedule).strip():
        raise ConfigParseError(f"Missing schedule in: {source.name}")

    interest = data.get("interest")
    if not interest:
        logger.warning(f"No interest rules in: {source.name}")
        return InterestRuleUnit(source=source, schedule=str(schedule).strip())
    if not isinstance(interest, dict):
        raise ConfigParseError(f"'interest' in {source.name} must be a mapping of rules")

    # Last write wins per (coin_type, amount)
    rules: Dict[Tuple[CoinType, Decimal], InterestRule] = {}
    for key, values in interest.items():
        rule = _parse_rule(str(key), values, source)
        rules[rule.dedup_key] = rule

    return InterestRuleUnit(
        source=source,
        schedule=str(schedule).strip(),
        rules=list(rules.values())
    )


def _parse_rule(key: str, values: Any, source: Path) -> InterestRule:
    if not isinstance(values, dict):
        raise ConfigParseError(f"Rule '{key}' in {source.name} must be a mapping")

    missing = [name for name in ("amount", "coin_type", "interest_rate") if values.get(name) is None]
    if missing:
        raise ConfigParseError(
            f"Rule '{key}' in {source.name} is missing: {', '.join(missing)}"
        )

    try:
        amount = to_decimal(values["amount"])
        coin_type = CoinType.parse(values["coin_type"])
        interest_rate = to_decimal(values["interest_rate"])
    except ValidationError as e:
        raise ConfigParseError(f"Rule '{key}' in {source.name}: {e}") from e

    if amount < Decimal('0'):
        raise ConfigParseError(f"Rule '{key}' in {source.name}: amount must not be negative")

    return InterestRule(key=key, amount=amount, coin_type=coin_type, interest_rate=interest_rate)


def write_example_config(root_dir: Union[str, Path]) -> bool:
    """
    Write example.yml into root_dir if it does not exist

    Returns:
        True if the file was written
    """
    path = Path(root_dir) / EXAMPLE_FILE_NAME
    if path.exists():
        logger.info(f"Interest config already exists at {path}")
        return False

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(EXAMPLE_CONFIG, encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        logger.warning(f"Failed to write interest config: {e}")
        return False

    logger.info(f"Created interest config at: {path}")
    return True
