"""
Coin Type Module

The fixed set of currency denominations the bank holds and the parsing
rules for user-supplied amounts. NEVER uses float for monetary values.
"""

from decimal import Decimal, InvalidOperation, getcontext
from enum import Enum
from typing import Union

from .errors import ValidationError

# Set global decimal context for financial precision
getcontext().prec = 28


class CoinType(Enum):
    """Currency denominations held by the bank"""
    COIN = "coin"
    COPPER = "copper"
    SILVER = "silver"
    GOLD = "gold"

    @classmethod
    def parse(cls, value: Union[str, "CoinType"]) -> "CoinType":
        """
        Resolve a coin type from user or config input (case-insensitive)

        Raises:
            ValidationError: If the value is not a known coin type
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValidationError(
                f"Unknown coin type '{value}'. Use one of: {', '.join(coin_type_names())}"
            )


def coin_type_names() -> list:
    """Names of all coin types in declaration order"""
    return [coin_type.value for coin_type in CoinType]


def to_decimal(value: Union[str, int, float, Decimal]) -> Decimal:
    """
    Convert a numeric value to a finite Decimal

    Floats go through str() so YAML values like 1.5 stay exact.

    Raises:
        ValidationError: If the value is not numeric or not finite
    """
    if isinstance(value, bool):
        raise ValidationError(f"'{value}' is not a number")
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            raise ValidationError(f"'{value}' is not a number")
    if not result.is_finite():
        raise ValidationError(f"'{value}' is not a finite number")
    return result


def parse_amount(value: str) -> Decimal:
    """
    Parse a user-entered amount for deposit or withdraw

    Args:
        value: Amount argument as typed by the player

    Returns:
        Positive Decimal amount

    Raises:
        ValidationError: If the amount is not a valid number or not above zero
    """
    if value is None or not str(value).strip():
        raise ValidationError("Amount must be a valid number.")
    try:
        amount = to_decimal(value)
    except ValidationError:
        raise ValidationError("Amount must be a valid number.")
    if amount <= Decimal('0'):
        raise ValidationError("Amount must be greater than zero.")
    return amount
