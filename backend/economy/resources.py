"""Resource types held in a player's realm balance."""

from enum import Enum
import math

from economy.errors import InvalidInput

# Largest magnitude accepted for any single amount; fits a 32-bit Integer column
MAX_AMOUNT = 2**31 - 1

# Currency is stored to this many decimal places
CURRENCY_PLACES = 6


class ResourceType(str, Enum):
    CURRENCY = 'currency'
    WOOD = 'wood'
    STONE = 'stone'
    METAL = 'metal'
    FOOD = 'food'
    LIVESTOCK = 'livestock'

    @property
    def is_integral(self) -> bool:
        return self is not ResourceType.CURRENCY

    @property
    def display_name(self) -> str:
        return self.value.capitalize()

    def normalize(self, amount):
        """Coerce an amount to this resource's storage type.

        Non-currency amounts are truncated toward zero, so 2.9 wood is 2 and
        -2.9 wood is -2. Currency is rounded to CURRENCY_PLACES.
        """
        if self.is_integral:
            return int(math.trunc(amount))
        return round(float(amount), CURRENCY_PLACES) + 0.0

    @classmethod
    def parse(cls, value):
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            raise InvalidInput(f"Invalid resource type: {value!r}", field='resource')
        try:
            return cls(value.strip().lower())
        except ValueError:
            raise InvalidInput(f"Invalid resource type: {value!r}", field='resource') from None


def is_valid_amount(value) -> bool:
    """True for finite real numbers no larger than MAX_AMOUNT (bools excluded)."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    try:
        return math.isfinite(value) and abs(value) <= MAX_AMOUNT
    except OverflowError:
        return False


def as_whole_number(value):
    """Return value as an int if it is integral (2 or 2.0), else None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return None
