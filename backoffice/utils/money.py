# backoffice/utils/money.py

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Union

ZERO = Decimal("0.00")
CENT = Decimal("0.01")

MoneyLike = Union[Decimal, int, float, str]


def to_money(value: MoneyLike) -> Decimal:
    """
    Converts a numeric value to a 2-decimal Decimal. Floats go through str()
    first so 0.1 becomes 0.10 rather than its binary expansion.
    """
    if value is None:
        raise ValueError("Amount is required")
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except InvalidOperation as e:
        raise ValueError(f"Invalid monetary amount: {value!r}") from e
    if not amount.is_finite():
        raise ValueError(f"Invalid monetary amount: {value!r}")
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)
