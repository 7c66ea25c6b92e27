from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from errors import ValidationError

CENT = Decimal("0.01")
# largest value a Numeric(10, 2) column holds
MAX_AMOUNT = Decimal("99999999.99")


def to_money(value):
    """Quantise a number to two decimal places."""
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def parse_money(value, label="amount"):
    if value is None or str(value).strip() == "":
        raise ValidationError(f"Please enter the {label}.")
    if isinstance(value, bool):
        raise ValidationError(f"Invalid {label}: {value!r}.")
    try:
        amount = Decimal(str(value).strip())
        if not amount.is_finite() or abs(amount) > MAX_AMOUNT:
            raise ValidationError(f"Invalid {label}: {value!r}.")
        return amount.quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        raise ValidationError(f"Invalid {label}: {value!r}.")


def format_money(value, currency=None):
    text = f"{to_money(value):,.2f}"
    return f"{currency} {text}" if currency else text
