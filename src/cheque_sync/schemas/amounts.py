"""
Amount parsing and formatting for ru-RU presentation strings.

Parsing is lossy and permissive on purpose: it never raises, and anything that
does not contain a number is worth zero.
"""

import re
from decimal import Decimal, InvalidOperation, localcontext

# All whitespace, including NBSP (U+00A0), narrow NBSP (U+202F), thin space (U+2009)
_WHITESPACE_RE = re.compile(r"[\s\u00a0\u202f\u2009]+")

# First signed decimal number, comma or period as the decimal separator
_NUMBER_RE = re.compile(r"-?\d+(?:[.,]\d+)?")

ZERO = Decimal("0")

# ru-RU group separator
GROUP_SEPARATOR = "\u00a0"
CURRENCY_SUFFIX = " \u20bd"


def parse_amount(value: str | int | float | Decimal | None) -> Decimal:
    """
    Parse a locale-formatted amount into a Decimal.

    Examples:
        >>> parse_amount("1 234,56 ₽")
        Decimal('1234.56')
        >>> parse_amount("")
        Decimal('0')
        >>> parse_amount("-12.5")
        Decimal('-12.5')
    """
    if value is None or isinstance(value, bool):
        return ZERO
    if isinstance(value, Decimal):
        return value if value.is_finite() else ZERO
    if isinstance(value, (int, float)):
        try:
            number = Decimal(str(value))
        except InvalidOperation:
            return ZERO
        return number if number.is_finite() else ZERO

    cleaned = _WHITESPACE_RE.sub("", str(value))
    match = _NUMBER_RE.search(cleaned)
    if not match:
        return ZERO

    try:
        return Decimal(match.group(0).replace(",", "."))
    except InvalidOperation:
        return ZERO


def format_amount_ru(value: int | float | Decimal, max_fraction_digits: int = 3) -> str:
    """
    Format a number the way ru-RU displays money: "1 234,5 ₽".

    Groups thousands with NBSP, uses a decimal comma and drops trailing zeros
    (at most max_fraction_digits fraction digits).
    """
    number = Decimal(str(value)) if not isinstance(value, Decimal) else value
    quantum = Decimal(1).scaleb(-max_fraction_digits)
    with localcontext() as ctx:
        # Enough digits for every integer digit plus the kept fraction
        ctx.prec = max(ctx.prec, number.adjusted() + max_fraction_digits + 2)
        number = number.quantize(quantum)

    sign = "-" if number < 0 else ""
    integer_part, _, fraction_part = f"{abs(number):f}".partition(".")
    fraction_part = fraction_part.rstrip("0")

    groups = []
    while len(integer_part) > 3:
        groups.insert(0, integer_part[-3:])
        integer_part = integer_part[:-3]
    groups.insert(0, integer_part)

    text = sign + GROUP_SEPARATOR.join(groups)
    if fraction_part:
        text += "," + fraction_part
    return text + CURRENCY_SUFFIX
