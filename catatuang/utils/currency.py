"""
Indonesian Rupiah parsing and formatting.

Chat users write amounts the way they speak them: "10rb", "1,5jt",
"Rp 25.000". Dots between groups of three digits are thousands
separators; a comma is the decimal mark.
"""

import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Optional, Union


AMOUNT_PATTERN = re.compile(r"([\d.,]+)(juta|jt|m|ribu|rb|k)?")
THOUSANDS_PATTERN = re.compile(r"\d{1,3}(\.\d{3})+")

MULTIPLIERS = {
    None: Decimal(1),
    "ribu": Decimal(1_000),
    "rb": Decimal(1_000),
    "k": Decimal(1_000),
    "juta": Decimal(1_000_000),
    "jt": Decimal(1_000_000),
    "m": Decimal(1_000_000),
}

WHOLE_RUPIAH = Decimal("1")


def parse_rupiah(text: Optional[str]) -> Optional[Decimal]:
    """
    Parse a rupiah amount with optional shorthand suffix.

    Examples:
        "10rb" -> 10000, "1,5jt" -> 1500000, "Rp 25.000" -> 25000

    Returns:
        Whole-rupiah Decimal, or None if the text is not an amount
    """
    if not text:
        return None

    cleaned = re.sub(r"\s+", "", text.lower())
    cleaned = re.sub(r"^rp\.?", "", cleaned)
    match = AMOUNT_PATTERN.fullmatch(cleaned)
    if not match:
        return None

    number, suffix = match.groups()
    if THOUSANDS_PATTERN.fullmatch(number):
        number = number.replace(".", "")
    else:
        number = number.replace(",", ".", 1)

    try:
        value = Decimal(number)
    except InvalidOperation:
        return None
    return (value * MULTIPLIERS[suffix]).quantize(WHOLE_RUPIAH, rounding=ROUND_HALF_UP)


def format_rupiah(amount: Union[Decimal, int, float, str]) -> str:
    """
    Format as whole rupiah with dot thousands separators.

    Examples:
        10000 -> "Rp 10.000", -2500 -> "-Rp 2.500"
    """
    value = Decimal(str(amount)).quantize(WHOLE_RUPIAH, rounding=ROUND_HALF_UP)
    sign = "-" if value < 0 else ""
    grouped = f"{abs(int(value)):,}".replace(",", ".")
    return f"{sign}Rp {grouped}"


def format_signed_rupiah(amount: Union[Decimal, int, float, str]) -> str:
    """"+Rp 5.000" / "-Rp 5.000" / "Rp 0"."""
    value = Decimal(str(amount))
    if value == 0:
        return format_rupiah(0)
    return ("+" if value > 0 else "-") + format_rupiah(abs(value))
