from decimal import Decimal, InvalidOperation

from constants import SUPPORTED_CURRENCIES


def parse_amount(value: str) -> int:
    """Parse a user-entered amount such as ``"1 234,50"`` into cents."""
    clean = value.strip()
    for symbol in sorted(set(SUPPORTED_CURRENCIES.values()), key=len, reverse=True):
        clean = clean.replace(symbol, "")
    clean = clean.replace(" ", "").replace(",", ".")
    if clean.count(".") > 1:
        parts = clean.split(".")
        clean = "".join(parts[:-1]) + "." + parts[-1]
    try:
        amount = Decimal(clean)
    except InvalidOperation as exc:
        raise ValueError("Invalid amount") from exc
    cents = int((amount * 100).quantize(Decimal("1")))
    if cents <= 0:
        raise ValueError("Amount must be greater than zero")
    return cents


def cents_to_decimal(cents: int) -> Decimal:
    return (Decimal(cents) / 100).quantize(Decimal("0.01"))
