"""Delivery-time estimates and display metadata for supported currencies."""

DEFAULT_DELIVERY = "2-5 minutes"

DELIVERY_TIMES: dict[tuple[str, str], str] = {
    ("USD", "EUR"): "1-2 minutes",
    ("USD", "GBP"): "1-2 minutes",
    ("USD", "NGN"): "2-5 minutes",
    ("EUR", "USD"): "1-2 minutes",
    ("EUR", "GBP"): "1-2 minutes",
}

CURRENCY_NAMES = {
    "USD": "US Dollar",
    "EUR": "Euro",
    "GBP": "British Pound",
    "NGN": "Nigerian Naira",
    "KES": "Kenyan Shilling",
    "GHS": "Ghanaian Cedi",
}

CURRENCY_SYMBOLS = {
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
    "NGN": "₦",
    "KES": "KSh",
    "GHS": "₵",
}


def estimate_delivery(source_currency: str, target_currency: str) -> str:
    """Corridor lookup in either direction; same-currency transfers are instant."""
    if source_currency == target_currency:
        return "Instant"
    return (
        DELIVERY_TIMES.get((source_currency, target_currency))
        or DELIVERY_TIMES.get((target_currency, source_currency))
        or DEFAULT_DELIVERY
    )


def currency_name(code: str) -> str:
    return CURRENCY_NAMES.get(code, code)


def currency_symbol(code: str) -> str:
    return CURRENCY_SYMBOLS.get(code, code)
