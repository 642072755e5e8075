"""Reference data loaded into fresh repositories"""
from decimal import Decimal, ROUND_HALF_UP
from typing import List

from domain.value_objects import Currency
from infrastructure.config import DEFAULT_CURRENCY_CODE

# ratio = units of the currency per one Algerian dinar
_CURRENCIES = [
    ("dzd", "DZD", "Algerian Dinar", "DA", "1"),
    ("eur", "EUR", "Euro", "€", "0.0067"),
    ("usd", "USD", "US Dollar", "$", "0.0074"),
    ("cad", "CAD", "Canadian Dollar", "C$", "0.0095"),
]

RATIO_PRECISION = Decimal("0.000001")


def default_currencies(default_code: str = DEFAULT_CURRENCY_CODE) -> List[Currency]:
    """Seed currencies with ratios expressed against default_code, which gets ratio 1"""
    default_code = default_code.upper()
    base_ratios = {code: Decimal(ratio) for _, code, _, _, ratio in _CURRENCIES}
    if default_code not in base_ratios:
        raise ValueError(
            f"Unknown default currency {default_code}; expected one of {', '.join(base_ratios)}"
        )

    anchor = base_ratios[default_code]
    return [
        Currency(
            id=currency_id,
            code=code,
            name=name,
            symbol=symbol,
            ratio=(base_ratios[code] / anchor).quantize(RATIO_PRECISION, rounding=ROUND_HALF_UP),
            is_default=(code == default_code)
        )
        for currency_id, code, name, symbol, _ in _CURRENCIES
    ]
