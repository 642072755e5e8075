"""Currency conversion between the default currency and foreign currencies"""
import logging
from decimal import Decimal
from typing import List, Optional

from cachetools import TTLCache

from domain.exceptions import CurrencyNotFoundError, ConversionError
from domain.pricing import round_money
from domain.repositories import CurrencyRepository
from domain.value_objects import Currency, ConversionResult, PricingBreakdown, PriceOverride, SeasonalAdjustment

logger = logging.getLogger(__name__)

# largest integer a JSON/JS client can represent exactly
MAX_SAFE_AMOUNT = Decimal(2 ** 53 - 1)

ONE = Decimal("1")

CURRENCY_CACHE_SIZE = 256
DEFAULT_CURRENCY_KEY = "default"


class CurrencyConversionService:
    """
    Exchange rates are derived from each currency's ratio against the default
    currency: rate(from -> to) = to.ratio / from.ratio.
    """

    def __init__(self, repository: CurrencyRepository, cache_ttl_seconds: int = 300):
        self.repository = repository
        self.cache_ttl_seconds = cache_ttl_seconds
        self._cache: TTLCache = TTLCache(maxsize=CURRENCY_CACHE_SIZE, ttl=cache_ttl_seconds)
        self._default_cache: TTLCache = TTLCache(maxsize=1, ttl=cache_ttl_seconds)

    # ==================== LOOKUPS ====================
    async def get_currency(self, currency_id: str) -> Optional[Currency]:
        cached = self._cache.get(currency_id)
        if cached:
            logger.debug(f"Currency cache HIT: {currency_id}")
            return cached

        logger.debug(f"Currency cache MISS: {currency_id}")
        currency = await self.repository.find_by_id(currency_id)
        if currency:
            self._cache[currency_id] = currency
        return currency

    async def get_currency_by_code(self, code: str) -> Optional[Currency]:
        currency = await self.repository.find_by_code(code)
        if currency:
            self._cache[currency.id] = currency
        return currency

    async def get_default_currency(self) -> Currency:
        cached = self._default_cache.get(DEFAULT_CURRENCY_KEY)
        if cached:
            return cached

        currency = await self.repository.find_default()
        if not currency:
            raise CurrencyNotFoundError("No default currency configured")

        self._default_cache[DEFAULT_CURRENCY_KEY] = currency
        return currency

    async def list_currencies(self) -> List[Currency]:
        currencies = await self.repository.find_all()
        return sorted(currencies, key=lambda c: (not c.is_default, c.code))

    def clear_cache(self) -> None:
        self._cache.clear()
        self._default_cache.clear()

    # ==================== CONVERSION ====================
    async def get_exchange_rate(self, from_currency_id: str, to_currency_id: str) -> Decimal:
        if from_currency_id == to_currency_id:
            return ONE

        from_currency = await self.get_currency(from_currency_id)
        to_currency = await self.get_currency(to_currency_id)
        if not from_currency or not to_currency:
            raise CurrencyNotFoundError("One or both currencies not found")

        return self._rate_between(from_currency, to_currency)

    async def calculate_conversion(
        self,
        amount,
        from_currency_id: str,
        to_currency_id: Optional[str] = None
    ) -> ConversionResult:
        if not self.validate_amount(amount):
            raise ConversionError(
                "Amount must be a finite, non-negative number",
                code="INVALID_AMOUNT",
                context={"amount": str(amount)}
            )

        from_currency = await self.get_currency(from_currency_id)
        if not from_currency:
            raise CurrencyNotFoundError(f"Currency with ID {from_currency_id} not found")

        if to_currency_id:
            to_currency = await self.get_currency(to_currency_id)
            if not to_currency:
                raise CurrencyNotFoundError(f"Currency with ID {to_currency_id} not found")
        else:
            to_currency = await self.get_default_currency()

        rate = ONE if from_currency.id == to_currency.id else self._rate_between(from_currency, to_currency)
        original = Decimal(str(amount))

        return ConversionResult(
            original_amount=original,
            converted_amount=round_money(original * rate),
            from_currency=from_currency,
            to_currency=to_currency,
            exchange_rate=rate
        )

    async def convert_breakdown(self, breakdown: PricingBreakdown, target_code: str) -> PricingBreakdown:
        """Express every money field of a breakdown in another currency"""
        source = await self.get_currency_by_code(breakdown.currency)
        if not source:
            raise CurrencyNotFoundError(f"Currency with code {breakdown.currency} not found")
        target = await self.get_currency_by_code(target_code)
        if not target:
            raise CurrencyNotFoundError(f"Currency with code {target_code} not found")

        if source.id == target.id:
            return breakdown

        rate = self._rate_between(source, target)

        def convert(value: Decimal) -> Decimal:
            return round_money(value * rate)

        subtotal = convert(breakdown.subtotal)
        cleaning_fee = convert(breakdown.cleaning_fee)
        service_fee = convert(breakdown.service_fee)
        vat = convert(breakdown.vat)
        city_tax = convert(breakdown.city_tax)
        tourist_tax = convert(breakdown.tourist_tax)
        taxes = vat + city_tax + tourist_tax

        logger.info(f"Converted pricing breakdown {source.code} -> {target.code} at rate {rate}")

        return breakdown.copy(update={
            "nightly_rate": convert(breakdown.nightly_rate),
            "average_nightly_rate": convert(breakdown.average_nightly_rate),
            "subtotal": subtotal,
            "cleaning_fee": cleaning_fee,
            "service_fee": service_fee,
            "vat": vat,
            "city_tax": city_tax,
            "tourist_tax": tourist_tax,
            "taxes": taxes,
            # components are rounded individually, so the total is rebuilt from them
            "total": subtotal + cleaning_fee + service_fee + taxes,
            "currency": target.code,
            "seasonal_adjustments": [
                SeasonalAdjustment(**{
                    **adj.dict(),
                    "original_rate": convert(adj.original_rate),
                    "adjusted_rate": convert(adj.adjusted_rate),
                })
                for adj in breakdown.seasonal_adjustments
            ],
            "price_overrides": [
                PriceOverride(**{
                    **override.dict(),
                    "original_price": convert(override.original_price),
                    "override_price": convert(override.override_price),
                })
                for override in breakdown.price_overrides
            ],
        })

    @staticmethod
    def validate_amount(amount) -> bool:
        if isinstance(amount, bool) or not isinstance(amount, (int, float, Decimal)):
            return False
        value = Decimal(str(amount))
        if not value.is_finite():
            return False
        return Decimal("0") <= value <= MAX_SAFE_AMOUNT

    # ==================== ADMINISTRATION ====================
    async def register_currency(
        self,
        currency_id: str,
        code: str,
        name: str,
        symbol: str,
        ratio: Decimal,
        is_default: bool = False
    ) -> Currency:
        code = code.upper()
        if ratio <= 0:
            raise ValueError("Currency ratio must be greater than 0")
        if await self.repository.find_by_id(currency_id):
            raise ValueError(f"Currency with ID {currency_id} already exists")
        if await self.repository.find_by_code(code):
            raise ValueError(f"Currency with code {code} already exists")
        if is_default and await self.repository.find_default():
            raise ValueError("A default currency is already configured")

        currency = Currency(
            id=currency_id,
            code=code,
            name=name,
            symbol=symbol,
            ratio=ratio,
            is_default=is_default
        )
        saved = await self.repository.save(currency)
        self.clear_cache()
        logger.info(f"Registered currency {code} with ratio {ratio}")
        return saved

    # ==================== PRIVATE ====================
    @staticmethod
    def _rate_between(from_currency: Currency, to_currency: Currency) -> Decimal:
        if from_currency.ratio == 0 or to_currency.ratio == 0:
            logger.warning(
                f"Invalid ratio for {from_currency.code} or {to_currency.code}, falling back to rate 1"
            )
            return ONE

        rate = to_currency.ratio / from_currency.ratio
        if not rate.is_finite() or rate <= 0:
            raise ConversionError(
                "Calculated exchange rate is invalid",
                code="INVALID_RATE",
                context={"from": from_currency.code, "to": to_currency.code, "rate": str(rate)}
            )
        return rate
