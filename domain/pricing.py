"""Pricing Engine - nightly rates, seasonal multipliers, special rules and taxes"""
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, List, Optional, Tuple

from domain.enums import PricingRuleType, AdjustmentType
from domain.value_objects import (
    DateRange, PricingConfig, PricingOptions, PricingBreakdown, PricingRule,
    SeasonalRate, SeasonalAdjustment, PriceOverride, TaxConfiguration, TaxExemption
)

TWO_PLACES = Decimal("0.01")

# Python weekday numbers, Monday == 0
DEFAULT_WEEKEND_DAYS = [4, 5]

DATED_RULE_TYPES = (PricingRuleType.SEASONAL, PricingRuleType.HOLIDAY, PricingRuleType.EVENT)


def round_money(value) -> Decimal:
    """Round to cents, half up"""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def nights_between(check_in: date, check_out: date) -> int:
    return (check_out - check_in).days


class PricingCalculator:
    """
    Prices a stay night by night.

    For every night the rate starts from the property's base rate and goes
    through three stages:

    1. a manual price override for that date replaces the rate outright and
       skips the remaining stages;
    2. the single highest-priority seasonal rate covering the date multiplies
       the base rate (overlapping seasons never compound);
    3. special pricing rules are applied in descending priority, keeping only
       the highest-priority applicable rule of each rule type.

    Fees and taxes are computed on the rounded subtotal.
    """

    def calculate_pricing(
        self,
        config: PricingConfig,
        dates: DateRange,
        options: Optional[PricingOptions] = None
    ) -> PricingBreakdown:
        options = options or PricingOptions()

        nights = dates.nights()
        if nights < 1:
            raise ValueError("Check-out date must be after check-in date")
        if options.guests < 1:
            raise ValueError("At least 1 guest is required")

        seasonal_adjustments: List[SeasonalAdjustment] = []
        price_overrides: List[PriceOverride] = []
        applied_rules: List[str] = []
        subtotal = Decimal("0")

        for day in dates.stay_dates():
            rate = self._price_night(
                config, day, nights, options,
                seasonal_adjustments, price_overrides, applied_rules
            )
            subtotal += rate

        subtotal = round_money(subtotal)
        cleaning_fee = round_money(config.cleaning_fee)
        service_fee = round_money(subtotal * config.service_fee_rate)
        taxable_amount = subtotal + service_fee + cleaning_fee

        vat, city_tax, tourist_tax, exemption = self._calculate_taxes(
            config.tax_config, taxable_amount, nights, options.guests
        )
        taxes = vat + city_tax + tourist_tax

        return PricingBreakdown(
            nightly_rate=round_money(config.base_rate),
            average_nightly_rate=round_money(subtotal / nights),
            nights=nights,
            subtotal=subtotal,
            cleaning_fee=cleaning_fee,
            service_fee=service_fee,
            taxes=taxes,
            vat=vat,
            city_tax=city_tax,
            tourist_tax=tourist_tax,
            total=taxable_amount + taxes,
            currency=config.currency,
            seasonal_adjustments=seasonal_adjustments,
            price_overrides=price_overrides,
            applied_rules=applied_rules,
            tax_exemption=exemption.name if exemption else None
        )

    # ==================== NIGHTLY RATE ====================
    def _price_night(
        self,
        config: PricingConfig,
        day: date,
        nights: int,
        options: PricingOptions,
        seasonal_adjustments: List[SeasonalAdjustment],
        price_overrides: List[PriceOverride],
        applied_rules: List[str]
    ) -> Decimal:
        base_rate = config.base_rate

        manual_price = options.price_overrides.get(day)
        if manual_price is not None:
            rate = round_money(manual_price)
            price_overrides.append(PriceOverride(
                date=day,
                original_price=round_money(base_rate),
                override_price=rate,
                reason="Manual override"
            ))
            return rate

        rate = base_rate
        season = self.select_seasonal_rate(config.seasonal_rates, day)
        if season:
            rate = base_rate * season.multiplier
            seasonal_adjustments.append(SeasonalAdjustment(
                date=day,
                original_rate=round_money(base_rate),
                adjusted_rate=round_money(rate),
                season_name=season.name,
                multiplier=season.multiplier
            ))

        for rule in self.select_rules(config.pricing_rules, day, nights, options.advance_booking_days):
            adjusted = self._apply_rule(rule, rate)
            price_overrides.append(PriceOverride(
                date=day,
                original_price=round_money(rate),
                override_price=round_money(adjusted),
                reason=rule.name
            ))
            if rule.name not in applied_rules:
                applied_rules.append(rule.name)
            rate = adjusted

        return round_money(rate)

    @staticmethod
    def select_seasonal_rate(seasonal_rates: List[SeasonalRate], day: date) -> Optional[SeasonalRate]:
        """Highest priority wins, then the larger multiplier, then declaration order"""
        candidates = [(index, season) for index, season in enumerate(seasonal_rates) if season.covers(day)]
        if not candidates:
            return None
        _, season = max(candidates, key=lambda c: (c[1].priority, c[1].multiplier, -c[0]))
        return season

    @staticmethod
    def rule_applies(
        rule: PricingRule,
        day: date,
        nights: int,
        advance_booking_days: Optional[int]
    ) -> bool:
        if not rule.is_active:
            return False

        if rule.rule_type in DATED_RULE_TYPES and rule.start_date is None and rule.end_date is None:
            return False
        if rule.start_date and day < rule.start_date:
            return False
        if rule.end_date and day > rule.end_date:
            return False

        if rule.rule_type == PricingRuleType.WEEKEND:
            return day.weekday() in (rule.days_of_week or DEFAULT_WEEKEND_DAYS)

        if rule.rule_type == PricingRuleType.LENGTH_OF_STAY:
            if nights < (rule.minimum_nights or 1):
                return False
            if rule.maximum_nights is not None and nights > rule.maximum_nights:
                return False
            return True

        if rule.rule_type == PricingRuleType.ADVANCE_BOOKING:
            if advance_booking_days is None or rule.advance_booking_days is None:
                return False
            return advance_booking_days >= rule.advance_booking_days

        if rule.rule_type == PricingRuleType.LAST_MINUTE:
            if advance_booking_days is None or rule.advance_booking_days is None:
                return False
            return advance_booking_days <= rule.advance_booking_days

        # SEASONAL / HOLIDAY / EVENT: the date window above is the whole condition
        if rule.days_of_week:
            return day.weekday() in rule.days_of_week
        return True

    @classmethod
    def select_rules(
        cls,
        rules: List[PricingRule],
        day: date,
        nights: int,
        advance_booking_days: Optional[int]
    ) -> List[PricingRule]:
        """Best rule per rule type, ordered by descending priority"""
        best: Dict[PricingRuleType, Tuple[int, PricingRule]] = {}
        for index, rule in enumerate(rules):
            if not cls.rule_applies(rule, day, nights, advance_booking_days):
                continue
            current = best.get(rule.rule_type)
            if current is None or rule.priority > current[1].priority:
                best[rule.rule_type] = (index, rule)

        ordered = sorted(best.values(), key=lambda item: (-item[1].priority, item[0]))
        return [rule for _, rule in ordered]

    @staticmethod
    def _apply_rule(rule: PricingRule, rate: Decimal) -> Decimal:
        value = rule.adjustment_value
        if rule.adjustment_type == AdjustmentType.OVERRIDE:
            adjusted = value
        elif rule.adjustment_type == AdjustmentType.FIXED:
            adjusted = rate + value
        else:
            adjusted = rate * (Decimal("1") + value / Decimal("100"))
        return max(adjusted, Decimal("0"))

    # ==================== TAXES ====================
    @staticmethod
    def best_exemption(tax_config: TaxConfiguration, nights: int) -> Optional[TaxExemption]:
        eligible = [e for e in tax_config.exemptions if e.minimum_nights <= nights]
        if not eligible:
            return None
        return max(eligible, key=lambda e: e.rate_reduction)

    def _calculate_taxes(
        self,
        tax_config: TaxConfiguration,
        taxable_amount: Decimal,
        nights: int,
        guests: int
    ) -> Tuple[Decimal, Decimal, Decimal, Optional[TaxExemption]]:
        exemption = self.best_exemption(tax_config, nights)
        reduction = exemption.rate_reduction if exemption else Decimal("0")
        vat_rate = tax_config.base_rate * (Decimal("1") - reduction)

        vat = round_money(taxable_amount * vat_rate)
        city_tax = round_money(tax_config.city_tax * nights * guests)
        tourist_tax = round_money(tax_config.tourist_tax * nights * guests)
        return vat, city_tax, tourist_tax, exemption


# ==================== RULE VALIDATION ====================

def validate_pricing_rule(rule: PricingRule) -> List[str]:
    """Return human-readable problems with a rule; empty when the rule is usable"""
    errors = []

    if not rule.name or not rule.name.strip():
        errors.append("Rule name is required")

    if rule.priority < 0:
        errors.append("Priority must be zero or greater")

    if rule.adjustment_type == AdjustmentType.PERCENTAGE:
        if rule.adjustment_value <= -100 or rule.adjustment_value > 500:
            errors.append("Percentage adjustment must be greater than -100 and at most 500")
    elif rule.adjustment_type == AdjustmentType.OVERRIDE:
        if rule.adjustment_value <= 0:
            errors.append("Override price must be greater than 0")
    elif rule.adjustment_value == 0:
        errors.append("Fixed adjustment must not be zero")

    if rule.rule_type in DATED_RULE_TYPES and (rule.start_date is None or rule.end_date is None):
        errors.append(f"Start and end dates are required for {rule.rule_type.value} rules")
    if rule.start_date and rule.end_date and rule.end_date < rule.start_date:
        errors.append("End date must be on or after start date")

    if rule.days_of_week is not None:
        if not rule.days_of_week:
            errors.append("At least one day of week must be selected")
        elif any(d < 0 or d > 6 for d in rule.days_of_week):
            errors.append("Days of week must be between 0 (Monday) and 6 (Sunday)")

    if rule.rule_type == PricingRuleType.LENGTH_OF_STAY:
        if rule.minimum_nights is None or rule.minimum_nights < 1:
            errors.append("Minimum nights must be at least 1 for length of stay rules")
        elif rule.maximum_nights is not None and rule.maximum_nights < rule.minimum_nights:
            errors.append("Maximum nights must be greater than or equal to minimum nights")

    if rule.rule_type in (PricingRuleType.ADVANCE_BOOKING, PricingRuleType.LAST_MINUTE):
        if rule.advance_booking_days is None or rule.advance_booking_days < 0:
            errors.append("Advance booking days must be zero or greater")

    return errors


# ==================== DEFAULTS ====================

PRICING_RULE_TEMPLATES = {
    "weekend_premium": {
        "name": "Weekend Surcharge",
        "rule_type": PricingRuleType.WEEKEND,
        "adjustment_type": AdjustmentType.PERCENTAGE,
        "adjustment_value": Decimal("15"),
        "days_of_week": DEFAULT_WEEKEND_DAYS,
        "priority": 10,
        "description": "Higher rates on Friday and Saturday nights",
    },
    "weekly_discount": {
        "name": "Weekly Discount",
        "rule_type": PricingRuleType.LENGTH_OF_STAY,
        "adjustment_type": AdjustmentType.PERCENTAGE,
        "adjustment_value": Decimal("-10"),
        "minimum_nights": 7,
        "priority": 20,
        "description": "Discount for stays of a week or more",
    },
    "monthly_discount": {
        "name": "Monthly Discount",
        "rule_type": PricingRuleType.LENGTH_OF_STAY,
        "adjustment_type": AdjustmentType.PERCENTAGE,
        "adjustment_value": Decimal("-25"),
        "minimum_nights": 28,
        "priority": 30,
        "description": "Discount for stays of four weeks or more",
    },
    "early_bird": {
        "name": "Early Bird",
        "rule_type": PricingRuleType.ADVANCE_BOOKING,
        "adjustment_type": AdjustmentType.PERCENTAGE,
        "adjustment_value": Decimal("-5"),
        "advance_booking_days": 30,
        "priority": 5,
        "description": "Discount for bookings made 30 days or more ahead",
    },
    "last_minute": {
        "name": "Last Minute",
        "rule_type": PricingRuleType.LAST_MINUTE,
        "adjustment_type": AdjustmentType.PERCENTAGE,
        "adjustment_value": Decimal("-8"),
        "advance_booking_days": 3,
        "priority": 5,
        "description": "Discount for bookings made within 3 days of arrival",
    },
}


def create_default_tax_config() -> TaxConfiguration:
    return TaxConfiguration(
        base_rate=Decimal("0.19"),
        city_tax=Decimal("2.00"),
        tourist_tax=Decimal("1.50"),
        exemptions=[
            TaxExemption(name="Long Stay", minimum_nights=30, rate_reduction=Decimal("0.5")),
        ]
    )


def create_default_seasonal_rates(year: Optional[int] = None) -> List[SeasonalRate]:
    year = year or date.today().year
    return [
        SeasonalRate(
            name="Summer Peak",
            start_date=date(year, 7, 1),
            end_date=date(year, 8, 31),
            multiplier=Decimal("1.5"),
            priority=2
        ),
        SeasonalRate(
            name="Spring Shoulder",
            start_date=date(year, 4, 1),
            end_date=date(year, 6, 30),
            multiplier=Decimal("1.2"),
            priority=1
        ),
        SeasonalRate(
            name="Year End Holidays",
            start_date=date(year, 12, 20),
            end_date=date(year, 12, 31),
            multiplier=Decimal("1.3"),
            priority=3
        ),
        SeasonalRate(
            name="Winter Low",
            start_date=date(year, 1, 8),
            end_date=date(year, 2, 28),
            multiplier=Decimal("0.85"),
            priority=1
        ),
    ]


def create_default_pricing_rules() -> List[PricingRule]:
    return [PricingRule(**template) for template in PRICING_RULE_TEMPLATES.values()]
