"""
Multi-country pricing configuration
All monetary values are in minor currency units (cents/centavos).
"""

from dataclasses import dataclass, field
from typing import Optional

from ...shared.money import apply_rate, round_half_up


@dataclass(frozen=True)
class Commission:
    marketplace_rate: float
    direct_hire_rate: float


@dataclass(frozen=True)
class PriceConstraints:
    min_price: int
    max_price: int
    background_check_fee: int


@dataclass(frozen=True)
class PaymentProcessors:
    primary: str
    supported: tuple[str, ...]
    fallback: Optional[str] = None


@dataclass(frozen=True)
class CurrencyFormatting:
    decimal_places: int
    thousands_separator: str
    decimal_separator: str
    symbol_position: str = "before"
    symbol: str = "$"


@dataclass(frozen=True)
class CountryPricingConfig:
    currency: str
    commission: Commission
    constraints: PriceConstraints
    payment_processors: PaymentProcessors
    formatting: CurrencyFormatting = field(
        default_factory=lambda: CurrencyFormatting(2, ",", ".")
    )


# Same commission everywhere; the constraints are ~$5 / ~$500 / ~$25 USD in local currency
COUNTRY_PRICING: dict[str, CountryPricingConfig] = {
    "CO": CountryPricingConfig(
        currency="COP",
        commission=Commission(marketplace_rate=0.15, direct_hire_rate=0.2),
        constraints=PriceConstraints(2_000_000, 200_000_000, 10_000_000),
        payment_processors=PaymentProcessors("stripe", ("stripe", "paypal"), fallback="paypal"),
        formatting=CurrencyFormatting(0, ".", ","),
    ),
    "PY": CountryPricingConfig(
        currency="PYG",
        commission=Commission(marketplace_rate=0.15, direct_hire_rate=0.2),
        constraints=PriceConstraints(3_650_000, 365_000_000, 18_250_000),
        payment_processors=PaymentProcessors("paypal", ("paypal",)),
        formatting=CurrencyFormatting(0, ",", "."),
    ),
    "UY": CountryPricingConfig(
        currency="UYU",
        commission=Commission(marketplace_rate=0.15, direct_hire_rate=0.2),
        constraints=PriceConstraints(19_750, 1_975_000, 98_750),
        payment_processors=PaymentProcessors("paypal", ("paypal",)),
        formatting=CurrencyFormatting(2, ",", "."),
    ),
    "AR": CountryPricingConfig(
        currency="ARS",
        commission=Commission(marketplace_rate=0.15, direct_hire_rate=0.2),
        constraints=PriceConstraints(475_000, 47_500_000, 2_375_000),
        payment_processors=PaymentProcessors("paypal", ("paypal",)),
        formatting=CurrencyFormatting(2, ",", "."),
    ),
}

CURRENCY_COUNTRY = {config.currency: code for code, config in COUNTRY_PRICING.items()}

# Display only. Real conversions use the admin-managed pricing controls.
APPROXIMATE_USD_RATES = {
    "COP": 4200.0,
    "PYG": 7300.0,
    "UYU": 39.5,
    "ARS": 950.0,  # Highly volatile
    "USD": 1.0,
}


def get_pricing_config(country_code: str) -> CountryPricingConfig:
    """Get pricing configuration for a country"""
    config = COUNTRY_PRICING.get((country_code or "").upper())
    if config is None:
        raise ValueError(f"No pricing configuration found for country: {country_code}")
    return config


def get_currency_for_country(country_code: str) -> str:
    return get_pricing_config(country_code).currency


def is_valid_price(price: int, country_code: str) -> bool:
    """Check if a price is within the valid range for a country"""
    constraints = get_pricing_config(country_code).constraints
    return constraints.min_price <= price <= constraints.max_price


def calculate_commission(price: int, country_code: str, is_direct_hire: bool = False) -> int:
    """Platform commission for a booking or direct hire, rounded half up"""
    commission = get_pricing_config(country_code).commission
    rate = commission.direct_hire_rate if is_direct_hire else commission.marketplace_rate
    return apply_rate(price, rate)


def get_primary_payment_processor(country_code: str) -> str:
    return get_pricing_config(country_code).payment_processors.primary


def is_payment_processor_supported(processor: str, country_code: str) -> bool:
    return processor in get_pricing_config(country_code).payment_processors.supported


def get_approximate_usd(amount_minor: int, currency: str) -> float:
    """Approximate USD equivalent for display. Never use for charging."""
    rate = APPROXIMATE_USD_RATES.get(currency.upper())
    if rate is None:
        raise ValueError(f"Unknown currency: {currency}")
    return amount_minor / (rate * 100)


def format_currency(amount_minor: int, currency: str = "COP") -> str:
    """
    Format a minor-unit amount with the country's separators.

    >>> format_currency(15_000_000, "COP")
    '$150.000 COP'
    """
    currency = currency.upper()
    if currency == "USD":
        fmt = CurrencyFormatting(2, ",", ".")
    else:
        country = CURRENCY_COUNTRY.get(currency)
        if country is None:
            raise ValueError(f"Unknown currency: {currency}")
        fmt = get_pricing_config(country).formatting

    major = amount_minor / 100
    if fmt.decimal_places == 0:
        whole, fraction = str(round_half_up(abs(major))), ""
    else:
        scaled = round_half_up(abs(major) * 10**fmt.decimal_places)
        whole = str(scaled // 10**fmt.decimal_places)
        fraction = str(scaled % 10**fmt.decimal_places).zfill(fmt.decimal_places)

    groups = []
    while len(whole) > 3:
        groups.insert(0, whole[-3:])
        whole = whole[:-3]
    groups.insert(0, whole)
    number = fmt.thousands_separator.join(groups)
    if fraction:
        number = f"{number}{fmt.decimal_separator}{fraction}"

    sign = "-" if amount_minor < 0 else ""
    if fmt.symbol_position == "before":
        return f"{sign}{fmt.symbol}{number} {currency}"
    return f"{sign}{number}{fmt.symbol} {currency}"
