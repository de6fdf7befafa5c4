from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from types import MappingProxyType
from typing import Iterable, Mapping, Optional
from urllib.error import URLError
from urllib.request import Request, urlopen

from config import get_settings

logger = logging.getLogger(__name__)

DEFAULT_RATES: Mapping[str, float] = MappingProxyType(
    {
        "USD": 1.0,
        "EUR": 0.93,
        "GBP": 0.81,
        "JPY": 149.32,
        "CAD": 1.37,
        "AUD": 1.55,
        "CNY": 7.21,
        "INR": 83.14,
        "PHP": 57.34,
    }
)

CURRENCY_SYMBOLS: Mapping[str, str] = MappingProxyType(
    {
        "USD": "$",
        "EUR": "€",
        "GBP": "£",
        "JPY": "¥",
        "CAD": "CA$",
        "AUD": "A$",
        "CNY": "CN¥",
        "INR": "₹",
        "PHP": "₱",
    }
)

# ISO 4217 currencies without a minor unit.
ZERO_DECIMAL_CURRENCIES = frozenset(
    {"JPY", "KRW", "VND", "CLP", "ISK", "PYG", "UGX", "XAF", "XOF"}
)


@dataclass(frozen=True)
class RateTable:
    base: str
    rates: Mapping[str, float]  # units of currency per 1 base
    source: str = "static"
    rate_date: Optional[date] = None
    fetched_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self) -> None:
        normalized = {code.upper(): float(rate) for code, rate in self.rates.items()}
        base_rate = normalized.get(self.base.upper(), 1.0)
        if base_rate <= 0:
            raise ValueError(f"Invalid rate for base currency {self.base}")
        if base_rate != 1.0:
            normalized = {code: rate / base_rate for code, rate in normalized.items()}
        normalized[self.base.upper()] = 1.0
        object.__setattr__(self, "base", self.base.upper())
        object.__setattr__(self, "rates", MappingProxyType(normalized))

    @property
    def currencies(self) -> list[str]:
        return list(self.rates)

    def rate(self, code: str) -> Optional[float]:
        return self.rates.get(code.upper())


def static_rate_table(base: str = "USD") -> RateTable:
    """The bundled table, re-expressed against ``base`` when it is not USD."""
    base = base.upper()
    if base not in DEFAULT_RATES:
        base = "USD"
    return RateTable(base=base, rates=DEFAULT_RATES)


def convert(table: RateTable, amount: float, from_code: str, to_code: str) -> float:
    """Convert by pivoting through the table's base currency.

    Unknown currencies leave the amount unchanged.
    """
    from_rate = table.rate(from_code)
    to_rate = table.rate(to_code)
    if not from_rate or not to_rate:
        return amount
    return amount / from_rate * to_rate


def fraction_digits(code: str) -> int:
    return 0 if code.upper() in ZERO_DECIMAL_CURRENCIES else 2


def format_amount(amount: float, code: str) -> str:
    code = code.upper()
    digits = fraction_digits(code)
    number = f"{abs(amount):,.{digits}f}"
    symbol = CURRENCY_SYMBOLS.get(code)
    body = f"{symbol}{number}" if symbol else f"{code} {number}"
    if amount < 0 and float(number.replace(",", "")) != 0:
        return f"-{body}"
    return body


class RateTableStore:
    """Holds the current snapshot; refreshes swap the whole table."""

    def __init__(self, table: RateTable) -> None:
        self._table = table

    @property
    def current(self) -> RateTable:
        return self._table

    def replace(self, table: RateTable) -> None:
        self._table = table
        logger.info(
            f"rate_table_replaced: source={table.source} base={table.base} "
            f"currencies={len(table.rates)}"
        )


class FxRateService:
    def __init__(self) -> None:
        self.settings = get_settings()

    def load(self, symbols: Optional[Iterable[str]] = None) -> RateTable:
        provider = (self.settings.fx_provider or "static").lower()
        base = self.settings.base_currency
        if provider == "static":
            return static_rate_table(base)
        if provider != "frankfurter":
            raise ValueError(f"Unsupported FX provider: {provider}")
        wanted = tuple(sorted(symbols or static_rate_table(base).currencies))
        return _fetch_frankfurter_table(
            base, wanted, timeout=self.settings.fx_timeout_secs
        )


def _fetch_frankfurter_table(
    base: str, symbols: tuple[str, ...], *, timeout: float
) -> RateTable:
    targets = ",".join(code for code in symbols if code != base)
    url = f"https://api.frankfurter.app/latest?from={base}&to={targets}"
    req = Request(url, headers={"Accept": "application/json"})
    fetched_at = datetime.now(timezone.utc)
    try:
        with urlopen(req, timeout=timeout) as resp:
            payload = json.loads(resp.read().decode("utf-8"))
    except (URLError, TimeoutError, json.JSONDecodeError) as exc:
        raise RuntimeError(f"Failed to fetch FX rates from Frankfurter for {base}") from exc

    try:
        rates = {code: float(value) for code, value in payload["rates"].items()}
        effective_date = date.fromisoformat(payload["date"])
    except Exception as exc:
        raise RuntimeError("Unexpected FX provider response") from exc

    rates[base] = 1.0
    return RateTable(
        base=base,
        rates=rates,
        source="frankfurter",
        rate_date=effective_date,
        fetched_at=fetched_at,
    )
