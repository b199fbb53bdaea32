"""
Money and currency value types.

Amounts are kept as Decimal together with their currency; arithmetic is only
defined between amounts of the same currency.
"""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Union

DIFFERENT_CURRENCIES = "Cannot perform operations between different currencies"
DATE_FORMAT = "%Y-%m-%d"

# ISO 4217 minor units that differ from the usual two decimal places
MINOR_UNITS = {
    "BIF": 0, "CLP": 0, "DJF": 0, "GNF": 0, "ISK": 0, "JPY": 0, "KMF": 0,
    "KRW": 0, "PYG": 0, "RWF": 0, "UGX": 0, "VND": 0, "VUV": 0, "XAF": 0,
    "XOF": 0, "XPF": 0,
    "BHD": 3, "IQD": 3, "JOD": 3, "KWD": 3, "LYD": 3, "OMR": 3, "TND": 3,
}


@dataclass(frozen=True)
class Currency:
    """An ISO 4217 currency code."""

    code: str = "EUR"

    @classmethod
    def parse(cls, code: str) -> "Currency":
        value = (code or "").strip().upper()
        if len(value) != 3 or not value.isalpha():
            raise ValueError(f"The currency code '{code}' does not exist")
        return cls(value)

    @property
    def decimal_places(self) -> int:
        return MINOR_UNITS.get(self.code, 2)

    def __str__(self) -> str:
        return self.code


@dataclass(frozen=True)
class Money:
    """An amount of money in a single currency."""

    value: Decimal
    currency: Currency

    @classmethod
    def parse(cls, text: str, currency: Currency) -> "Money":
        """Parse a plain decimal string ("-12.50"); empty means zero."""
        raw = (text or "").strip().replace(",", "")
        if not raw:
            return cls.zero(currency)
        try:
            value = Decimal(raw)
        except InvalidOperation as e:
            raise ValueError(f"Invalid amount: {text}") from e
        if not value.is_finite():
            raise ValueError(f"Invalid amount: {text}")
        return cls(value, currency)

    @classmethod
    def zero(cls, currency: Currency) -> "Money":
        return cls(Decimal("0"), currency)

    def _check(self, other: "Money") -> None:
        if self.currency != other.currency:
            raise ValueError(f"{self} / {other}: {DIFFERENT_CURRENCIES}")

    def __add__(self, other: "Money") -> "Money":
        self._check(other)
        return Money(self.value + other.value, self.currency)

    def __sub__(self, other: "Money") -> "Money":
        self._check(other)
        return Money(self.value - other.value, self.currency)

    def __neg__(self) -> "Money":
        return Money(-self.value, self.currency)

    def __abs__(self) -> "Money":
        return Money(abs(self.value), self.currency)

    @property
    def is_zero(self) -> bool:
        return self.value == 0

    @property
    def is_negative(self) -> bool:
        return self.value < 0

    @property
    def is_positive(self) -> bool:
        return self.value > 0

    def to_storage(self) -> str:
        """Amount as a plain string with the currency's decimal places."""
        exponent = Decimal(1).scaleb(-self.currency.decimal_places)
        return str(self.value.quantize(exponent, rounding=ROUND_HALF_UP))

    def __str__(self) -> str:
        return f"{self.to_storage()} {self.currency.code}"


def parse_date(value: Union[str, date]) -> date:
    """
    Parse a ledger date.

    Accepts %Y-%m-%d or an RFC 3339 timestamp (its date part is used). An
    empty value means today.
    """
    if isinstance(value, date):
        return value
    text = (value or "").strip()
    if not text:
        return date.today()
    try:
        return datetime.strptime(text, DATE_FORMAT).date()
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        raise ValueError(f"Invalid format for date: {text} (only accept %Y-%m-%d)")


def format_date(value: date) -> str:
    return value.strftime(DATE_FORMAT)
