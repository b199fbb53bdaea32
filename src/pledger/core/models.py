"""
Ledger and networth records.

A ``Line`` is either a ``Transaction`` (one row of the ledger file) or an
``Entry`` (one row of the networth file). Both expose the same accessors so
the storage and sync layers never need to know which one they hold; only the
CSV boundary (``parse_line``/``to_row``) looks at the concrete type.
"""

from dataclasses import dataclass, field, replace
from datetime import date
from enum import Enum
from typing import Dict, List, Union

from pledger.core.money import Currency, Money, format_date, parse_date


class Mode(Enum):
    """Which of the two files a resource holds."""

    LEDGER = "ledger"
    NETWORTH = "networth"


TRANSACTION_FIELDS = [
    "Account",
    "Date",
    "Category",
    "Description",
    "Quantity",
    "Venue",
    "Amount",
    "Currency",
    "Trip",
    "Id",
]

ENTRY_FIELDS = ["Date", "Invested", "Investment", "Amount", "Currency", "Id"]

# Networth entries all belong to one implicit account
ENTRY_ACCOUNT = "Investments"
ENTRY_CATEGORY = "Investment Valuation"


def headers(mode: Mode) -> List[str]:
    """Column names of the file for ``mode``."""
    if mode is Mode.NETWORTH:
        return list(ENTRY_FIELDS)
    return list(TRANSACTION_FIELDS)


class _Reconcilable:
    """Behaviour shared by both kinds of line."""

    id: str
    date: date

    @property
    def reconcilable(self) -> bool:
        """Not yet synced and not dated in the future."""
        return not self.id and self.date <= date.today()

    def with_id(self, value: str):
        return replace(self, id=value)


@dataclass(frozen=True)
class Transaction(_Reconcilable):
    """A movement of money on one account of the ledger."""

    account: str
    date: date
    category: str
    description: str
    quantity: str
    venue: str
    amount: Money
    trip: str = ""
    id: str = ""

    @property
    def currency(self) -> Currency:
        return self.amount.currency

    @property
    def investment(self) -> Money:
        return Money.zero(self.currency)

    @classmethod
    def from_values(cls, values: List[str]) -> "Transaction":
        values = list(values) + [""] * (len(TRANSACTION_FIELDS) - len(values))
        currency = Currency.parse(values[7])
        return cls(
            account=values[0],
            date=parse_date(values[1]),
            category=values[2],
            description=values[3],
            quantity=values[4],
            venue=values[5],
            amount=Money.parse(values[6], currency),
            trip=values[8],
            id=values[9],
        )

    def to_row(self) -> List[str]:
        return [
            self.account,
            format_date(self.date),
            self.category,
            self.description,
            self.quantity,
            self.venue,
            self.amount.to_storage(),
            self.currency.code,
            self.trip,
            self.id,
        ]


@dataclass(frozen=True)
class Entry(_Reconcilable):
    """A networth snapshot: amounts invested, their value and cash."""

    date: date
    invested: Money
    investment: Money
    amount: Money
    id: str = ""

    account: str = field(default=ENTRY_ACCOUNT, init=False)
    category: str = field(default=ENTRY_CATEGORY, init=False)
    description: str = field(default="", init=False)
    quantity: str = field(default="", init=False)
    venue: str = field(default="", init=False)
    trip: str = field(default="", init=False)

    @property
    def currency(self) -> Currency:
        return self.amount.currency

    @classmethod
    def from_values(cls, values: List[str]) -> "Entry":
        values = list(values) + [""] * (len(ENTRY_FIELDS) - len(values))
        currency = Currency.parse(values[4])
        return cls(
            date=parse_date(values[0]),
            invested=Money.parse(values[1], currency),
            investment=Money.parse(values[2], currency),
            amount=Money.parse(values[3], currency),
            id=values[5],
        )

    def to_row(self) -> List[str]:
        return [
            format_date(self.date),
            self.invested.to_storage(),
            self.investment.to_storage(),
            self.amount.to_storage(),
            self.currency.code,
            self.id,
        ]


Line = Union[Transaction, Entry]


def build_line(values: List[str], mode: Mode) -> Line:
    """Build a line from positional values in column order."""
    if mode is Mode.NETWORTH:
        return Entry.from_values(values)
    return Transaction.from_values(values)


def parse_line(row: Dict[str, str], mode: Mode) -> Line:
    """
    Build a line from a CSV row keyed by column name.

    Raises:
        ValueError: If a required column is missing or a value is invalid
    """
    missing = [name for name in headers(mode) if name != "Id" and row.get(name) is None]
    if missing:
        raise ValueError(f"Missing column(s): {', '.join(missing)}")
    return build_line([row.get(name) or "" for name in headers(mode)], mode)
