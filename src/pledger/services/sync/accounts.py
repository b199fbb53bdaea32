"""
Remote account resolution for the push direction.

AccountResolver maps local account names to Firefly account ids, creating
each (name, kind) pair at most once per run, and keeps track of the
currencies enabled remotely.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Dict, Iterable, Optional, Set, Tuple

from pledger.core.exceptions import MissingAccountIdError
from pledger.core.models import Line
from pledger.core.money import Money

logger = logging.getLogger(__name__)


class AccountKind(Enum):
    """Firefly account types used by pledger."""

    ASSET = "asset"
    EXPENSE = "expense"
    REVENUE = "revenue"


@dataclass
class AccountData:
    """Account as needed for one record; never persisted."""

    name: str
    kind: AccountKind = AccountKind.ASSET
    date: Optional[date] = None
    value: Optional[Money] = None
    currency: Optional[str] = None
    networth: bool = False
    id: Optional[str] = None

    @property
    def key(self) -> Tuple[str, str]:
        return (self.name, self.kind.value)

    @classmethod
    def asset(cls, line: Line, ignored_accounts: Iterable[str] = ()) -> "AccountData":
        return cls(
            name=line.account,
            kind=AccountKind.ASSET,
            currency=line.currency.code,
            networth=line.account not in set(ignored_accounts),
        )


class Balance:
    """An asset account carrying an opening balance."""

    def __init__(self, data: AccountData):
        self.data = data

    def id(self) -> str:
        if not self.data.id:
            raise MissingAccountIdError()
        return self.data.id

    def ids(self) -> Tuple[str, str]:
        raise MissingAccountIdError()


class DoubleEntry:
    """Ordered (source, destination) pair of accounts."""

    def __init__(self, source: AccountData, destination: AccountData):
        self.source = source
        self.destination = destination

    def id(self) -> str:
        raise MissingAccountIdError()

    def ids(self) -> Tuple[str, str]:
        if not self.source.id or not self.destination.id:
            raise MissingAccountIdError()
        return (self.source.id, self.destination.id)


@dataclass
class TransactionRequest:
    """A withdrawal/deposit ready to be posted."""

    ids: Tuple[str, str]
    line: Line
    value: Money


@dataclass
class TransferRequest:
    """A transfer between two asset accounts ready to be posted."""

    ids: Tuple[str, str]
    line: Line
    other_line: Line

    @property
    def value(self) -> Money:
        return self.line.amount


@dataclass
class AccountResolver:
    """
    Per-run cache of remote accounts and currencies.

    Seed it with :meth:`load` before resolving so accounts that already exist
    remotely are reused instead of created again.
    """

    client: object
    default_currency: Optional[str] = None
    ignored_accounts: Tuple[str, ...] = ()
    accounts: Dict[Tuple[str, str], str] = field(default_factory=dict)
    currencies: Set[str] = field(default_factory=set)
    user: Optional[str] = None

    def load(self) -> None:
        """Fetch the user, existing accounts and enabled currencies."""
        # Only a credential check before anything is written.
        self.user = self.client.current_user()

        if self.default_currency:
            self.client.set_default_currency(self.default_currency)

        for account in self.client.list_accounts():
            self.accounts.setdefault((account.name, account.type), account.id)

        for currency in self.client.list_currencies():
            if currency.enabled:
                self.currencies.add(currency.code)

        logger.info(
            "Loaded %d remote account(s) and %d enabled currencies",
            len(self.accounts),
            len(self.currencies),
        )

    def resolve(self, data: AccountData) -> str:
        """Return the remote id of ``data``, creating the account on a miss."""
        cached = self.accounts.get(data.key)
        if cached is not None:
            data.id = cached
            return cached

        account_id = self.client.create_account(
            data.name,
            data.kind.value,
            currency=data.currency,
            opening_balance=data.value,
            opening_date=data.date,
            include_net_worth=data.networth,
        )
        self.accounts[data.key] = account_id
        data.id = account_id
        return account_id

    def ensure_currency(self, code: str) -> None:
        if code in self.currencies:
            return
        self.client.enable_currency(code)
        self.currencies.add(code)

    # Account builders

    def balance(self, line: Line, value: Money) -> Balance:
        data = AccountData.asset(line, self.ignored_accounts)
        data.date = line.date
        data.value = value
        self.resolve(data)
        return Balance(data)

    def transaction(self, line: Line, value: Money) -> DoubleEntry:
        """Asset <-> category pair, ordered by the sign of ``value``."""
        asset = AccountData.asset(line, self.ignored_accounts)
        self.resolve(asset)

        if value.is_negative:
            category = AccountData(name=line.category, kind=AccountKind.EXPENSE)
            self.resolve(category)
            return DoubleEntry(asset, category)

        category = AccountData(name=line.category, kind=AccountKind.REVENUE)
        self.resolve(category)
        return DoubleEntry(category, asset)

    def transfer(self, line: Line, other_line: Line) -> DoubleEntry:
        """Asset pair, money flowing out of the negative leg."""
        one = AccountData.asset(line, self.ignored_accounts)
        self.resolve(one)
        other = AccountData.asset(other_line, self.ignored_accounts)
        self.resolve(other)

        if line.amount.is_negative:
            return DoubleEntry(one, other)
        return DoubleEntry(other, one)
