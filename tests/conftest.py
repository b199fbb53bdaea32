"""
Shared pytest fixtures for pledger tests.

Provides configuration, ledger/networth files and an in-memory Firefly fake.
"""

import pytest
import sys
from pathlib import Path

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from pledger.core.config import Config, FireflyOptions
from pledger.core.exceptions import MissingOpeningBalanceError, RemoteServiceError
from pledger.core.models import Mode, TRANSACTION_FIELDS, ENTRY_FIELDS
from pledger.services.firefly import RemoteAccount, RemoteCurrency


# Test passphrase for encrypted files
TEST_PASSPHRASE = "test_passphrase_123"

LEDGER_HEADER = ",".join(TRANSACTION_FIELDS)
NETWORTH_HEADER = ",".join(ENTRY_FIELDS)


class FakeFirefly:
    """
    In-memory stand-in for FireflyClient.

    Records every call; ``fail_on`` makes the n-th call of an operation raise
    RemoteServiceError (1-based).
    """

    def __init__(self, accounts=None, currencies=("EUR",)):
        self.calls = []
        self.accounts = list(accounts or [])
        self.currencies = [RemoteCurrency(code, True) for code in currencies]
        self.opening_balances = {}
        self.fail_on = {}
        self._counts = {}
        self._next_id = 100

    def _call(self, name, *args):
        self.calls.append((name,) + args)
        self._counts[name] = self._counts.get(name, 0) + 1
        if self.fail_on.get(name) == self._counts[name]:
            raise RemoteServiceError(f"{name} failed", status=500)

    def _id(self):
        self._next_id += 1
        return str(self._next_id)

    def names(self, name):
        return [call for call in self.calls if call[0] == name]

    def current_user(self):
        self._call("current_user")
        return "1"

    def set_default_currency(self, code):
        self._call("set_default_currency", code)

    def enable_currency(self, code):
        self._call("enable_currency", code)
        self.currencies.append(RemoteCurrency(code, True))

    def list_currencies(self):
        self._call("list_currencies")
        return list(self.currencies)

    def list_accounts(self):
        self._call("list_accounts")
        return list(self.accounts)

    def create_account(self, name, kind, currency=None, opening_balance=None,
                       opening_date=None, include_net_worth=False):
        self._call("create_account", name, kind)
        account_id = self._id()
        self.accounts.append(RemoteAccount(account_id, name, kind))
        if opening_balance is not None and not opening_balance.is_zero:
            self.opening_balances[account_id] = self._id()
        return account_id

    def get_opening_balance_transaction(self, account_id):
        self._call("get_opening_balance_transaction", account_id)
        if account_id not in self.opening_balances:
            raise MissingOpeningBalanceError(account_id)
        return self.opening_balances[account_id]

    def create_transaction(self, line, value, ids):
        self._call("create_transaction", line.description, value.to_storage(), ids)
        return self._id()

    def create_transfer(self, line, other_line, ids):
        self._call("create_transfer", line.account, other_line.account, ids)
        return self._id()


@pytest.fixture
def fake_firefly():
    """Provide a fresh FakeFirefly for each test."""
    return FakeFirefly()


@pytest.fixture
def config_factory(tmp_path):
    """Build a Config pointing at files in a temporary directory."""

    def build(passphrase=None, firefly=True):
        return Config(
            ledger_file=str(tmp_path / "ledger.csv"),
            networth_file=str(tmp_path / "networth.csv"),
            encryption=passphrase,
            firefly=FireflyOptions("https://firefly.test", "token") if firefly else None,
            path=tmp_path / "config.json",
        )

    return build


@pytest.fixture
def config(config_factory):
    """Plain-text configuration with Firefly set up."""
    return config_factory()


@pytest.fixture
def write_file(tmp_path):
    """Write a CSV file with the header of ``mode`` followed by ``rows``."""

    def write(mode, rows, name=None):
        header = NETWORTH_HEADER if mode is Mode.NETWORTH else LEDGER_HEADER
        path = tmp_path / (name or f"{mode.value}.csv")
        path.write_text("\n".join([header] + list(rows)) + "\n", encoding="utf-8")
        return path

    return write


@pytest.fixture
def read_rows():
    """Read a plain CSV file as a list of lists (header excluded)."""
    import csv

    def read(path):
        with open(path, encoding="utf-8", newline="") as f:
            return list(csv.reader(f))[1:]

    return read
