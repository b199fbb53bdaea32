"""
Push local records to Firefly III.

Each file is rewritten in a single pass. For every record not yet synced the
matching strategy (Ledger or Networth) creates the remote accounts and
transactions it needs and returns the record(s) to write back with the remote
id filled in.

The first failure stops all further remote calls: the failing record and
every record after it are written back unchanged, the file is still
persisted with the ids obtained so far, and only then is the error raised.
Running the command again resumes from the first record without an id.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from pledger.core.config import Config
from pledger.core.models import Line, Mode
from pledger.core.money import Money
from pledger.core.resource import Resource
from pledger.services.sync.accounts import (
    AccountResolver,
    TransactionRequest,
    TransferRequest,
)

logger = logging.getLogger(__name__)


class Syncable:
    """Per-file push strategy."""

    mode: Mode

    def __init__(self, resolver: AccountResolver, client):
        self.resolver = resolver
        self.client = client
        self.synced = 0

    def process(self, record: Line) -> List[Line]:
        raise NotImplementedError

    def recover(self, record: Line) -> List[Line]:
        """Lines to write for a record whose processing failed."""
        return [record]

    def drain(self) -> List[Line]:
        """Lines still held back once the file has been read."""
        return []

    def opening_balance(self, record: Line) -> bool:
        raise NotImplementedError

    def balance(self, record: Line) -> Money:
        raise NotImplementedError

    def value(self, record: Line) -> Money:
        raise NotImplementedError

    def process_transaction(self, record: Line) -> List[Line]:
        """Post ``record`` as an opening balance or a withdrawal/deposit."""
        if self.opening_balance(record):
            balance = self.balance(record)
            account = self.resolver.balance(record, balance)
            if balance.is_zero:
                remote_id = ""
            else:
                remote_id = self.client.get_opening_balance_transaction(account.id())
        else:
            value = self.value(record)
            if value.is_zero:
                remote_id = ""
            else:
                accounts = self.resolver.transaction(record, value)
                request = TransactionRequest(accounts.ids(), record, value)
                remote_id = self.client.create_transaction(request.line, request.value, request.ids)

        if remote_id:
            self.synced += 1
        return [record.with_id(remote_id)]


class Ledger(Syncable):
    """
    Ledger strategy.

    Records whose category is the transfer marker come in pairs: the first
    leg is held back until the second one arrives, then a single transfer is
    posted and both legs get its id.
    """

    mode = Mode.LEDGER

    def __init__(self, resolver: AccountResolver, client, transfer: str, opening_balance: str):
        super().__init__(resolver, client)
        self.transfer = transfer
        self.opening_category = opening_balance
        self.pending: Optional[Line] = None

    def process(self, record: Line) -> List[Line]:
        if record.reconcilable and record.category == self.transfer:
            return self.process_transfer(record)

        lines = self.process_transaction(record) if record.reconcilable else [record]
        return self._take_pending() + lines

    def process_transfer(self, record: Line) -> List[Line]:
        if self.pending is None:
            self.pending = record
            return []

        pending = self.pending
        if pending.amount.is_zero:
            remote_id = ""
        else:
            accounts = self.resolver.transfer(pending, record)
            request = TransferRequest(accounts.ids(), pending, record)
            remote_id = self.client.create_transfer(request.line, request.other_line, request.ids)

        self.pending = None
        if remote_id:
            self.synced += 2
        return [pending.with_id(remote_id), record.with_id(remote_id)]

    def recover(self, record: Line) -> List[Line]:
        return self._take_pending() + [record]

    def drain(self) -> List[Line]:
        return self._take_pending()

    def _take_pending(self) -> List[Line]:
        if self.pending is None:
            return []
        pending, self.pending = self.pending, None
        logger.warning(
            "Transfer on %s from '%s' has no matching leg, left unsynced",
            pending.date,
            pending.account,
        )
        return [pending]

    def opening_balance(self, record: Line) -> bool:
        return record.category == self.opening_category

    def balance(self, record: Line) -> Money:
        return record.amount

    def value(self, record: Line) -> Money:
        return record.amount


class Networth(Syncable):
    """
    Networth strategy.

    The file stores the running value of the investments, so only the
    difference with the previous entry is posted; the first entry opens the
    account.
    """

    mode = Mode.NETWORTH

    def __init__(self, resolver: AccountResolver, client):
        super().__init__(resolver, client)
        self.previous_amount: Optional[Money] = None

    def process(self, record: Line) -> List[Line]:
        try:
            if record.reconcilable:
                return self.process_transaction(record)
            return [record]
        finally:
            self.previous_amount = record.investment

    def opening_balance(self, record: Line) -> bool:
        return self.previous_amount is None

    def balance(self, record: Line) -> Money:
        return record.investment

    def value(self, record: Line) -> Money:
        return record.investment - self.previous_amount


@dataclass
class PushSummary:
    """Counts of a push run per file."""
    reconcilable: Dict[Mode, int] = field(default_factory=dict)
    synced: Dict[Mode, int] = field(default_factory=dict)

    def total_synced(self) -> int:
        return sum(self.synced.values())


class Push:
    """
    Push driver for both files.

    Usage:
        client = FireflyClient(options.base_path, options.token)
        summary = Push(client, config).perform()
    """

    def __init__(self, client, config: Config):
        self.client = client
        self.config = config
        self.resolver = AccountResolver(
            client,
            default_currency=config.currency,
            ignored_accounts=tuple(config.ignored_accounts),
        )
        self.summary = PushSummary()

    def perform(self) -> PushSummary:
        """Push the ledger, then the networth file."""
        self.resolver.load()

        ledger = Ledger(
            self.resolver,
            self.client,
            transfer=self.config.transfer,
            opening_balance=self.config.firefly.opening_balance,
        )
        self.push(ledger)
        self.push(Networth(self.resolver, self.client))

        return self.summary

    def push(self, strategy: Syncable) -> None:
        """
        Rewrite the file of ``strategy.mode`` with the pushed records.

        Raises:
            Exception: The first error met during the pass, after the file
                has been persisted
        """
        mode = strategy.mode
        filepath = self.config.filepath(mode)
        if not filepath.exists():
            logger.warning("No %s file at %s, skipping", mode.value, filepath)
            return

        error: Optional[Exception] = None
        reconcilable = 0

        def visit(record: Line) -> List[Line]:
            nonlocal error, reconcilable
            if record.reconcilable:
                reconcilable += 1
            if error is not None:
                return [record]

            try:
                if record.reconcilable:
                    self.resolver.ensure_currency(record.currency.code)
                return strategy.process(record)
            except Exception as e:
                logger.warning("Pushing %s record of %s failed: %s", mode.value, record.date, e)
                error = e
                return strategy.recover(record)

        with Resource.open(filepath, mode, self.config.passphrase) as resource:
            resource.rewrite(visit, finish=strategy.drain)

        self.summary.reconcilable[mode] = reconcilable
        self.summary.synced[mode] = strategy.synced
        logger.info("Pushed %d of %d %s record(s)", strategy.synced, reconcilable, mode.value)

        if error is not None:
            raise error
