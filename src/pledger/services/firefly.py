"""
Firefly III API client.

Thin synchronous wrapper around the Firefly III REST API (v1) covering the
operations needed to push local records: accounts, currencies, transactions
and the current user. Every failure, transport errors included, is raised as
RemoteServiceError.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional, Tuple

import requests

from pledger.core.exceptions import MissingOpeningBalanceError, RemoteServiceError
from pledger.core.models import Line
from pledger.core.money import Money, format_date

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"
DEFAULT_TIMEOUT = 30

TYPE_WITHDRAWAL = "withdrawal"
TYPE_DEPOSIT = "deposit"
TYPE_TRANSFER = "transfer"
ROLE_DEFAULT_ASSET = "defaultAsset"


@dataclass
class RemoteAccount:
    """Account as listed by Firefly."""

    id: str
    name: str
    type: str


@dataclass
class RemoteCurrency:
    """Currency as listed by Firefly."""

    code: str
    enabled: bool


class FireflyClient:
    """
    Client for one Firefly III instance.

    Usage:
        client = FireflyClient("https://firefly.example.com", token)
        user = client.current_user()
        account_id = client.create_account("Bank", "asset", currency="EUR")
    """

    def __init__(self, base_path: str, token: str, timeout: int = DEFAULT_TIMEOUT,
                 session: Optional[requests.Session] = None):
        self.base_path = base_path.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({
            "Authorization": f"Bearer {token}",
            "Accept": "application/json",
            "Content-Type": "application/json",
        })

    # ------------------------------------------------------------------
    # HTTP plumbing
    # ------------------------------------------------------------------

    def _request(self, method: str, path: str, params: Optional[Dict[str, Any]] = None,
                 payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        url = f"{self.base_path}{API_PREFIX}{path}"
        logger.debug("%s %s params=%s", method, url, params)

        try:
            response = self.session.request(
                method, url, params=params, json=payload, timeout=self.timeout
            )
        except requests.RequestException as e:
            raise RemoteServiceError(f"{method} {path} failed: {e}") from e

        if not response.ok:
            raise RemoteServiceError(
                f"{method} {path} returned {response.status_code}: {_error_message(response)}",
                status=response.status_code,
            )

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            raise RemoteServiceError(f"{method} {path} returned invalid JSON") from e

    def _pages(self, path: str, params: Optional[Dict[str, Any]] = None) -> Iterator[Dict[str, Any]]:
        """Yield every item of a paginated listing."""
        page = 1
        while True:
            query = dict(params or {})
            query["page"] = page
            body = self._request("GET", path, params=query)

            for item in body.get("data", []):
                yield item

            pagination = (body.get("meta") or {}).get("pagination") or {}
            current = pagination.get("current_page") or page
            total = pagination.get("total_pages") or 1
            if current >= total:
                break
            page = current + 1

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def current_user(self) -> str:
        body = self._request("GET", "/about/user")
        return str(body["data"]["id"])

    def set_default_currency(self, code: str) -> None:
        self._request("POST", f"/currencies/{code}/default")

    def enable_currency(self, code: str) -> None:
        logger.info("Enabling currency %s", code)
        self._request("POST", f"/currencies/{code}/enable")

    def list_currencies(self) -> List[RemoteCurrency]:
        return [
            RemoteCurrency(
                code=item["attributes"]["code"],
                enabled=bool(item["attributes"].get("enabled")),
            )
            for item in self._pages("/currencies")
        ]

    def list_accounts(self) -> List[RemoteAccount]:
        return [
            RemoteAccount(
                id=str(item["id"]),
                name=item["attributes"]["name"],
                type=item["attributes"]["type"],
            )
            for item in self._pages("/accounts")
        ]

    def create_account(self, name: str, kind: str, currency: Optional[str] = None,
                       opening_balance: Optional[Money] = None, opening_date=None,
                       include_net_worth: bool = False) -> str:
        """
        Create an account and return its id.

        Args:
            name: Account name
            kind: Firefly account type ("asset", "expense", "revenue")
            currency: Currency code of the account
            opening_balance: Opening balance (asset accounts only)
            opening_date: Date of the opening balance
            include_net_worth: Count the account in Firefly's net worth
        """
        payload: Dict[str, Any] = {
            "name": name,
            "type": kind,
            "include_net_worth": include_net_worth,
        }
        if currency:
            payload["currency_code"] = currency
        if opening_balance is not None:
            payload["opening_balance"] = opening_balance.to_storage()
        if opening_date is not None:
            payload["opening_balance_date"] = format_date(opening_date)
        if kind == "asset":
            payload["account_role"] = ROLE_DEFAULT_ASSET

        body = self._request("POST", "/accounts", payload=payload)
        account_id = str(body["data"]["id"])
        logger.info("Created %s account '%s' (%s)", kind, name, account_id)
        return account_id

    def get_opening_balance_transaction(self, account_id: str) -> str:
        body = self._request(
            "GET",
            f"/accounts/{account_id}/transactions",
            params={"limit": 1, "type": "opening_balance"},
        )
        data = body.get("data") or []
        if not data:
            raise MissingOpeningBalanceError(account_id)
        return str(data[-1]["id"])

    def create_transaction(self, line: Line, value: Money, ids: Tuple[str, str]) -> str:
        """Post a withdrawal (negative value) or deposit (positive value)."""
        kind = TYPE_DEPOSIT if value.is_positive else TYPE_WITHDRAWAL
        return self._store(_split(kind, line, value, ids))

    def create_transfer(self, line: Line, other_line: Line, ids: Tuple[str, str]) -> str:
        """
        Post a transfer between the asset accounts of two lines.

        The amount is taken from ``line``; the other leg's amount and currency
        are sent as the foreign amount so legs in different currencies keep
        both values.
        """
        split = _split(TYPE_TRANSFER, line, line.amount, ids)
        split["foreign_currency_code"] = other_line.currency.code
        split["foreign_amount"] = abs(other_line.amount).to_storage()
        return self._store(split)

    def _store(self, split: Dict[str, Any]) -> str:
        body = self._request("POST", "/transactions", payload={"transactions": [split]})
        transaction_id = str(body["data"]["id"])
        logger.debug("Stored %s %s", split["type"], transaction_id)
        return transaction_id


def _split(kind: str, line: Line, amount: Money, ids: Tuple[str, str]) -> Dict[str, Any]:
    split: Dict[str, Any] = {
        "type": kind,
        "date": format_date(line.date),
        "amount": abs(amount).to_storage(),
        "description": line.description or line.category,
        "source_id": ids[0],
        "destination_id": ids[1],
        "currency_code": line.currency.code,
        "category_name": line.venue,
        "notes": line.quantity,
    }
    if line.trip:
        split["tags"] = [line.trip]
    return split


def _error_message(response: requests.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return response.text[:200]
