"""Custody snapshot provider backed by the custodian bank's REST API."""
from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any, Mapping

import requests

from nav_recon.config import SETTINGS
from nav_recon.domain.errors import SnapshotAcquisitionError
from nav_recon.domain.models import CustodySnapshot, CustodySource, Position
from nav_recon.domain.repositories import CustodySnapshotProvider
from nav_recon.infrastructure.parsing.utils import normalize_security_id, parse_required_decimal

logger = logging.getLogger(__name__)

SOURCE_NAME = "custody-api"


class CustodyApiClient:
    """Thin client for the custody endpoints.

    Authentication is handled by whoever builds the session; the client only
    issues requests on it.
    """

    def __init__(
        self,
        base_url: str,
        session: requests.Session | None = None,
        timeout: float = 30.0,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._session = session or requests.Session()
        self._timeout = timeout

    def _get(self, path: str, params: Mapping[str, str] | None = None) -> dict[str, Any]:
        url = f"{self._base_url}{path}"
        logger.debug("GET %s", url)
        response = self._session.get(url, params=params, timeout=self._timeout)
        response.raise_for_status()
        return response.json()

    def get_custody_positions(self, account_id: str) -> list[dict[str, Any]]:
        return self._get(f"/custody/accounts/{account_id}/positions").get("positions", [])

    def get_account_balances(self, account_ids: list[str]) -> list[dict[str, Any]]:
        params = {"accountIds": ",".join(account_ids)} if account_ids else None
        return self._get("/accounts/balances", params=params).get("accounts", [])


class ApiCustodyProvider(CustodySnapshotProvider):
    def __init__(
        self,
        client: CustodyApiClient,
        custodian: str = "",
        mapping: Mapping[str, str] | None = None,
        currency: str = "SEK",
    ) -> None:
        self._client = client
        self._custodian = custodian
        self._mapping = mapping
        self._currency = currency

    def get_snapshot(self, account_id: str, as_of: date | None = None) -> CustodySnapshot:
        try:
            raw_positions = self._client.get_custody_positions(account_id)
            balances = self._client.get_account_balances([account_id])
        except requests.RequestException as exc:
            raise SnapshotAcquisitionError(SOURCE_NAME, f"request for account {account_id} failed: {exc}") from exc

        balance = next((b for b in balances if b.get("accountId") == account_id), None)
        if balance is None:
            raise SnapshotAcquisitionError(SOURCE_NAME, f"no cash balance returned for account {account_id}")

        currency = str(balance.get("currency") or self._currency).upper()
        try:
            positions = [self._to_position(item, currency) for item in raw_positions]
            cash = parse_required_decimal(balance.get("availableBalance"), "availableBalance")
        except (KeyError, ValueError) as exc:
            raise SnapshotAcquisitionError(SOURCE_NAME, f"malformed payload: {exc}") from exc

        logger.info("Fetched %d custody positions for account %s", len(positions), account_id)
        return CustodySnapshot(
            account_id=account_id,
            currency=currency,
            as_of_date=as_of or datetime.now(SETTINGS.timezone).date(),
            source=CustodySource.API,
            positions=positions,
            cash_balance=cash,
            captured_at=datetime.now(SETTINGS.timezone),
            custodian=self._custodian,
        )

    def _to_position(self, item: Mapping[str, Any], currency: str) -> Position:
        security_id = normalize_security_id(item["isin"], self._mapping)
        return Position(
            security_id=security_id,
            instrument_name=str(item.get("instrumentName") or security_id),
            quantity=parse_required_decimal(item.get("quantity"), "quantity"),
            unit_price=parse_required_decimal(item.get("marketPrice"), "marketPrice"),
            market_value=parse_required_decimal(item.get("marketValue"), "marketValue"),
            currency=str(item.get("currency") or currency).upper(),
        )
