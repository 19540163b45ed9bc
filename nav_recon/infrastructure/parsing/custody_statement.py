"""Custody statement normalization for document-sourced custody data.

The extraction pipeline (OCR plus model-based structuring) runs elsewhere and
hands over a mapping shaped like::

    {
        "reportDate": "2024-03-28",
        "accountNumber": "8327-9 123 456 789",
        "currency": "SEK",
        "positions": [
            {"isin": "SE0000108656", "instrumentName": "Ericsson B",
             "quantity": 1000, "marketPrice": 61.2, "marketValue": 61200,
             "currency": "SEK"}
        ],
        "cashBalance": 150000,
        "totalMarketValue": 61200,
        "extractedAt": "2024-03-29T07:10:00Z",
        "confidence": 0.93
    }

Statements that were exported as workbooks are read with pandas instead.
"""
from __future__ import annotations

import logging
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from io import BytesIO
from pathlib import Path
from typing import Any, Mapping

from nav_recon.config import SETTINGS
from nav_recon.domain.errors import SnapshotAcquisitionError
from nav_recon.domain.models import CustodySnapshot, CustodySource, Position
from nav_recon.infrastructure.parsing.utils import (
    compute_file_hash,
    ensure_bytes,
    extract_currency,
    extract_date,
    frame_to_positions,
    normalize_security_id,
    parse_decimal,
    parse_required_decimal,
    read_table,
)

logger = logging.getLogger(__name__)

SOURCE_NAME = "custody-statement"
DEFAULT_SHEET_NAME = "Positions"


def _field(data: Mapping[str, Any], *names: str, default: Any = None) -> Any:
    for name in names:
        if name in data and data[name] is not None:
            return data[name]
    return default


def _parse_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value).strip()[:10])


def _parse_timestamp(value: Any) -> datetime:
    if value is None:
        return datetime.now(SETTINGS.timezone)
    if isinstance(value, datetime):
        return value
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return datetime.fromisoformat(text)


def statement_to_snapshot(
    report: Mapping[str, Any],
    mapping: Mapping[str, str] | None = None,
    min_confidence: Decimal | None = None,
    custodian: str = "",
) -> CustodySnapshot:
    """Normalize an extracted custody statement into a ``CustodySnapshot``."""
    if min_confidence is None:
        min_confidence = SETTINGS.min_extraction_confidence

    confidence = _field(report, "confidence")
    try:
        confidence_value = None if confidence is None else Decimal(str(confidence))
    except InvalidOperation as exc:
        raise SnapshotAcquisitionError(SOURCE_NAME, f"extraction confidence {confidence!r} is not a number") from exc
    if confidence_value is not None and confidence_value < min_confidence:
        raise SnapshotAcquisitionError(
            SOURCE_NAME,
            f"extraction confidence {confidence} below minimum {min_confidence}",
        )

    report_date = _field(report, "reportDate", "report_date")
    account = _field(report, "accountNumber", "account_number", "accountId")
    if report_date is None or account is None:
        raise SnapshotAcquisitionError(SOURCE_NAME, "statement lacks report date or account number")

    currency = str(_field(report, "currency", default="SEK")).strip().upper()
    positions: list[Position] = []
    try:
        for idx, item in enumerate(_field(report, "positions", default=[])):
            security_id = normalize_security_id(_field(item, "isin", "securityId", "security_id"), mapping)
            if not security_id:
                raise ValueError(f"position {idx} has no security identifier")
            positions.append(
                Position(
                    security_id=security_id,
                    instrument_name=str(_field(item, "instrumentName", "instrument_name", default=security_id)),
                    quantity=parse_required_decimal(_field(item, "quantity"), f"position {idx} quantity"),
                    unit_price=parse_required_decimal(
                        _field(item, "marketPrice", "unitPrice", "unit_price"), f"position {idx} price"
                    ),
                    market_value=parse_required_decimal(
                        _field(item, "marketValue", "market_value"), f"position {idx} market value"
                    ),
                    currency=str(_field(item, "currency", default=currency)).strip().upper(),
                )
            )
        cash = parse_required_decimal(_field(report, "cashBalance", "cash_balance"), "cashBalance")
        as_of_date = _parse_date(report_date)
        captured_at = _parse_timestamp(_field(report, "extractedAt", "extracted_at"))
    except ValueError as exc:
        raise SnapshotAcquisitionError(SOURCE_NAME, str(exc)) from exc

    stated_total = _field(report, "totalMarketValue", "total_market_value")
    if stated_total is not None:
        summed = sum((p.market_value for p in positions), Decimal("0"))
        try:
            stated = parse_decimal(stated_total)
        except ValueError as exc:
            raise SnapshotAcquisitionError(SOURCE_NAME, str(exc)) from exc
        if stated != summed:
            logger.warning(
                "Statement total %s for account %s does not equal position sum %s",
                stated_total,
                account,
                summed,
            )

    metadata = {}
    if confidence is not None:
        metadata["confidence"] = str(confidence)
    return CustodySnapshot(
        account_id=str(account).strip(),
        currency=currency,
        as_of_date=as_of_date,
        source=CustodySource.DOCUMENT,
        positions=positions,
        cash_balance=cash,
        captured_at=captured_at,
        custodian=custodian,
        metadata=metadata,
    )


def statement_workbook_to_snapshot(
    source: BytesIO | Path | str | bytes,
    account_id: str,
    as_of: date | None = None,
    currency: str = "SEK",
    sheet: str | None = DEFAULT_SHEET_NAME,
    header: int = 0,
    mapping: Mapping[str, str] | None = None,
    custodian: str = "",
) -> CustodySnapshot:
    try:
        raw_bytes = ensure_bytes(source)
    except OSError as exc:
        raise SnapshotAcquisitionError(SOURCE_NAME, f"cannot read statement: {exc}") from exc
    filename = str(source) if isinstance(source, (Path, str)) else ""
    try:
        dataframe = read_table(raw_bytes, filename=filename, sheet=sheet, header=header)
        currency = extract_currency(dataframe, currency)
        positions, cash = frame_to_positions(dataframe, currency, mapping)
    except ValueError as exc:
        raise SnapshotAcquisitionError(SOURCE_NAME, str(exc)) from exc
    as_of = as_of or extract_date(dataframe)
    if as_of is None:
        raise SnapshotAcquisitionError(SOURCE_NAME, "statement workbook has no report date")
    return CustodySnapshot(
        account_id=account_id,
        currency=currency,
        as_of_date=as_of,
        source=CustodySource.DOCUMENT,
        positions=positions,
        cash_balance=cash,
        captured_at=datetime.now(SETTINGS.timezone),
        custodian=custodian,
        metadata={"file_hash": compute_file_hash(raw_bytes)},
    )
