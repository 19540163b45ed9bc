"""Fund registry holdings export parser producing internal snapshots."""
from __future__ import annotations

from datetime import date, datetime
from io import BytesIO
from pathlib import Path

from nav_recon.config import SETTINGS
from nav_recon.domain.errors import SnapshotAcquisitionError
from nav_recon.domain.models import InternalSnapshot
from nav_recon.infrastructure.parsing.utils import (
    compute_file_hash,
    ensure_bytes,
    extract_currency,
    extract_date,
    frame_to_positions,
    read_table,
)

SOURCE_NAME = "registry"
DEFAULT_SHEET_NAME = "Holdings"


def registry_to_snapshot(
    source: BytesIO | Path | str | bytes,
    fund_id: str,
    fund_name: str | None = None,
    as_of: date | None = None,
    currency: str = "SEK",
    sheet: str | None = DEFAULT_SHEET_NAME,
    header: int = 0,
    mapping: dict[str, str] | None = None,
) -> InternalSnapshot:
    """Read a registry holdings export.

    Each row is one holding; a row whose identifier is ``CASH`` carries the
    fund's cash balance in its market value column.
    """
    try:
        raw_bytes = ensure_bytes(source)
    except OSError as exc:
        raise SnapshotAcquisitionError(SOURCE_NAME, f"cannot read registry export: {exc}") from exc
    filename = str(source) if isinstance(source, (Path, str)) else ""
    try:
        dataframe = read_table(raw_bytes, filename=filename, sheet=sheet, header=header)
        currency = extract_currency(dataframe, currency)
        holdings, cash = frame_to_positions(dataframe, currency, mapping)
    except ValueError as exc:
        raise SnapshotAcquisitionError(SOURCE_NAME, str(exc)) from exc
    as_of = as_of or extract_date(dataframe) or datetime.now(SETTINGS.timezone).date()

    return InternalSnapshot(
        fund_id=fund_id,
        fund_name=fund_name or f"Fund {fund_id}",
        currency=currency,
        as_of_date=as_of,
        holdings=holdings,
        cash_balance=cash,
        captured_at=datetime.now(SETTINGS.timezone),
        source_id=f"REGISTRY:{compute_file_hash(raw_bytes)[:12]}",
    )
