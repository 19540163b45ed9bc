"""Shared parsing utilities for snapshot ingestion."""
from __future__ import annotations

from datetime import date
from decimal import Decimal, InvalidOperation
from io import BytesIO
from pathlib import Path
from typing import Mapping, Sequence
import hashlib

import pandas as pd

from nav_recon.domain.models import Position

CASH_IDENTIFIERS = {"CASH", "CASH BALANCE", "LIQUIDITY"}


def ensure_bytes(source: BytesIO | Path | str | bytes) -> bytes:
    if isinstance(source, bytes):
        return source
    if isinstance(source, BytesIO):
        return source.getvalue()
    if isinstance(source, (Path, str)):
        return Path(source).read_bytes()
    raise TypeError(f"Unsupported source type: {type(source)!r}")


def compute_file_hash(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def parse_decimal(value: object) -> Decimal:
    """Parse a formatted amount such as ``"(1,250.00)"`` or ``"1 000,5"``.

    Blank cells read as zero; anything else that is not a number raises
    ``ValueError``.
    """
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    if isinstance(value, (int, float)):
        if value != value:
            return Decimal("0")
        return Decimal(str(value))
    s = str(value).strip()
    if not s or s.upper() == "NAN":
        return Decimal("0")
    negative = False
    if s.startswith("(") and s.endswith(")"):
        negative = True
        s = s[1:-1]
    for ch in ["$", "€", "£", " ", "\xa0"]:
        s = s.replace(ch, "")
    if "," in s and "." not in s and s.count(",") == 1 and len(s.split(",")[1]) != 3:
        s = s.replace(",", ".")
    else:
        s = s.replace(",", "")
    try:
        result = Decimal(s)
    except InvalidOperation as exc:
        raise ValueError(f"Not a number: {value!r}") from exc
    if negative:
        result = -result
    return result


def _is_blank(value: object) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and value != value:
        return True
    return isinstance(value, str) and value.strip().upper() in {"", "NAN"}


def parse_required_decimal(value: object, field: str) -> Decimal:
    """Like ``parse_decimal`` but a missing or blank amount raises ``ValueError``."""
    if _is_blank(value):
        raise ValueError(f"missing amount for {field}")
    return parse_decimal(value)


def normalize_security_id(value: object, mapping: Mapping[str, str] | None = None) -> str:
    s = "" if value is None else str(value).strip().upper()
    if s in {"", "NAN", "NONE"}:
        return ""
    s = s.split()[0]
    if mapping:
        return mapping.get(s) or s
    return s


def pick_sheet(sheets: Sequence[str], preferred: str | None) -> str:
    if not sheets:
        raise ValueError("Workbook has no sheets")
    if not preferred:
        return sheets[0]
    if preferred in sheets:
        return preferred
    lower_map = {name.lower(): name for name in sheets}
    if preferred.lower() in lower_map:
        return lower_map[preferred.lower()]
    for name in sheets:
        if preferred.lower() in name.lower():
            return name
    return sheets[0]


def read_table(source: bytes, filename: str = "", sheet: str | None = None, header: int = 0) -> pd.DataFrame:
    """Read a CSV or Excel export into a string-typed frame."""
    if filename.lower().endswith(".csv"):
        return pd.read_csv(BytesIO(source), dtype=str, header=header)
    engine = "xlrd" if filename.lower().endswith(".xls") else "openpyxl"
    xls = pd.ExcelFile(BytesIO(source), engine=engine)
    sheet_name = pick_sheet(xls.sheet_names, sheet)
    return pd.read_excel(xls, sheet_name=sheet_name, dtype=str, header=header)


ID_COLUMNS = ["ISIN", "Isin", "Security ID", "SecurityId"]
NAME_COLUMNS = ["Instrument", "Instrument Name", "Security Name", "Name"]
QUANTITY_COLUMNS = ["Quantity", "Shares/Par", "Holding", "Nominal"]
PRICE_COLUMNS = ["Price", "Unit Price", "Market Price"]
VALUE_COLUMNS = ["Market Value", "Book Market Value", "Traded Market Value (Base)"]
CURRENCY_COLUMNS = ["Currency", "Base Currency", "NAV Currency"]
DATE_COLUMNS = ["Valuation Date", "Value Date", "Date", "NAV Date", "Report Date"]


def find_column(df: pd.DataFrame, candidates: Sequence[str], required: bool = True) -> str | None:
    lower_map = {str(column).strip().lower(): column for column in df.columns}
    for candidate in candidates:
        if candidate.lower() in lower_map:
            return lower_map[candidate.lower()]
    if required:
        raise ValueError(f"Missing column, expected one of: {', '.join(candidates)}")
    return None


def extract_date(df: pd.DataFrame) -> date | None:
    column = find_column(df, DATE_COLUMNS, required=False)
    if column is None:
        return None
    series = pd.to_datetime(df[column], errors="coerce").dropna()
    if series.empty:
        return None
    return series.iloc[0].date()


def extract_currency(df: pd.DataFrame, default: str) -> str:
    column = find_column(df, CURRENCY_COLUMNS, required=False)
    if column is not None:
        series = df[column].dropna().astype(str).str.strip()
        series = series[series != ""]
        if not series.empty:
            return series.iloc[0].upper()
    return default


def frame_to_positions(
    df: pd.DataFrame,
    default_currency: str,
    mapping: Mapping[str, str] | None = None,
) -> tuple[list[Position], Decimal]:
    """Convert a holdings table to positions plus the cash balance row."""
    id_col = find_column(df, ID_COLUMNS)
    name_col = find_column(df, NAME_COLUMNS, required=False)
    qty_col = find_column(df, QUANTITY_COLUMNS)
    price_col = find_column(df, PRICE_COLUMNS)
    value_col = find_column(df, VALUE_COLUMNS)
    ccy_col = find_column(df, CURRENCY_COLUMNS, required=False)

    positions: list[Position] = []
    cash = Decimal("0")
    for idx, row in df.iterrows():
        raw_id = "" if pd.isna(row[id_col]) else str(row[id_col]).strip().upper()
        if not raw_id:
            continue
        try:
            if raw_id in CASH_IDENTIFIERS:
                cash += parse_required_decimal(row[value_col], "cash market value")
                continue
            security_id = normalize_security_id(raw_id, mapping)
            name = str(row[name_col]).strip() if name_col and not pd.isna(row[name_col]) else security_id
            currency = default_currency
            if ccy_col and not pd.isna(row[ccy_col]) and str(row[ccy_col]).strip():
                currency = str(row[ccy_col]).strip().upper()
            positions.append(
                Position(
                    security_id=security_id,
                    instrument_name=name,
                    quantity=parse_required_decimal(row[qty_col], "quantity"),
                    unit_price=parse_required_decimal(row[price_col], "price"),
                    market_value=parse_required_decimal(row[value_col], "market value"),
                    currency=currency,
                )
            )
        except ValueError as exc:
            raise ValueError(f"row={idx}: {exc}") from exc
    return positions, cash
