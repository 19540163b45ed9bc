"""Serializers for reconciliation results.

``result_to_dict`` defines the durable JSON shape consumed by the storage and
reporting collaborators. Field order follows the result objects and the
position list keeps the engine's ordering.
"""
from __future__ import annotations

import csv
import io
import json
from decimal import Decimal
from typing import Any, Sequence

from nav_recon.domain.results import (
    CashComparison,
    Figures,
    PositionComparison,
    ReconciliationResult,
    SourceInfo,
    Summary,
)


def _number(value: Decimal) -> float:
    return float(value)


def _figures(figures: Figures | None) -> dict[str, float] | None:
    if figures is None:
        return None
    return {
        "quantity": _number(figures.quantity),
        "price": _number(figures.price),
        "value": _number(figures.value),
    }


def position_to_dict(item: PositionComparison) -> dict[str, Any]:
    diff = item.differences
    return {
        "securityId": item.security_id,
        "instrumentName": item.instrument_name,
        "internal": _figures(item.internal),
        "custody": _figures(item.custody),
        "differences": {
            "quantityDiff": _number(diff.quantity_diff),
            "quantityDiffPercent": _number(diff.quantity_diff_percent),
            "priceDiff": _number(diff.price_diff),
            "priceDiffPercent": _number(diff.price_diff_percent),
            "valueDiff": _number(diff.value_diff),
            "valueDiffPercent": _number(diff.value_diff_percent),
        },
        "status": item.status.value,
        "flags": list(item.flags),
    }


def cash_to_dict(cash: CashComparison) -> dict[str, Any]:
    return {
        "currency": cash.currency,
        "internalBalance": _number(cash.internal_balance),
        "custodyBalance": _number(cash.custody_balance),
        "difference": _number(cash.difference),
        "differencePercent": _number(cash.difference_percent),
        "status": cash.status.value,
        "flags": list(cash.flags),
    }


def summary_to_dict(summary: Summary) -> dict[str, Any]:
    return {
        "totalPositions": summary.total_positions,
        "matchingPositions": summary.matching_positions,
        "minorDifferences": summary.minor_differences,
        "majorDifferences": summary.major_differences,
        "missingInInternal": summary.missing_in_internal,
        "missingInCustody": summary.missing_in_custody,
        "internalTotalValue": _number(summary.internal_total_value),
        "custodyTotalValue": _number(summary.custody_total_value),
        "totalValueDifference": _number(summary.total_value_difference),
        "totalValueDifferencePercent": _number(summary.total_value_difference_percent),
        "overallStatus": summary.overall_status.value,
    }


def _source(info: SourceInfo) -> dict[str, Any]:
    return {
        "source": info.source,
        "timestamp": info.timestamp.isoformat(),
        "dataPoints": info.data_points,
    }


def result_to_dict(result: ReconciliationResult) -> dict[str, Any]:
    flags = []
    for flag in result.flags:
        entry: dict[str, Any] = {"level": flag.level.value, "message": flag.message}
        if flag.details is not None:
            entry["details"] = flag.details
        flags.append(entry)
    return {
        "fundId": result.fund_id,
        "fundName": result.fund_name,
        "reconciliationDate": result.reconciliation_date.isoformat(),
        "generatedAt": result.generated_at.isoformat(),
        "summary": summary_to_dict(result.summary),
        "cashComparison": cash_to_dict(result.cash_comparison),
        "positions": [position_to_dict(item) for item in result.positions],
        "flags": flags,
        "sources": {
            "internal": _source(result.sources.internal),
            "custody": _source(result.sources.custody),
        },
    }


def result_to_json(result: ReconciliationResult, indent: int | None = 2) -> str:
    return json.dumps(result_to_dict(result), ensure_ascii=False, indent=indent)


def positions_to_rows(positions: Sequence[PositionComparison]) -> list[dict[str, str]]:
    rows: list[dict[str, str]] = []
    for item in positions:
        internal_value = item.internal.value if item.internal else ""
        custody_value = item.custody.value if item.custody else ""
        rows.append(
            {
                "security_id": item.security_id,
                "instrument_name": item.instrument_name,
                "status": item.status.value,
                "internal_value": str(internal_value),
                "custody_value": str(custody_value),
                "value_diff": str(item.differences.value_diff),
                "quantity_diff_percent": f"{item.differences.quantity_diff_percent:.2f}",
                "price_diff_percent": f"{item.differences.price_diff_percent:.2f}",
                "flags": "; ".join(item.flags),
            }
        )
    return rows


def render_csv(positions: Sequence[PositionComparison]) -> bytes:
    rows = positions_to_rows(positions)
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=list(rows[0].keys()) if rows else [])
    if rows:
        writer.writeheader()
        writer.writerows(rows)
    return buffer.getvalue().encode("utf-8")


def render_text(result: ReconciliationResult) -> str:
    summary = result.summary
    lines = [
        f"Reconciliation {result.fund_name} ({result.fund_id}) {result.reconciliation_date.isoformat()}",
        "=" * 40,
        f"Overall status: {summary.overall_status.value}",
        f"Positions: {summary.total_positions}",
        f"Matching: {summary.matching_positions}",
        f"Minor differences: {summary.minor_differences}",
        f"Major differences: {summary.major_differences}",
        f"Missing in custody: {summary.missing_in_custody}",
        f"Missing in internal: {summary.missing_in_internal}",
        f"Total value difference: {summary.total_value_difference:,.2f} ({summary.total_value_difference_percent:.2f}%)",
        f"Cash: {result.cash_comparison.status.value}",
    ]
    if result.flags:
        lines.append("")
        lines.append("Flags:")
        for flag in result.flags:
            suffix = f" ({flag.details})" if flag.details else ""
            lines.append(f"- [{flag.level.value}] {flag.message}{suffix}")
    return "\n".join(lines)
