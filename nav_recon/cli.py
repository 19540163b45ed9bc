"""Command-line entrypoint for NAV reconciliation."""
from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import date
from pathlib import Path

from nav_recon.application.dto import DocumentReconciliationRequest
from nav_recon.application.use_cases import ReconcileFundUseCase, ReconciliationContext
from nav_recon.domain.errors import ReconciliationError
from nav_recon.domain.models import OverallStatus
from nav_recon.infrastructure.repositories.excel_repositories import (
    CustodyStatementProvider,
    RegistryWorkbookProvider,
)
from nav_recon.infrastructure.storage.mapping_store import load_mapping, save_mapping
from nav_recon.presentation.result_report import render_csv, render_text, result_to_json

logger = logging.getLogger("nav_recon")

THRESHOLD_FLAGS = {
    "cash_percent": "cash_difference_percent",
    "cash_absolute": "cash_difference_absolute",
    "quantity_percent": "position_quantity_percent",
    "price_percent": "position_price_percent",
    "missing_value": "missing_position_value",
}


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Reconcile fund registry holdings against a custody statement")
    parser.add_argument("registry", type=str, help="Path to registry holdings export (xlsx or csv)")
    parser.add_argument("statement", type=str, help="Path to custody statement (extracted json, xlsx or csv)")
    parser.add_argument("--fund-id", required=True, help="Fund identifier")
    parser.add_argument("--fund-name", help="Fund display name")
    parser.add_argument("--account-id", help="Custody account (required for workbook statements)")
    parser.add_argument("--date", type=str, help="Reconciliation date (YYYY-MM-DD)")
    parser.add_argument("--currency", default="SEK", help="Default currency when the files carry none")
    parser.add_argument("--mapping", type=str, help="Identifier alias mapping json")
    parser.add_argument(
        "--alias",
        action="append",
        default=[],
        metavar="CODE=ISIN",
        help="Store a custodian code to ISIN alias in the mapping file before running",
    )
    parser.add_argument("--cash-percent", type=str, help="Cash tolerance in percent")
    parser.add_argument("--cash-absolute", type=str, help="Cash tolerance in currency units")
    parser.add_argument("--quantity-percent", type=str, help="Position quantity tolerance in percent")
    parser.add_argument("--price-percent", type=str, help="Position price tolerance in percent")
    parser.add_argument("--missing-value", type=str, help="Value at which a one-sided position is a major difference")
    parser.add_argument("--format", choices=("text", "json", "csv"), default="text")
    parser.add_argument("--output", type=str, help="Write the report to this file instead of stdout")
    parser.add_argument("--strict", action="store_true", help="Exit non-zero when review is required")
    parser.add_argument("--log-level", default="WARNING")
    return parser.parse_args(argv)


def _overrides(args: argparse.Namespace) -> dict[str, str]:
    overrides = {}
    for flag, name in THRESHOLD_FLAGS.items():
        value = getattr(args, flag)
        if value is not None:
            overrides[name] = value
    return overrides


def _parse_aliases(values: list[str]) -> dict[str, str]:
    aliases = {}
    for value in values:
        code, sep, isin = value.partition("=")
        if not sep or not code.strip() or not isin.strip():
            raise ValueError(f"alias must look like CODE=ISIN, got {value!r}")
        aliases[code] = isin
    return aliases


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv if argv is not None else sys.argv[1:])
    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    reconciliation_date = date.fromisoformat(args.date) if args.date else None
    mapping_path = Path(args.mapping) if args.mapping else None
    try:
        aliases = _parse_aliases(args.alias)
    except ValueError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2
    if aliases:
        mapping = save_mapping(aliases, path=mapping_path)
        logger.info("Saved %d identifier aliases", len(aliases))
    else:
        mapping = load_mapping(mapping_path)

    statement_path = Path(args.statement)
    if statement_path.suffix.lower() == ".json":
        try:
            document = json.loads(statement_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.error("Cannot read custody statement %s: %s", statement_path, exc)
            print(f"error: cannot read custody statement: {exc}", file=sys.stderr)
            return 2
    elif args.account_id:
        document = statement_path
    else:
        print("error: --account-id is required for workbook statements", file=sys.stderr)
        return 2

    context = ReconciliationContext(
        internal_provider=RegistryWorkbookProvider(
            {args.fund_id: Path(args.registry)},
            fund_names={args.fund_id: args.fund_name} if args.fund_name else None,
            currency=args.currency,
            mapping=mapping,
        ),
        document_custody_provider=CustodyStatementProvider(
            account_id=args.account_id,
            mapping=mapping,
            currency=args.currency,
        ),
    )
    use_case = ReconcileFundUseCase(context)
    try:
        result = use_case.reconcile_with_document(
            DocumentReconciliationRequest(
                fund_id=args.fund_id,
                document=document,
                reconciliation_date=reconciliation_date,
                config=_overrides(args) or None,
            )
        )
    except (ReconciliationError, OSError, ValueError) as exc:
        logger.error("Reconciliation could not run: %s", exc)
        print(f"error: {exc}", file=sys.stderr)
        return 2

    if args.format == "json":
        payload = result_to_json(result).encode("utf-8")
    elif args.format == "csv":
        payload = render_csv(result.positions)
    else:
        payload = (render_text(result) + "\n").encode("utf-8")

    if args.output:
        Path(args.output).write_bytes(payload)
    else:
        sys.stdout.write(payload.decode("utf-8"))

    status = result.summary.overall_status
    if status is OverallStatus.FAILED:
        return 1
    if args.strict and status is OverallStatus.REVIEW_REQUIRED:
        return 1
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
