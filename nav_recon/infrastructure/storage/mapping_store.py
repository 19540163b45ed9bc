"""Storage helpers for security identifier alias mappings.

Custodians sometimes report local codes instead of ISINs; the override file
maps those codes onto the identifiers used by the fund registry. The CLI's
``--alias CODE=ISIN`` option writes to it.
"""
from __future__ import annotations

from pathlib import Path
import json
import logging
from typing import Any, Mapping

from nav_recon.config import MAPPING_OVERRIDE_PATH

logger = logging.getLogger(__name__)


def _clean_code(value: Any) -> str:
    return "" if value is None else str(value).strip().upper()


def _aliases_from(raw: Any) -> dict[str, str]:
    """Keep entries whose code and target identifier are both non-empty."""
    if not isinstance(raw, Mapping):
        return {}
    aliases = {_clean_code(code): _clean_code(target) for code, target in raw.items()}
    return {code: target for code, target in aliases.items() if code and target}


def load_mapping(path: Path | None = None) -> dict[str, str]:
    override_path = path or MAPPING_OVERRIDE_PATH
    if not override_path.exists():
        return {}
    try:
        data = json.loads(override_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError:
        logger.warning("Ignoring unreadable identifier mapping at %s", override_path)
        return {}
    return _aliases_from(data)


def save_mapping(aliases: Mapping[str, str], path: Path | None = None) -> dict[str, str]:
    """Merge ``aliases`` into the stored mapping and return the result."""
    override_path = path or MAPPING_OVERRIDE_PATH
    merged = load_mapping(override_path)
    merged.update(_aliases_from(aliases))
    override_path.write_text(
        json.dumps(merged, ensure_ascii=False, indent=2, sort_keys=True),
        encoding="utf-8",
    )
    return merged
