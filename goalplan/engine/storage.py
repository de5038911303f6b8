# engine/storage.py
from __future__ import annotations

import json
import logging
import math
import os
from decimal import Decimal
from typing import Any, Dict, Sequence

import pandas as pd

from ..data_model import ConfigSnapshot
from ..errors import ConfigurationError
from ..payloads import parse_snapshot
from .results import GoalResult

logger = logging.getLogger(__name__)

BREAKDOWN_COLUMNS = ["year", "contributions", "inflows", "cofinancing", "tax_refund", "growth", "balance"]


def ensure_parent_dir(path: str) -> None:
    folder = os.path.dirname(path)
    if folder and not os.path.exists(folder):
        os.makedirs(folder, exist_ok=True)


def _sanitize_json_compat(value: Any):
    if isinstance(value, Decimal):
        value = float(value)
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            return None
        return value
    if isinstance(value, dict):
        return {str(key): _sanitize_json_compat(val) for key, val in value.items()}
    if isinstance(value, (list, tuple)):
        return [_sanitize_json_compat(item) for item in value]
    return value


def load_snapshot(path: str) -> ConfigSnapshot:
    """Read a rate-table snapshot file. A missing or unreadable file is a configuration error."""
    if not os.path.exists(path):
        raise ConfigurationError(f"Snapshot file not found: {path}")
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw_text = f.read().strip()
            if not raw_text:
                raise ConfigurationError(f"Snapshot file is empty: {path}")
            raw = json.loads(raw_text)
    except (json.JSONDecodeError, OSError) as exc:
        raise ConfigurationError(f"Snapshot file {path} could not be read: {exc}") from exc
    if not isinstance(raw, dict):
        raise ConfigurationError(f"Snapshot file {path} must hold a JSON object")
    return parse_snapshot(raw)


def save_results(path: str, results: Sequence[GoalResult | Dict[str, Any]]) -> None:
    ensure_parent_dir(path)
    tmp_path = f"{path}.tmp"
    payload = [item.to_dict() if isinstance(item, GoalResult) else item for item in results]
    clean = _sanitize_json_compat(payload)
    with open(tmp_path, "w", encoding="utf-8") as f:
        json.dump(clean, f, allow_nan=False)
    os.replace(tmp_path, path)


def load_results(path: str) -> Dict[str, dict]:
    """Saved goal results keyed by goal id, or by label for goals without one.

    ``yearly_breakdown`` comes back as a DataFrame indexed by year. A missing, empty or
    unreadable file gives an empty mapping.
    """
    if not os.path.exists(path):
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw_text = f.read().strip()
            if not raw_text:
                return {}
            data = json.loads(raw_text)
    except (json.JSONDecodeError, OSError) as exc:
        logger.warning("Results file %s could not be read: %s", path, exc)
        return {}

    results: Dict[str, dict] = {}
    for entry in data if isinstance(data, list) else []:
        if not isinstance(entry, dict) or "goal_type" not in entry:
            logger.warning("Skipping stored entry without a goal type in %s", path)
            continue
        key = entry.get("goal_id") or entry.get("label") or entry["goal_type"]
        if "yearly_breakdown" in entry:
            breakdown = pd.DataFrame(entry["yearly_breakdown"], columns=BREAKDOWN_COLUMNS)
            entry = {**entry, "yearly_breakdown": breakdown.set_index("year")}
        results[key] = entry
    return results
