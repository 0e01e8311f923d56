"""
Configuration Loader (``pharmacy_config.loader``).

Loads a YAML configuration file and parses it into the frozen
``pharmacy_config.schema`` dataclasses.  Callers use
``pharmacy_config.get_active_config()`` rather than this module.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Invalid values (thresholds, precision, empty flows)  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from pharmacy_config.schema import BudgetThresholdsDef, FlowDef, PipelineConfigSet


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_decimal(value: Any, field: str) -> Decimal:
    """Parse a Decimal from YAML; floats go through str() to keep their digits."""
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"{field}: cannot parse decimal from {value!r}") from exc


def parse_flow(name: str, data: dict[str, Any]) -> FlowDef:
    """Parse a FlowDef from one entry of the ``flows`` mapping."""
    return FlowDef(
        name=name,
        order_kind=data.get("order_kind", name),
        invoice_prefix=data["invoice_prefix"],
        check_stock=bool(data.get("check_stock", True)),
        decrement_stock=bool(data.get("decrement_stock", True)),
        allow_price_override=bool(data.get("allow_price_override", False)),
        post_budget=bool(data.get("post_budget", True)),
        default_budget_category=data.get("default_budget_category"),
    )


def parse_thresholds(data: dict[str, Any]) -> BudgetThresholdsDef:
    warning = parse_decimal(data["warning_pct"], "budget.thresholds.warning_pct")
    over = parse_decimal(data["over_budget_pct"], "budget.thresholds.over_budget_pct")
    if not Decimal("0") < warning <= over:
        raise ValueError(
            f"budget thresholds must satisfy 0 < warning_pct <= over_budget_pct, "
            f"got {warning} / {over}"
        )
    return BudgetThresholdsDef(warning_pct=warning, over_budget_pct=over)


def compute_checksum(data: dict[str, Any]) -> str:
    """Deterministic SHA-256 of the raw configuration content."""
    canonical = json.dumps(data, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def parse_config(data: dict[str, Any]) -> PipelineConfigSet:
    """Parse a full PipelineConfigSet from a loaded YAML dict."""
    currency = data["currency"]
    code = currency["code"]
    if not isinstance(code, str) or len(code) != 3:
        raise ValueError(f"currency.code must be an ISO 4217 code, got {code!r}")
    minor_units = int(currency.get("minor_units", 2))
    if not 0 <= minor_units <= 4:
        raise ValueError(f"currency.minor_units must be between 0 and 4, got {minor_units}")

    budget = data.get("budget", {})
    flows_data = data["flows"]
    if not flows_data:
        raise ValueError("flows: at least one flow must be defined")

    return PipelineConfigSet(
        config_id=data["config_id"],
        version=int(data.get("version", 1)),
        currency=code,
        minor_units=minor_units,
        share_code_single_use=bool(data.get("share_code", {}).get("single_use", True)),
        budget_tracked_categories=tuple(budget.get("tracked_categories", ())),
        budget_thresholds=parse_thresholds(
            budget.get("thresholds", {"warning_pct": 90, "over_budget_pct": 100})
        ),
        flows=tuple(parse_flow(name, body or {}) for name, body in flows_data.items()),
        checksum=compute_checksum(data),
    )


def load_config(path: Path) -> PipelineConfigSet:
    """Load and parse one configuration file."""
    return parse_config(load_yaml_file(path))
