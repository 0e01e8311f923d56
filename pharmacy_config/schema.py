"""
PipelineConfigSet schema.

The human-authored, reviewable source artifact for fulfillment policy.
YAML files are parsed into these types by the loader; bridges.py turns a
config set into the kernel's PipelinePolicy.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal


@dataclass(frozen=True)
class FlowDef:
    """One call site (sale, order, procurement) and the ledgers it touches."""

    name: str
    order_kind: str
    invoice_prefix: str
    check_stock: bool = True
    decrement_stock: bool = True
    allow_price_override: bool = False
    post_budget: bool = True
    default_budget_category: str | None = None


@dataclass(frozen=True)
class BudgetThresholdsDef:
    """Percent-used boundaries for budget status (inclusive)."""

    warning_pct: Decimal
    over_budget_pct: Decimal


@dataclass(frozen=True)
class PipelineConfigSet:
    config_id: str
    version: int
    currency: str
    minor_units: int
    share_code_single_use: bool
    budget_tracked_categories: tuple[str, ...]
    budget_thresholds: BudgetThresholdsDef
    flows: tuple[FlowDef, ...]
    checksum: str = ""
