"""
PipelinePolicy -- kernel-side view of the fulfillment policy.

Responsibility:
    Frozen policy object the coordinator, pricer and selectors read:
    currency precision, which budget categories are tracked, budget status
    thresholds, share-code single-use, and one FlowProfile per call site.

Architecture position:
    Kernel > Domain -- pure, zero I/O.  The kernel never imports
    ``pharmacy_config``; ``pharmacy_config.bridges`` builds this object from
    the loaded YAML configuration.  ``PipelinePolicy.with_defaults()``
    mirrors the shipped default set for callers that need no YAML.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from types import MappingProxyType
from typing import Mapping, Self

from pharmacy_kernel.exceptions import ValidationError


@dataclass(frozen=True)
class FlowProfile:
    """
    Which ledgers participate for one call site.

    Budget posting happens only when ``post_budget`` is set and the order's
    category (the request's, else ``default_budget_category``) is tracked.
    """

    name: str
    order_kind: str
    invoice_prefix: str
    check_stock: bool = True
    decrement_stock: bool = True
    allow_price_override: bool = False
    post_budget: bool = True
    default_budget_category: str | None = None


@dataclass(frozen=True)
class PipelinePolicy:
    currency: str = "USD"
    minor_units: int = 2
    share_code_single_use: bool = True
    budget_tracked_categories: frozenset[str] = frozenset()
    budget_warning_pct: Decimal = Decimal("90")
    budget_over_pct: Decimal = Decimal("100")
    flows: Mapping[str, FlowProfile] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if len(self.currency) != 3:
            raise ValueError(f"currency must be an ISO 4217 code, got {self.currency!r}")
        if not 0 <= self.minor_units <= 4:
            raise ValueError(f"minor_units must be between 0 and 4, got {self.minor_units}")
        if not Decimal("0") < self.budget_warning_pct <= self.budget_over_pct:
            raise ValueError(
                "budget thresholds must satisfy 0 < warning_pct <= over_budget_pct, got "
                f"{self.budget_warning_pct} / {self.budget_over_pct}"
            )
        object.__setattr__(
            self, "budget_tracked_categories", frozenset(self.budget_tracked_categories)
        )
        object.__setattr__(self, "flows", MappingProxyType(dict(self.flows)))

    def flow(self, name: str) -> FlowProfile:
        """Look up a flow profile; unknown names are a validation failure."""
        try:
            return self.flows[name]
        except KeyError:
            raise ValidationError(
                "flow", f"unknown flow {name!r}; expected one of {sorted(self.flows)}"
            ) from None

    def is_budget_tracked(self, category: str | None) -> bool:
        return category is not None and category in self.budget_tracked_categories

    @classmethod
    def with_defaults(cls) -> Self:
        return cls(
            budget_tracked_categories=frozenset({"insurance", "procurement"}),
            flows={
                "sale": FlowProfile(name="sale", order_kind="sale", invoice_prefix="INV"),
                "order": FlowProfile(name="order", order_kind="order", invoice_prefix="ORD"),
                "procurement": FlowProfile(
                    name="procurement",
                    order_kind="procurement",
                    invoice_prefix="PO",
                    check_stock=False,
                    decrement_stock=False,
                    allow_price_override=True,
                    default_budget_category="procurement",
                ),
            },
        )
