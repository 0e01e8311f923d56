"""
Config -> Kernel bridge.

Converts a PipelineConfigSet into the kernel's PipelinePolicy.  Lives here
because the kernel never imports pharmacy_config.

Usage:
    from pharmacy_config import get_active_config
    from pharmacy_config.bridges import build_pipeline_policy

    policy = build_pipeline_policy(get_active_config())
"""

from __future__ import annotations

from pharmacy_config.schema import PipelineConfigSet
from pharmacy_kernel.domain.policy import FlowProfile, PipelinePolicy


def build_pipeline_policy(config: PipelineConfigSet) -> PipelinePolicy:
    return PipelinePolicy(
        currency=config.currency,
        minor_units=config.minor_units,
        share_code_single_use=config.share_code_single_use,
        budget_tracked_categories=frozenset(config.budget_tracked_categories),
        budget_warning_pct=config.budget_thresholds.warning_pct,
        budget_over_pct=config.budget_thresholds.over_budget_pct,
        flows={
            flow.name: FlowProfile(
                name=flow.name,
                order_kind=flow.order_kind,
                invoice_prefix=flow.invoice_prefix,
                check_stock=flow.check_stock,
                decrement_stock=flow.decrement_stock,
                allow_price_override=flow.allow_price_override,
                post_budget=flow.post_budget,
                default_budget_category=flow.default_budget_category,
            )
            for flow in config.flows
        },
    )
