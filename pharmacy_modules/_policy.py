"""Shared policy loading for module services."""

from pharmacy_config import get_active_config
from pharmacy_config.bridges import build_pipeline_policy
from pharmacy_kernel.domain.policy import PipelinePolicy


def load_policy() -> PipelinePolicy:
    """Kernel policy built from the active configuration."""
    return build_pipeline_policy(get_active_config())
