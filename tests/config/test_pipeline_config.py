"""
Tests for pharmacy_config: YAML loading, validation and the kernel bridge.
"""

from decimal import Decimal
from pathlib import Path

import pytest
import yaml

from pharmacy_config import get_active_config
from pharmacy_config.bridges import build_pipeline_policy
from pharmacy_config.loader import compute_checksum, load_config, parse_config
from pharmacy_kernel.domain.policy import PipelinePolicy


def _minimal(**overrides) -> dict:
    data = {
        "config_id": "test",
        "version": 3,
        "currency": {"code": "EUR", "minor_units": 2},
        "budget": {
            "tracked_categories": ["insurance"],
            "thresholds": {"warning_pct": 80, "over_budget_pct": 100},
        },
        "flows": {"sale": {"invoice_prefix": "S"}},
    }
    data.update(overrides)
    return data


class TestDefaultConfig:

    def test_default_set_loads(self):
        config = get_active_config()
        assert config.config_id == "pharmacy-default"
        assert config.currency == "USD"
        assert config.minor_units == 2
        assert config.share_code_single_use is True
        assert set(config.budget_tracked_categories) == {"insurance", "procurement"}
        assert {f.name for f in config.flows} == {"sale", "order", "procurement"}
        assert len(config.checksum) == 64

    def test_default_set_matches_kernel_defaults(self):
        policy = build_pipeline_policy(get_active_config())
        assert policy == PipelinePolicy.with_defaults()

    def test_config_trace_logged(self, captured_logs):
        get_active_config()
        traces = [r for r in captured_logs() if r["message"] == "PHARMACY_CONFIG_TRACE"]
        assert traces
        assert traces[0]["config_id"] == "pharmacy-default"


class TestParseConfig:

    def test_flow_defaults(self):
        config = parse_config(_minimal())
        flow = config.flows[0]
        assert flow.order_kind == "sale"
        assert flow.check_stock is True
        assert flow.decrement_stock is True
        assert flow.allow_price_override is False
        assert flow.default_budget_category is None

    def test_thresholds_parsed_as_decimal(self):
        config = parse_config(_minimal())
        assert config.budget_thresholds.warning_pct == Decimal("80")
        assert isinstance(config.budget_thresholds.over_budget_pct, Decimal)

    def test_thresholds_out_of_order_rejected(self):
        data = _minimal(budget={"thresholds": {"warning_pct": 100, "over_budget_pct": 90}})
        with pytest.raises(ValueError):
            parse_config(data)

    def test_bad_currency_rejected(self):
        with pytest.raises(ValueError):
            parse_config(_minimal(currency={"code": "EURO"}))

    def test_bad_minor_units_rejected(self):
        with pytest.raises(ValueError):
            parse_config(_minimal(currency={"code": "EUR", "minor_units": 6}))

    def test_empty_flows_rejected(self):
        with pytest.raises(ValueError):
            parse_config(_minimal(flows={}))

    def test_missing_invoice_prefix_is_key_error(self):
        with pytest.raises(KeyError):
            parse_config(_minimal(flows={"sale": {}}))

    def test_checksum_is_deterministic(self):
        assert compute_checksum(_minimal()) == compute_checksum(_minimal())
        assert compute_checksum(_minimal()) != compute_checksum(_minimal(version=4))


class TestLoadFromFile:

    def test_load_custom_file(self, tmp_path: Path):
        path = tmp_path / "custom.yaml"
        path.write_text(yaml.safe_dump(_minimal()))
        config = get_active_config(path)
        policy = build_pipeline_policy(config)
        assert policy.currency == "EUR"
        assert policy.budget_warning_pct == Decimal("80")
        assert policy.flow("sale").invoice_prefix == "S"
        assert policy.is_budget_tracked("insurance")

    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "absent.yaml")

    def test_share_code_multi_use(self, tmp_path: Path):
        path = tmp_path / "multi.yaml"
        path.write_text(yaml.safe_dump(_minimal(share_code={"single_use": False})))
        assert build_pipeline_policy(load_config(path)).share_code_single_use is False
