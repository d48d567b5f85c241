"""Tests for settings loading and the stage catalog."""

import json
from dataclasses import FrozenInstanceError

import pytest

from stage_sync.config import POLICY_OVERWRITE, POLICY_WRITE_ONCE, load_settings
from stage_sync.errors import ConfigError
from stage_sync.stages import SOURCE_TAG, Stage, StageCatalog, default_catalog, load_catalog

BASE_ENV = {
    "SHOPIFY_STORE_DOMAIN": "test-shop.myshopify.com",
    "SHOPIFY_ACCESS_TOKEN": "shpat_test",
    "SHOPIFY_WEBHOOK_SECRET": "secret",
}


def _env(**overrides):
    env = dict(BASE_ENV)
    env.update(overrides)
    return env


class TestLoadSettings:
    def test_defaults(self):
        s = load_settings(BASE_ENV)
        assert s.domain == "test-shop.myshopify.com"
        assert s.api_version == "2025-07"
        assert s.namespace == "custom"
        assert s.policy == POLICY_WRITE_ONCE
        assert s.port == 3000
        assert s.timeout == 20.0
        assert len(s.catalog) == 7
        assert s.chat_enabled is False
        assert s.email_enabled is False

    def test_missing_required_values_reported_together(self):
        with pytest.raises(ConfigError) as exc:
            load_settings({"SHOPIFY_STORE_DOMAIN": "x.myshopify.com"})
        assert "SHOPIFY_ACCESS_TOKEN" in str(exc.value)
        assert "SHOPIFY_WEBHOOK_SECRET" in str(exc.value)

    def test_blank_secret_is_missing(self):
        with pytest.raises(ConfigError, match="SHOPIFY_WEBHOOK_SECRET"):
            load_settings(_env(SHOPIFY_WEBHOOK_SECRET="   "))

    def test_bad_port(self):
        with pytest.raises(ConfigError, match="PORT"):
            load_settings(_env(PORT="eighty"))

    def test_bad_timeout(self):
        with pytest.raises(ConfigError, match="HTTP_TIMEOUT"):
            load_settings(_env(HTTP_TIMEOUT="0"))

    def test_unknown_policy(self):
        with pytest.raises(ConfigError, match="TIMESTAMP_POLICY"):
            load_settings(_env(TIMESTAMP_POLICY="sometimes"))

    def test_overwrite_policy(self):
        assert load_settings(_env(TIMESTAMP_POLICY="Overwrite")).policy == POLICY_OVERWRITE

    def test_sinks_enabled_by_config(self):
        s = load_settings(_env(
            SLACK_WEBHOOK_URL="https://hooks.slack.com/services/T/B/X",
            EMAIL_API_KEY="re_test",
            EMAIL_TO="ops@example.com",
        ))
        assert s.chat_enabled is True
        assert s.email_enabled is True
        assert s.email_from == "no-reply@yourshop.com"

    def test_email_needs_recipient(self):
        assert load_settings(_env(EMAIL_API_KEY="re_test")).email_enabled is False

    def test_catalog_from_file(self, tmp_path):
        path = tmp_path / "stages.json"
        path.write_text(json.dumps([
            {"name": "rush", "source": "tag", "staff_key": None},
            {"name": "proofed", "display_name": "Proof Approved"},
        ]))
        s = load_settings(_env(STAGE_CATALOG_PATH=str(path)))
        assert [st.name for st in s.catalog] == ["rush", "proofed"]

    @pytest.mark.parametrize("entry", [
        {"name": 5},
        {"name": "rush", "timestamp_key": ["a"]},
        {"name": "rush", "staff_key": 0.5},
    ])
    def test_non_string_catalog_field_is_config_error(self, tmp_path, entry):
        path = tmp_path / "stages.json"
        path.write_text(json.dumps([entry]))
        with pytest.raises(ConfigError, match="must be a string"):
            load_settings(_env(STAGE_CATALOG_PATH=str(path)))

    def test_unreadable_catalog(self, tmp_path):
        with pytest.raises(ConfigError, match="stage catalog"):
            load_settings(_env(STAGE_CATALOG_PATH=str(tmp_path / "nope.json")))


class TestStageCatalog:
    def test_default_order_and_keys(self):
        cat = default_catalog()
        assert cat[0].name == "sent_to_design_production"
        assert cat[0].timestamp_key == "sent_to_design_production_timestamp"
        assert cat[0].staff_key == "sent_to_design_production_staff"
        assert cat[-1].name == "shipped_out"

    def test_entry_defaults(self, tmp_path):
        path = tmp_path / "stages.json"
        path.write_text(json.dumps([
            {"name": "rush", "source": "tag", "staff_key": None},
            {"name": "in_production", "timestamp_key": "prod_started_at"},
        ]))
        cat = load_catalog(str(path))
        rush = cat.get("rush")
        assert rush.source == SOURCE_TAG
        assert rush.source_key == "rush"
        assert rush.timestamp_key == "rush_timestamp"
        assert rush.staff_key is None
        prod = cat.get("in_production")
        assert prod.timestamp_key == "prod_started_at"
        assert prod.staff_key == "in_production_staff"
        assert prod.display_name == "In Production"

    def test_duplicate_name_rejected(self):
        with pytest.raises(ConfigError, match="Duplicate stage name"):
            StageCatalog([Stage("a", "a", "a_ts"), Stage("a", "b", "b_ts")])

    def test_duplicate_timestamp_key_rejected(self):
        with pytest.raises(ConfigError, match="Duplicate timestamp key"):
            StageCatalog([Stage("a", "a", "ts"), Stage("b", "b", "ts")])

    def test_unknown_source_rejected(self):
        with pytest.raises(ConfigError, match="unknown source"):
            StageCatalog([Stage("a", "a", "a_ts", source="header")])

    def test_empty_list_rejected(self, tmp_path):
        path = tmp_path / "stages.json"
        path.write_text("[]")
        with pytest.raises(ConfigError):
            load_catalog(str(path))

    def test_catalog_is_immutable(self):
        cat = default_catalog()
        with pytest.raises(FrozenInstanceError):
            cat[0].name = "changed"
