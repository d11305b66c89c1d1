"""
Tests for settlement_config -- defaults, site file, environment overrides.
"""

import pytest

from settlement_config import get_active_config, reset_active_config
from settlement_config.loader import load_config, merge_config, parse_config


class TestLoadConfig:

    def test_packaged_defaults(self):
        config, checksum = load_config()

        assert config.idempotency.ttl_seconds == 3600
        assert config.idempotency.guarded_methods == ("POST", "PUT", "PATCH")
        assert config.idempotency.store == "memory"
        assert config.alerts.lead_days == 7
        assert config.sweep.minute_utc == 5
        assert len(checksum) == 16

    def test_site_file_overrides_defaults(self, tmp_path):
        site = tmp_path / "settlement.yaml"
        site.write_text(
            "idempotency:\n"
            "  ttl_seconds: 120\n"
            "  guarded_methods: [post, patch]\n"
            "alerts:\n"
            "  lead_days: 3\n"
        )

        config, _ = load_config(site)

        assert config.idempotency.ttl_seconds == 120
        assert config.idempotency.guarded_methods == ("POST", "PATCH")
        assert config.idempotency.header_name == "idempotency-key"
        assert config.alerts.lead_days == 3

    def test_env_overrides_win(self, tmp_path):
        site = tmp_path / "settlement.yaml"
        site.write_text("idempotency:\n  ttl_seconds: 120\n")

        config, _ = load_config(
            site,
            {
                "IDEMPOTENCY_TTL": "45",
                "SETTLEMENT_DATABASE_URL": "postgresql://u:p@db/settlement",
                "SETTLEMENT_IDEMPOTENCY_STORE": "sql",
            },
        )

        assert config.idempotency.ttl_seconds == 45
        assert config.idempotency.store == "sql"
        assert config.database.url == "postgresql://u:p@db/settlement"

    def test_bad_env_value(self):
        with pytest.raises(ValueError, match="IDEMPOTENCY_TTL"):
            load_config(environ={"IDEMPOTENCY_TTL": "soon"})

    def test_checksum_tracks_input(self):
        _, first = load_config()
        _, second = load_config(environ={"IDEMPOTENCY_TTL": "45"})
        assert first != second

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "absent.yaml")


class TestParseConfig:

    def test_unknown_section(self):
        with pytest.raises(ValueError, match="Unknown configuration sections"):
            parse_config({"reporting": {}})

    def test_unknown_key(self):
        with pytest.raises(ValueError, match="idempotency"):
            parse_config({"idempotency": {"ttl": 5}})

    @pytest.mark.parametrize(
        "data",
        [
            {"idempotency": {"store": "redis"}},
            {"idempotency": {"ttl_seconds": 0}},
            {"sweep": {"hour_utc": 24}},
            {"alerts": {"lead_days": 61}},
            {"scheduling": {"max_installments": 0}},
        ],
    )
    def test_out_of_range_values(self, data):
        with pytest.raises(ValueError):
            parse_config(data)

    def test_merge_is_recursive(self):
        merged = merge_config(
            {"a": {"x": 1, "y": 2}, "b": 1},
            {"a": {"y": 3}},
        )
        assert merged == {"a": {"x": 1, "y": 3}, "b": 1}


class TestActiveConfig:

    def test_cached_until_reset(self):
        first = get_active_config({"IDEMPOTENCY_TTL": "10"})
        second = get_active_config({"IDEMPOTENCY_TTL": "20"})
        assert first is second
        assert second.idempotency.ttl_seconds == 10

        reset_active_config()
        assert get_active_config({"IDEMPOTENCY_TTL": "20"}).idempotency.ttl_seconds == 20

    def test_reads_config_file_from_environment(self, tmp_path):
        site = tmp_path / "site.yaml"
        site.write_text("sweep:\n  hour_utc: 3\n")

        config = get_active_config({"SETTLEMENT_CONFIG_FILE": str(site)})

        assert config.sweep.hour_utc == 3

    def test_load_is_traced(self, captured_logs):
        get_active_config({})
        traces = [r for r in captured_logs() if r["message"] == "SETTLEMENT_CONFIG_TRACE"]
        assert len(traces) == 1
        assert traces[0]["idempotency_store"] == "memory"
