"""Tests for configuration loading."""

import json

from variant_mapper.config import Config, ScoringThresholds


class TestConfig:
    """Tests for Config."""

    def test_defaults(self, monkeypatch):
        for name in ("MAPPING_FETCH_TIMEOUT", "MAPPING_MAX_CONCURRENT_JOBS", "ADAPTER_STORE_PATH"):
            monkeypatch.delenv(name, raising=False)

        config = Config.from_env()

        assert config.fetch_timeout == 45
        assert config.max_concurrent_jobs == 4
        assert config.adapter_store_path is None

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("MAPPING_FETCH_TIMEOUT", "2.5")
        monkeypatch.setenv("MAPPING_MAX_CONCURRENT_JOBS", "1")
        monkeypatch.setenv("ADAPTER_STORE_PATH", "/tmp/adapters.db")

        config = Config.from_env()

        assert config.fetch_timeout == 2.5
        assert config.max_concurrent_jobs == 1
        assert config.adapter_store_path == "/tmp/adapters.db"

    def test_confidence_floor_from_env(self, monkeypatch):
        monkeypatch.setenv("MAPPING_CONFIDENCE_FLOOR", "0.7")

        assert Config.from_env().confidence_floor == 0.7

    def test_scoring_thresholds_prefers_file(self, tmp_path, monkeypatch):
        monkeypatch.setenv("VARIANT_MAPPER_THRESHOLD_CTA_MAX_LENGTH", "10")
        path = tmp_path / "thresholds.json"
        path.write_text(json.dumps({"cta_max_length": 60}))

        assert Config().scoring_thresholds().cta_max_length == 10
        assert Config(thresholds_file=str(path)).scoring_thresholds().cta_max_length == 60


class TestScoringThresholds:
    """Tests for ScoringThresholds."""

    def test_weights_sum_to_one(self):
        t = ScoringThresholds()

        total = t.weight_semantics + t.weight_position + t.weight_content + t.weight_uniqueness

        assert abs(total - 1.0) < 1e-9

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("VARIANT_MAPPER_THRESHOLD_WEIGHT_SEMANTICS", "0.5")
        monkeypatch.setenv("VARIANT_MAPPER_THRESHOLD_USP_MIN_ITEMS", "3")
        monkeypatch.setenv("VARIANT_MAPPER_THRESHOLD_CTA_MAX_LENGTH", "not-a-number")

        t = ScoringThresholds.from_env()

        assert t.weight_semantics == 0.5
        assert t.usp_min_items == 3
        assert t.cta_max_length == 40

    def test_from_file(self, tmp_path):
        path = tmp_path / "thresholds.json"
        path.write_text(json.dumps({"thresholds": {"expected_text_bonus": 0.2}}))

        t = ScoringThresholds.from_file(str(path))

        assert t.expected_text_bonus == 0.2
        assert t.weight_uniqueness == 0.25

    def test_file_values_coerced(self, tmp_path):
        """Test numeric strings are converted and unusable values ignored."""
        path = tmp_path / "thresholds.json"
        path.write_text(json.dumps({"usp_min_items": "3", "weight_position": None}))

        t = ScoringThresholds.from_file(str(path))

        assert t.usp_min_items == 3
        assert t.weight_position == 0.20

    def test_missing_file_gives_defaults(self, tmp_path):
        t = ScoringThresholds.from_file(str(tmp_path / "missing.json"))

        assert t.to_dict() == ScoringThresholds().to_dict()
