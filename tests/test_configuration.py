import json
import os
import tempfile
import pytest
from rollout_engine.config import config_from_mapping, load_config, parse_duration, validate_config
from rollout_engine.models import RolloutConfig


class TestDurations:
    """healthDelay and friends accept seconds or unit strings."""

    @pytest.mark.parametrize("value,expected", [
        (10, 10.0), (0.5, 0.5), ("10", 10.0), ("10s", 10.0),
        ("250ms", 0.25), ("2m", 120.0), ("1h", 3600.0), (" 1.5s ", 1.5),
    ])
    def test_parse_duration(self, value, expected):
        assert parse_duration(value) == pytest.approx(expected)

    @pytest.mark.parametrize("value", ["soon", "10 days", "-1s", True, -3])
    def test_invalid_duration(self, value):
        with pytest.raises(ValueError):
            parse_duration(value)

    def test_none_passes_through(self):
        assert parse_duration(None) is None


class TestConfigMapping:
    """Recognized options and their defaults."""

    def test_defaults(self):
        config = config_from_mapping({})
        assert config == RolloutConfig()
        assert config.batch_size == 1
        assert config.fail_fast is True
        assert config.health_status_code == 200

    def test_camel_case_keys(self):
        config = config_from_mapping({
            "batchSize": 2,
            "healthRetries": 5,
            "healthDelay": "500ms",
            "failFast": False,
            "targetList": ["web-1", "web-2", "web-3"],
            "maxConcurrency": 2,
            "failureTolerance": 1,
            "healthStatusCode": 204,
            "updateTimeout": "2m",
            "lbUrl": "http://lb:9000",
            "updateCommand": ["ansible-playbook", "site.yml", "--limit", "{target}"],
        })
        assert config.batch_size == 2
        assert config.health_retries == 5
        assert config.health_delay_s == pytest.approx(0.5)
        assert config.fail_fast is False
        assert config.target_list == ["web-1", "web-2", "web-3"]
        assert config.max_concurrency == 2
        assert config.failure_tolerance == 1
        assert config.health_status_code == 204
        assert config.update_timeout_s == 120.0
        assert config.lb_url == "http://lb:9000"
        assert config.update_command[-1] == "{target}"

    def test_snake_case_keys(self):
        config = config_from_mapping({"batch_size": 3, "health_delay_s": 2})
        assert config.batch_size == 3
        assert config.health_delay_s == 2.0

    def test_overrides_win_unless_none(self):
        config = config_from_mapping({"batchSize": 2, "lbUrl": "http://a"}, batch_size=4, lb_url=None)
        assert config.batch_size == 4
        assert config.lb_url == "http://a"

    def test_unknown_keys_ignored(self):
        config = config_from_mapping({"batchSize": 2, "vaultPassword": "x"})
        assert config.batch_size == 2

    @pytest.mark.parametrize("data,message", [
        ({"batchSize": 0}, "batch_size"),
        ({"batchSize": "2"}, "batch_size"),
        ({"healthRetries": 0}, "health_retries"),
        ({"maxConcurrency": 0}, "max_concurrency"),
        ({"failureTolerance": -1}, "failure_tolerance"),
        ({"failFast": "yes"}, "fail_fast"),
        ({"targetList": ["a", "a"]}, "duplicates"),
        ({"targetList": ["a", ""]}, "non-empty"),
        ({"healthDelay": "later"}, "invalid duration"),
        ({"healthDelay": None}, "health_delay_s"),
        ({"requestTimeout": None}, "request_timeout_s"),
    ])
    def test_invalid_values(self, data, message):
        with pytest.raises(ValueError, match=message):
            config_from_mapping(data)

    @pytest.mark.parametrize("fields,message", [
        ({"health_delay_s": "5s"}, "health_delay_s"),
        ({"request_timeout_s": True}, "request_timeout_s"),
        ({"update_timeout_s": -1}, "update_timeout_s"),
    ])
    def test_validate_rejects_bad_seconds(self, fields, message):
        with pytest.raises(ValueError, match=message):
            validate_config(RolloutConfig(**fields))

    def test_update_timeout_may_be_unset(self):
        assert validate_config(RolloutConfig(update_timeout_s=None)).update_timeout_s is None


class TestLoadConfig:
    """JSON config files."""

    def test_load_from_file(self):
        with tempfile.NamedTemporaryFile(mode='w', suffix='.json', delete=False) as f:
            json.dump({"batchSize": 2, "targetList": ["a", "b", "c"]}, f)
            temp_path = f.name

        try:
            config = load_config(temp_path)
            assert config.batch_size == 2
            assert config.target_list == ["a", "b", "c"]
        finally:
            os.unlink(temp_path)

    def test_file_not_found(self):
        with pytest.raises(FileNotFoundError):
            load_config("non_existent_file.json")

    def test_invalid_json(self):
        with tempfile.NamedTemporaryFile(mode='w', suffix='.json', delete=False) as f:
            f.write("invalid json content")
            temp_path = f.name

        try:
            with pytest.raises(json.JSONDecodeError):
                load_config(temp_path)
        finally:
            os.unlink(temp_path)

    def test_top_level_must_be_object(self):
        with tempfile.NamedTemporaryFile(mode='w', suffix='.json', delete=False) as f:
            json.dump(["a", "b"], f)
            temp_path = f.name

        try:
            with pytest.raises(ValueError, match="JSON object"):
                load_config(temp_path)
        finally:
            os.unlink(temp_path)
