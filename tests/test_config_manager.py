"""Unit tests for krane/config_manager.py"""

import os
from unittest.mock import patch

import pytest
import yaml

from krane.config_manager import (
    ConfigManager,
    ConfigValidationError,
    DiscoveryOptions,
    ListOptions,
    PushOptions,
)


@pytest.fixture
def write_config(tmp_path):
    def _write(data):
        path = tmp_path / "config.yaml"
        path.write_text(yaml.safe_dump(data))
        return str(path)
    return _write


class TestConfigManagerInitialization:
    """Tests for ConfigManager initialization"""

    def test_loads_default_config_when_file_not_found(self):
        """Defaults are used when the config file doesn't exist"""
        cm = ConfigManager(config_file="/nonexistent/config.yaml")

        assert cm.get_region() == "eu-west-1"
        assert cm.get_prefix() == "krane"
        assert cm.get_max_concurrent() == 3
        assert cm.get_skip_existing() is False
        assert cm.get_platform() == ""
        assert cm.get_push_timeout() == 0
        assert cm.get_skopeo_binary() == "skopeo"
        assert cm.get_kubeconfig() is None
        assert cm.get_output_dir() == "reports"

    def test_config_file_from_environment(self, write_config):
        path = write_config({"ecr": {"prefix": "mirror"}})
        with patch.dict(os.environ, {"CONFIG_FILE": path}):
            assert ConfigManager().get_prefix() == "mirror"

    def test_merges_with_defaults(self, write_config):
        """Values absent from the file keep their defaults"""
        cm = ConfigManager(config_file=write_config({"push": {"max_concurrent": 8}}))
        assert cm.get_max_concurrent() == 8
        assert cm.get_skip_existing() is False
        assert cm.get_region() == "eu-west-1"

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("ecr: [unclosed")
        with pytest.raises(ConfigValidationError, match="Error loading config file"):
            ConfigManager(config_file=str(path))

    def test_non_mapping_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("- just\n- a list\n")
        with pytest.raises(ConfigValidationError, match="must contain a mapping"):
            ConfigManager(config_file=str(path))


class TestEnvironmentOverrides:
    """Environment variables win over the file"""

    def test_region(self, write_config):
        path = write_config({"ecr": {"region": "us-east-1"}})
        with patch.dict(os.environ, {"AWS_REGION": "ap-south-1"}):
            assert ConfigManager(config_file=path).get_region() == "ap-south-1"

    def test_default_region(self):
        with patch.dict(os.environ, {"AWS_DEFAULT_REGION": "us-west-2"}):
            assert ConfigManager(config_file="/nonexistent").get_region() == "us-west-2"

    def test_prefix_and_concurrency(self):
        with patch.dict(os.environ, {"KRANE_PREFIX": "mirror", "KRANE_MAX_CONCURRENT": "7"}):
            cm = ConfigManager(config_file="/nonexistent")
            assert cm.get_prefix() == "mirror"
            assert cm.get_max_concurrent() == 7

    def test_skopeo_and_kubeconfig(self):
        with patch.dict(os.environ, {"SKOPEO_BINARY": "/opt/skopeo", "KUBECONFIG": "/tmp/kc"}):
            cm = ConfigManager(config_file="/nonexistent")
            assert cm.get_skopeo_binary() == "/opt/skopeo"
            assert cm.get_kubeconfig() == "/tmp/kc"


class TestValidateConfig:
    """Tests for configuration validation"""

    def test_collects_all_errors(self, write_config):
        path = write_config({
            "ecr": {"prefix": "Bad Prefix"},
            "push": {"max_concurrent": 0, "platform": "linux/amd64,linux/arm64", "timeout": -1},
        })
        with pytest.raises(ConfigValidationError) as exc_info:
            ConfigManager(config_file=path)

        message = str(exc_info.value)
        assert "ecr.prefix" in message
        assert "max_concurrent" in message
        assert "push.platform" in message
        assert "non-negative" in message

    def test_non_integer_concurrency(self, write_config):
        path = write_config({"push": {"max_concurrent": "many"}})
        with pytest.raises(ConfigValidationError, match="must be an integer"):
            ConfigManager(config_file=path)

    def test_validation_can_be_skipped(self, write_config):
        path = write_config({"push": {"max_concurrent": 0}})
        cm = ConfigManager(config_file=path, validate=False)
        assert cm.get_max_concurrent() == 0

    def test_bool_strings(self, write_config):
        path = write_config({"push": {"skip_existing": "yes"}, "skopeo": {"dest_tls_verify": "false"}})
        cm = ConfigManager(config_file=path)
        assert cm.get_skip_existing() is True
        assert cm.get_dest_tls_verify() is False


class TestOptions:
    """Tests for the immutable option sets"""

    def test_empty_namespace_means_all(self):
        assert DiscoveryOptions().effective_all_namespaces is True
        assert DiscoveryOptions(namespace="team").effective_all_namespaces is False
        assert DiscoveryOptions(namespace="team", all_namespaces=True).effective_all_namespaces is True

    def test_options_are_frozen(self):
        options = PushOptions()
        with pytest.raises(AttributeError):
            options.max_concurrent = 10

    def test_list_format_validation(self):
        ListOptions(output_format="yaml").validate()
        with pytest.raises(ConfigValidationError, match="invalid format"):
            ListOptions(output_format="xml").validate()

    @pytest.mark.parametrize("kwargs, message", [
        ({"max_concurrent": 0}, "--max-concurrent"),
        ({"timeout": -5}, "--timeout"),
        ({"prefix": "UPPER"}, "--prefix"),
        ({"platform": "linux"}, "--platform"),
    ])
    def test_push_validation(self, kwargs, message):
        with pytest.raises(ConfigValidationError, match=message):
            PushOptions(**kwargs).validate()

    def test_valid_push_options(self):
        PushOptions(prefix="mirror/team", platform="linux/arm64", max_concurrent=5).validate()
