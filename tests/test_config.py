"""
Tests for daemon configuration loading.
"""

import json
import sys

import pytest
import yaml

from share_daemon.utils.config import DaemonConfig, DaemonConfigLoader
from share_daemon.utils.errors import ConfigurationError


class TestDaemonConfig:
    """Test configuration models."""

    def test_defaults(self):
        config = DaemonConfig()
        assert config.rpc.host == "127.0.0.1"
        assert config.rpc.port == 45015
        assert config.supervisor.kill_grace_period == 1.0
        assert config.supervisor.worker_command[0] == sys.executable

    def test_worker_command_string(self):
        config = DaemonConfig(supervisor={"worker_command": "farmer --quiet"})
        assert config.supervisor.worker_command == ["farmer", "--quiet"]

    def test_log_level_normalized(self):
        assert DaemonConfig(logging={"level": "debug"}).logging.level == "DEBUG"


class TestDaemonConfigLoader:
    """Test source merging."""

    def test_priority_order(self, temp_dir):
        """Test that higher priority sources win."""
        low = temp_dir / "low.yaml"
        low.write_text(yaml.safe_dump({"rpc": {"port": 1000, "host": "0.0.0.0"}}))
        high = temp_dir / "high.json"
        high.write_text(json.dumps({"rpc": {"port": 2000}}))

        loader = DaemonConfigLoader(env={})
        loader.add_source(high, priority=20)
        loader.add_source(low, priority=10)
        config = loader.load()

        assert config.rpc.port == 2000
        assert config.rpc.host == "0.0.0.0"

    def test_toml_source(self, temp_dir):
        path = temp_dir / "config.toml"
        path.write_text('[supervisor]\nrestart_timeout = 3.5\n')
        loader = DaemonConfigLoader(env={})
        loader.add_source(path)
        assert loader.load().supervisor.restart_timeout == 3.5

    def test_env_overrides(self):
        """Test nested environment variable overrides."""
        loader = DaemonConfigLoader(env={
            "SHARE_DAEMON_RPC__PORT": "4000",
            "SHARE_DAEMON_LOGGING__ENABLE_JSON": "false",
            "UNRELATED": "1",
        })
        loader.add_source({"rpc": {"port": 3000}}, priority=100)
        config = loader.load()
        assert config.rpc.port == 4000
        assert config.logging.enable_json is False

    def test_missing_file_skipped(self, temp_dir):
        loader = DaemonConfigLoader(env={})
        loader.add_source(temp_dir / "absent.yaml")
        assert loader.load().rpc.port == 45015

    def test_invalid_values(self):
        loader = DaemonConfigLoader(env={})
        loader.add_source({"rpc": {"port": 70000}})
        with pytest.raises(ConfigurationError, match="rpc.port"):
            loader.load()

    def test_malformed_file(self, temp_dir):
        path = temp_dir / "broken.json"
        path.write_text("{not json")
        loader = DaemonConfigLoader(env={})
        loader.add_source(path)
        with pytest.raises(ConfigurationError, match="Failed to load configuration"):
            loader.load()

    def test_unknown_file_type(self, temp_dir):
        loader = DaemonConfigLoader(env={})
        with pytest.raises(ConfigurationError, match="Unknown config file type"):
            loader.add_source(temp_dir / "config.ini")

    def test_get_config_before_load(self):
        with pytest.raises(ConfigurationError):
            DaemonConfigLoader(env={}).get_config()
