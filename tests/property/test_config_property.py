"""Property tests for configuration loading.

Property 17: Environment Configuration Loading
For any BINDCAPTAIN_* environment variable, the system SHALL read and use
its value; path defaults SHALL follow the resolved execution mode, and
invalid values SHALL raise ConfigurationError.
"""
import os
from unittest.mock import patch

import pytest
from hypothesis import given, strategies as st, settings

from bindcaptain.config import Config, ConfigurationError


# Strategy for path-like values (non-empty, no null chars)
path_strategy = st.from_regex(r'/[a-z0-9_]{1,12}(/[a-z0-9_.]{1,12}){0,3}', fullmatch=True)

CLEAN_ENV = {key: value for key, value in os.environ.items()
             if not key.startswith("BINDCAPTAIN_")
             and key not in ("PORT", "DEBUG", "REFRESH_ENABLED",
                             "REFRESH_CRON_HOUR", "REFRESH_CRON_MINUTE")}


class TestEnvironmentConfigurationLoading:
    """Property 17: Environment Configuration Loading"""

    @given(
        bind_dir=path_strategy,
        named_conf=path_strategy,
        backup_dir=path_strategy,
        log_file=path_strategy,
    )
    @settings(max_examples=100)
    def test_config_reads_path_env_vars(self, bind_dir, named_conf, backup_dir, log_file):
        """For any set of path variables, Config.from_env() SHALL use them.

        Feature: bindcaptain, Property 17: Environment Configuration Loading
        """
        env_vars = dict(
            CLEAN_ENV,
            BINDCAPTAIN_MODE="local",
            BINDCAPTAIN_BIND_DIR=bind_dir,
            BINDCAPTAIN_NAMED_CONF=named_conf,
            BINDCAPTAIN_BACKUP_DIR=backup_dir,
            BINDCAPTAIN_LOG_FILE=log_file,
        )

        with patch.dict(os.environ, env_vars, clear=True):
            config = Config.from_env()

        assert config.bind_dir == bind_dir
        assert config.named_conf == named_conf
        assert config.backup_dir == backup_dir
        assert config.log_file == log_file
        assert config.effective_lock_dir == backup_dir

    def test_local_mode_defaults(self):
        """Inside the container the standard BIND paths SHALL be used.

        Feature: bindcaptain, Property 17: Environment Configuration Loading
        """
        with patch.dict(os.environ, dict(CLEAN_ENV, BINDCAPTAIN_MODE="local"), clear=True):
            config = Config.from_env()

        assert config.mode == "local"
        assert config.bind_dir == "/var/named"
        assert config.named_conf == "/etc/named.conf"
        assert config.backup_dir == "/var/backups/bind"
        assert config.log_file == "/var/log/bind_manager.log"
        assert not config.is_container_mode

    @given(data_dir=path_strategy)
    @settings(max_examples=50)
    def test_container_mode_defaults_under_data_dir(self, data_dir):
        """On the host every path SHALL default below the data directory.

        Feature: bindcaptain, Property 17: Environment Configuration Loading
        """
        env_vars = dict(CLEAN_ENV, BINDCAPTAIN_MODE="container", BINDCAPTAIN_DATA_DIR=data_dir)
        with patch.dict(os.environ, env_vars, clear=True):
            config = Config.from_env()

        assert config.is_container_mode
        assert config.bind_dir == os.path.join(data_dir, "config")
        assert config.named_conf == os.path.join(data_dir, "config", "named.conf")
        assert config.backup_dir == os.path.join(data_dir, "backups")
        assert config.log_file == os.path.join(data_dir, "logs", "bind_manager.log")

    @pytest.mark.parametrize("in_container,expected", [(True, "local"), (False, "container")])
    def test_auto_mode_detection(self, in_container, expected):
        """Auto mode SHALL run tools locally only inside the container.

        Feature: bindcaptain, Property 17: Environment Configuration Loading
        """
        with patch.dict(os.environ, CLEAN_ENV, clear=True), \
                patch("bindcaptain.config.running_in_container", return_value=in_container):
            config = Config.from_env()

        assert config.mode == expected

    def test_scalar_settings(self):
        env_vars = dict(
            CLEAN_ENV,
            BINDCAPTAIN_MODE="local",
            BINDCAPTAIN_CONFLICT_POLICY="Overwrite",
            BINDCAPTAIN_COMMAND_TIMEOUT="5",
            BINDCAPTAIN_LOCK_TIMEOUT="7",
            BINDCAPTAIN_DEFAULT_TTL="3600",
            BINDCAPTAIN_REVERSE_COMMAND="mkrdns /etc/named.conf",
            BINDCAPTAIN_LOCK_DIR="/run/bindcaptain",
            PORT="9090",
            DEBUG="true",
            REFRESH_ENABLED="1",
            REFRESH_CRON_HOUR="*/2",
            REFRESH_CRON_MINUTE="15",
        )
        with patch.dict(os.environ, env_vars, clear=True):
            config = Config.from_env()

        assert config.conflict_policy == "overwrite"
        assert config.command_timeout == 5
        assert config.lock_timeout == 7
        assert config.default_ttl == 3600
        assert config.reverse_command == "mkrdns /etc/named.conf"
        assert config.effective_lock_dir == "/run/bindcaptain"
        assert config.port == 9090
        assert config.debug is True
        assert config.refresh_enabled is True
        assert config.refresh_cron_hour == "*/2"
        assert config.refresh_cron_minute == "15"

    @pytest.mark.parametrize("key,value", [
        ("BINDCAPTAIN_MODE", "remote"),
        ("BINDCAPTAIN_CONFLICT_POLICY", "prompt"),
        ("BINDCAPTAIN_COMMAND_TIMEOUT", "soon"),
        ("BINDCAPTAIN_LOCK_TIMEOUT", "-1"),
        ("PORT", "http"),
    ])
    def test_invalid_values_raise(self, key, value):
        """Invalid values SHALL raise ConfigurationError.

        Feature: bindcaptain, Property 17: Environment Configuration Loading
        """
        env_vars = dict(CLEAN_ENV, BINDCAPTAIN_MODE="local")
        env_vars[key] = value
        with patch.dict(os.environ, env_vars, clear=True):
            with pytest.raises(ConfigurationError):
                Config.from_env()

    def test_config_is_immutable(self):
        with patch.dict(os.environ, dict(CLEAN_ENV, BINDCAPTAIN_MODE="local"), clear=True):
            config = Config.from_env()

        with pytest.raises(Exception):
            config.bind_dir = "/tmp"
