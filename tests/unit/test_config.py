"""Tests for configuration module."""

import logging
from dataclasses import FrozenInstanceError
from pathlib import Path

import pytest

from checknode.config import (
    DEFAULT_DAEMON_STOP_PATTERNS,
    DEFAULT_LEAVE_ALONE_STATES,
    DEFAULT_OVERRIDABLE_REASONS,
    DEFAULT_PROBE_TIMEOUT,
    DEFAULT_REBOOT_REASON,
    DEFAULT_RUN_DIR,
    DEFAULT_SCHEDULER_TIMEOUT,
    DEFAULT_SLURM_CONF,
    Config,
    ModeConfig,
    ReasonPolicy,
    _parse_bool,
    _parse_list,
    _parse_positive_float,
    _validate_log_level,
    config_from_values,
    find_config_file,
    load_config,
)
from checknode.exceptions import ConfigurationError
from tests.helpers import write_config


class TestConfig:
    """Tests for Config dataclass."""

    def test_defaults(self) -> None:
        config = Config()
        assert config.paths.run_dir == DEFAULT_RUN_DIR
        assert config.paths.slurm_conf == DEFAULT_SLURM_CONF
        assert config.probes.timeout == DEFAULT_PROBE_TIMEOUT
        assert config.scheduler.timeout == DEFAULT_SCHEDULER_TIMEOUT
        assert config.scheduler.daemon_service == "slurmd"
        assert config.modes == ModeConfig()
        assert config.logging_config.level == ""
        assert config.source is None

    def test_frozen_immutable(self) -> None:
        """Config should be immutable after creation."""
        config = Config()
        with pytest.raises(FrozenInstanceError):
            config.modes = ModeConfig(check_only=True)  # type: ignore[misc]

    def test_scheduler_enabled_follows_local_only(self) -> None:
        assert Config().scheduler_enabled is True
        assert Config(modes=ModeConfig(local_only=True)).scheduler_enabled is False


class TestReasonPolicyDefaults:
    """Tests for the default drain-reason policy."""

    def test_default_allow_list(self) -> None:
        policy = ReasonPolicy()
        assert policy.overridable_reasons == DEFAULT_OVERRIDABLE_REASONS
        assert "Kill task failed" in policy.overridable_reasons
        assert "Not responding" in policy.overridable_reasons

    def test_reboot_reason_is_not_in_allow_list(self) -> None:
        assert DEFAULT_REBOOT_REASON not in DEFAULT_OVERRIDABLE_REASONS

    def test_default_leave_alone_states(self) -> None:
        assert set(DEFAULT_LEAVE_ALONE_STATES) == {"idle", "planned", "maintenance", "reserved"}


class TestParsers:
    """Tests for value parsers."""

    @pytest.mark.parametrize("value", ["1", "true", "TRUE", "yes", " Yes "])
    def test_parse_bool_truthy(self, value: str) -> None:
        assert _parse_bool(value) is True

    @pytest.mark.parametrize("value", ["", "0", "false", "no", "off"])
    def test_parse_bool_falsy(self, value: str) -> None:
        assert _parse_bool(value) is False

    def test_parse_positive_float_valid(self) -> None:
        assert _parse_positive_float("2.5", "TIMEOUT", 10.0) == 2.5

    def test_parse_positive_float_rejects_zero(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.WARNING):
            assert _parse_positive_float("0", "TIMEOUT", 10.0) == 10.0
        assert "not positive" in caplog.text

    def test_parse_positive_float_rejects_garbage(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        with caplog.at_level(logging.WARNING):
            assert _parse_positive_float("soon", "TIMEOUT", 10.0) == 10.0
        assert "not a valid number" in caplog.text

    def test_validate_log_level(self) -> None:
        assert _validate_log_level("debug") == "DEBUG"
        assert _validate_log_level("") == ""

    def test_validate_log_level_invalid(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.WARNING):
            assert _validate_log_level("LOUD") == ""
        assert "Invalid LOG_LEVEL" in caplog.text

    def test_parse_list(self) -> None:
        assert _parse_list(" hsn , fabric,, ") == ("hsn", "fabric")


class TestFindConfigFile:
    """Tests for config file discovery precedence."""

    def test_explicit_file(self, tmp_path: Path) -> None:
        path = write_config(tmp_path / "site.conf", TESTDIR="/t")
        assert find_config_file(path, search_paths=[]) == path

    def test_explicit_directory(self, tmp_path: Path) -> None:
        path = write_config(tmp_path / "checknode.conf", TESTDIR="/t")
        assert find_config_file(tmp_path, search_paths=[]) == path

    def test_explicit_missing_raises(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError, match="does not exist"):
            find_config_file(tmp_path / "absent.conf", search_paths=[])

    def test_environment_variable(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        path = write_config(tmp_path / "env" / "checknode.conf", TESTDIR="/t")
        fallback = write_config(tmp_path / "fallback.conf", TESTDIR="/f")
        monkeypatch.setenv("CHECKNODE_CONFIG", str(tmp_path / "env"))
        assert find_config_file(search_paths=[fallback]) == path

    def test_environment_variable_missing_raises(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("CHECKNODE_CONFIG", str(tmp_path / "nowhere.conf"))
        with pytest.raises(ConfigurationError, match="CHECKNODE_CONFIG"):
            find_config_file(search_paths=[])

    def test_first_existing_search_path_wins(self, tmp_path: Path) -> None:
        second = write_config(tmp_path / "b.conf", TESTDIR="/b")
        third = write_config(tmp_path / "c.conf", TESTDIR="/c")
        paths = [tmp_path / "a.conf", second, third]
        assert find_config_file(search_paths=paths) == second

    def test_nothing_found_raises(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError, match="Unable to find"):
            find_config_file(search_paths=[tmp_path / "a.conf"])


class TestConfigFromValues:
    """Tests for building Config from key/value pairs."""

    def test_testdir_is_mandatory(self) -> None:
        with pytest.raises(ConfigurationError, match="TESTDIR"):
            config_from_values({"VERBOSE": "1"})

    def test_minimal(self) -> None:
        config = config_from_values({"TESTDIR": "/etc/checknode/tests"})
        assert config.paths.probe_dir == Path("/etc/checknode/tests")
        assert config.paths.run_dir == DEFAULT_RUN_DIR
        assert config.reasons == ReasonPolicy()
        assert config.logging_config.verbose is False

    def test_all_keys(self) -> None:
        config = config_from_values(
            {
                "TESTDIR": "/opt/tests",
                "SLURM_CONF": "/opt/slurm/slurm.conf",
                "RUNDIR": "/tmp/cn",
                "VERBOSE": "yes",
                "DRYRUN": "1",
                "TIMEOUT": "30",
                "SCHEDULER_TIMEOUT": "2",
                "NODENAME": "nid0042",
                "SLURMD_SERVICE": "slurmd-custom",
                "LOG_LEVEL": "debug",
                "LOG_JSON": "true",
                "MANAGED_REASON_PREFIX": "hc:",
                "OVERRIDABLE_REASONS": "Not responding, Epilog error",
                "REBOOT_REASON": "Rebooted",
                "DAEMON_STOP_PATTERNS": "ib",
                "REASON_DELIMITER": ",",
                "LEAVE_ALONE_STATES": "Idle,Reserved",
            }
        )
        assert config.paths.slurm_conf == Path("/opt/slurm/slurm.conf")
        assert config.paths.run_dir == Path("/tmp/cn")
        assert config.logging_config.verbose is True
        assert config.logging_config.level == "DEBUG"
        assert config.logging_config.json is True
        assert config.modes.dry_run is True
        assert config.probes.timeout == 30.0
        assert config.scheduler.timeout == 2.0
        assert config.scheduler.node_name == "nid0042"
        assert config.scheduler.daemon_service == "slurmd-custom"
        assert config.reasons.managed_prefix == "hc:"
        assert config.reasons.overridable_reasons == ("Not responding", "Epilog error")
        assert config.reasons.reboot_reason == "Rebooted"
        assert config.reasons.daemon_stop_patterns == ("ib",)
        assert config.reasons.delimiter == ","
        assert config.reasons.leave_alone_states == ("idle", "reserved")

    def test_environment_overrides_file(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CHECKNODE_TIMEOUT", "3")
        monkeypatch.setenv("CHECKNODE_TESTDIR", "/from/env")
        config = config_from_values({"TESTDIR": "/from/file", "TIMEOUT": "20"})
        assert config.probes.timeout == 3.0
        assert config.paths.probe_dir == Path("/from/env")

    def test_invalid_timeout_falls_back(self) -> None:
        config = config_from_values({"TESTDIR": "/t", "TIMEOUT": "-1"})
        assert config.probes.timeout == DEFAULT_PROBE_TIMEOUT

    def test_blank_lists_keep_defaults(self) -> None:
        config = config_from_values(
            {"TESTDIR": "/t", "OVERRIDABLE_REASONS": " ", "DAEMON_STOP_PATTERNS": ""}
        )
        assert config.reasons.overridable_reasons == DEFAULT_OVERRIDABLE_REASONS
        assert config.reasons.daemon_stop_patterns == DEFAULT_DAEMON_STOP_PATTERNS


class TestLoadConfig:
    """Tests for load_config."""

    def test_reads_file_with_comments(self, tmp_path: Path) -> None:
        path = tmp_path / "checknode.conf"
        path.write_text(
            "# site configuration\nTESTDIR=/etc/checknode/tests\nVERBOSE=1\n",
            encoding="utf-8",
        )
        config = load_config(path, search_paths=[])
        assert config.paths.probe_dir == Path("/etc/checknode/tests")
        assert config.logging_config.verbose is True
        assert config.source == path

    def test_missing_testdir_in_file(self, tmp_path: Path) -> None:
        path = write_config(tmp_path / "checknode.conf", VERBOSE="1")
        with pytest.raises(ConfigurationError, match="TESTDIR"):
            load_config(path, search_paths=[])
