"""Tests for run settings and the per-file deadline."""
import os
import time

import pytest

from core.config import DEFAULT_FILE_TIMEOUT, DEFAULT_MAX_FILE_SIZE, Deadline, Settings
from core.errors import AnalysisTimeout, ConfigError


class TestSettings:
    def test_defaults(self):
        settings = Settings.from_env()
        assert settings.workers == 1
        assert settings.max_file_size == DEFAULT_MAX_FILE_SIZE
        assert settings.file_timeout == DEFAULT_FILE_TIMEOUT
        assert settings.extra_rule_paths == []

    def test_environment(self, monkeypatch):
        monkeypatch.setenv("SOLIDDEFEND_WORKERS", "4")
        monkeypatch.setenv("SOLIDDEFEND_MAX_FILE_SIZE", "1024")
        monkeypatch.setenv("SOLIDDEFEND_FILE_TIMEOUT", "2.5")
        monkeypatch.setenv("SOLIDDEFEND_RULES", os.pathsep.join(["a.hy", "", "rules"]))
        settings = Settings.from_env()
        assert (settings.workers, settings.max_file_size, settings.file_timeout) == (4, 1024, 2.5)
        assert settings.extra_rule_paths == ["a.hy", "rules"]

    def test_blank_values_use_defaults(self, monkeypatch):
        monkeypatch.setenv("SOLIDDEFEND_WORKERS", " ")
        assert Settings.from_env().workers == 1

    @pytest.mark.parametrize(
        "name,value",
        [
            ("SOLIDDEFEND_WORKERS", "two"),
            ("SOLIDDEFEND_WORKERS", "-1"),
            ("SOLIDDEFEND_MAX_FILE_SIZE", "0"),
            ("SOLIDDEFEND_FILE_TIMEOUT", "-3"),
        ],
    )
    def test_invalid_environment(self, monkeypatch, name, value):
        monkeypatch.setenv(name, value)
        with pytest.raises(ConfigError):
            Settings.from_env()

    def test_override_ignores_none(self):
        base = Settings(workers=2)
        updated = base.override(workers=None, max_file_size=10, skip_tests=True)
        assert updated.workers == 2
        assert updated.max_file_size == 10
        assert updated.skip_tests
        assert base.max_file_size == DEFAULT_MAX_FILE_SIZE

    def test_override_validates(self):
        with pytest.raises(ConfigError):
            Settings().override(file_timeout=-1.0)


class TestDeadline:
    def test_unlimited_never_expires(self):
        deadline = Deadline.unlimited("x.sol")
        for _ in range(Deadline.CHECK_EVERY * 4):
            deadline.check()

    def test_expired(self):
        deadline = Deadline("x.sol", 1.0)
        deadline._expires = time.monotonic() - 1
        with pytest.raises(AnalysisTimeout) as exc:
            for _ in range(Deadline.CHECK_EVERY):
                deadline.check()
        assert exc.value.path == "x.sol"
        assert "exceeded 1s" in str(exc.value)
