"""Tests for sessionkit.config module."""

from pathlib import Path

import pytest
import yaml

from sessionkit.config import (
    Config,
    SessionKitConfig,
    detect_project_root,
    get_sessionkit_config,
    validate_auto_save_interval,
)
from sessionkit.errors import ConfigurationError


class TestConfig:
    """Tests for Config (connection settings)."""

    def test_defaults_when_missing(self, tmp_path: Path, monkeypatch):
        monkeypatch.delenv("SESSIONKIT_API_URL", raising=False)
        monkeypatch.delenv("SESSIONKIT_API_TOKEN", raising=False)

        config = Config.load(tmp_path / "config.yaml")

        assert config.api_base_url == "http://localhost:3000"
        assert config.api_token is None
        assert config.request_timeout == 30.0

    def test_env_overrides_file(self, tmp_path: Path, monkeypatch):
        path = tmp_path / "config.yaml"
        path.write_text(yaml.safe_dump({"api_base_url": "http://file", "api_token": "file"}))
        monkeypatch.setenv("SESSIONKIT_API_URL", "http://env")
        monkeypatch.setenv("SESSIONKIT_API_TOKEN", "env-token")

        config = Config.load(path)

        assert config.api_base_url == "http://env"
        assert config.api_token == "env-token"

    def test_save_restricts_permissions(self, tmp_path: Path, monkeypatch):
        monkeypatch.delenv("SESSIONKIT_API_URL", raising=False)
        monkeypatch.delenv("SESSIONKIT_API_TOKEN", raising=False)
        path = tmp_path / "config.yaml"

        Config(api_token="secret").save(path)

        assert path.stat().st_mode & 0o777 == 0o600
        assert Config.load(path).api_token == "secret"

    def test_rejects_bad_timeout(self, tmp_path: Path):
        path = tmp_path / "config.yaml"
        path.write_text(yaml.safe_dump({"request_timeout": 0}))

        with pytest.raises(ConfigurationError):
            Config.load(path)


class TestValidateAutoSaveInterval:
    """Tests for validate_auto_save_interval()."""

    def test_accepts_positive_int(self):
        assert validate_auto_save_interval(1) == 1

    @pytest.mark.parametrize("value", [0, -1000, 1.5, "30000", True, None])
    def test_rejects_invalid(self, value):
        with pytest.raises(ConfigurationError):
            validate_auto_save_interval(value)


class TestSessionKitConfig:
    """Tests for SessionKitConfig (tuning)."""

    def test_defaults(self):
        config = SessionKitConfig()

        assert config.auto_save_interval == 30000
        assert config.checkpoint_limit == 20
        assert config.checkpoint_sort_by == "created_at"
        assert config.checkpoint_sort_order == "desc"
        assert config.checkpoint_priority == "medium"
        assert config.checkpoint_max_age_ms == 30 * 24 * 60 * 60 * 1000

    def test_rejects_zero_interval(self):
        with pytest.raises(ConfigurationError):
            SessionKitConfig(auto_save_interval=0)

    def test_rejects_unknown_priority(self):
        with pytest.raises(ConfigurationError):
            SessionKitConfig(checkpoint_priority="urgent")

    @pytest.mark.parametrize(
        "overrides",
        [
            {"checkpoint_limit": "abc"},
            {"checkpoint_limit": True},
            {"auto_save_failure_threshold": 2.5},
            {"checkpoint_max_age_days": 0},
            {"checkpoint_sort_by": ["name"]},
            {"checkpoint_priority": None},
            {"auto_save_enabled": "yes"},
        ],
    )
    def test_wrong_types_raise_configuration_error(self, tmp_path: Path, overrides):
        (tmp_path / "tuning.yaml").write_text(yaml.safe_dump(overrides))

        with pytest.raises(ConfigurationError):
            SessionKitConfig.load(tmp_path)

    def test_load_ignores_unknown_keys(self, tmp_path: Path):
        (tmp_path / "tuning.yaml").write_text(
            yaml.safe_dump({"checkpoint_limit": 50, "not_a_key": True})
        )

        config = SessionKitConfig.load(tmp_path)

        assert config.checkpoint_limit == 50

    def test_load_missing_returns_defaults(self, tmp_path: Path):
        assert SessionKitConfig.load(tmp_path) == SessionKitConfig()

    def test_save_writes_only_non_defaults(self, tmp_path: Path):
        SessionKitConfig(auto_save_interval=60000).save(tmp_path)

        data = yaml.safe_load((tmp_path / "tuning.yaml").read_text())

        assert data == {"auto_save_interval": 60000}

    def test_save_all_defaults_writes_marker(self, tmp_path: Path):
        SessionKitConfig().save(tmp_path)

        data = yaml.safe_load((tmp_path / "tuning.yaml").read_text())

        assert data == {"_version": 1}
        assert SessionKitConfig.load(tmp_path) == SessionKitConfig()

    def test_default_filter(self):
        f = SessionKitConfig(checkpoint_limit=5, checkpoint_sort_order="asc").default_filter()

        assert (f.limit, f.sort_by, f.sort_order) == (5, "created_at", "asc")


class TestCascade:
    """Tests for get_sessionkit_config() and detect_project_root()."""

    def test_project_config_wins(self, tmp_path: Path, monkeypatch):
        project_dir = tmp_path / "project" / ".sessionkit"
        project_dir.mkdir(parents=True)
        SessionKitConfig(checkpoint_limit=7).save(project_dir)
        user_dir = tmp_path / "user"
        SessionKitConfig(checkpoint_limit=9).save(user_dir)
        monkeypatch.setattr("sessionkit.config.SESSIONKIT_DIR", user_dir)

        config = get_sessionkit_config(tmp_path / "project")

        assert config.checkpoint_limit == 7

    def test_falls_back_to_user(self, tmp_path: Path, monkeypatch):
        user_dir = tmp_path / "user"
        SessionKitConfig(checkpoint_limit=9).save(user_dir)
        monkeypatch.setattr("sessionkit.config.SESSIONKIT_DIR", user_dir)
        monkeypatch.setattr("sessionkit.config.detect_project_root", lambda: None)

        config = get_sessionkit_config(tmp_path / "no-project")

        assert config.checkpoint_limit == 9

    def test_detects_git_root(self, tmp_path: Path, monkeypatch):
        monkeypatch.setattr(Path, "home", lambda: tmp_path.resolve())
        root = tmp_path / "repo"
        (root / ".git").mkdir(parents=True)
        nested = root / "src" / "pkg"
        nested.mkdir(parents=True)

        assert detect_project_root(nested) == root

    def test_sessionkit_dir_marks_root(self, tmp_path: Path, monkeypatch):
        monkeypatch.setattr(Path, "home", lambda: tmp_path.resolve())
        root = tmp_path / "work"
        (root / ".sessionkit").mkdir(parents=True)

        assert detect_project_root(root) == root

    def test_stops_at_home(self, tmp_path: Path, monkeypatch):
        monkeypatch.setattr(Path, "home", lambda: tmp_path.resolve())
        nested = tmp_path / "a" / "b"
        nested.mkdir(parents=True)

        assert detect_project_root(nested) is None
