"""Tests for sessionkit.atomic module."""

import json
import os
import stat
from pathlib import Path
from unittest.mock import patch

import yaml

from sessionkit.atomic import atomic_write_json, atomic_write_text, atomic_write_yaml


class TestAtomicWriteText:
    """Tests for atomic_write_text()."""

    def test_creates_file(self, tmp_path: Path):
        file_path = tmp_path / "state.json"

        result = atomic_write_text(file_path, "hello")

        assert result.is_ok()
        assert result.unwrap() == file_path
        assert file_path.read_text() == "hello"

    def test_overwrites_existing_file(self, tmp_path: Path):
        file_path = tmp_path / "state.json"
        file_path.write_text("old")

        atomic_write_text(file_path, "new")

        assert file_path.read_text() == "new"

    def test_creates_parent_directories(self, tmp_path: Path):
        file_path = tmp_path / "nested" / ".sessionkit" / "state.json"

        result = atomic_write_text(file_path, "content")

        assert result.is_ok()
        assert file_path.exists()

    def test_sets_owner_only_permissions(self, tmp_path: Path):
        file_path = tmp_path / "config.yaml"

        atomic_write_text(file_path, "api_token: secret")

        mode = file_path.stat().st_mode
        assert mode & stat.S_IRWXU == stat.S_IRUSR | stat.S_IWUSR
        assert mode & stat.S_IRWXG == 0
        assert mode & stat.S_IRWXO == 0

    def test_no_temp_files_left(self, tmp_path: Path):
        atomic_write_text(tmp_path / "state.json", "content")

        assert [p.name for p in tmp_path.iterdir()] == ["state.json"]

    def test_failed_rename_keeps_original_and_cleans_up(self, tmp_path: Path):
        file_path = tmp_path / "state.json"
        file_path.write_text("original")

        with patch("sessionkit.atomic.os.replace", side_effect=OSError("disk full")):
            result = atomic_write_text(file_path, "new")

        assert result.is_err()
        assert result.unwrap_err().code == "ATOMIC_WRITE_FAILED"
        assert file_path.read_text() == "original"
        assert [p.name for p in tmp_path.iterdir()] == ["state.json"]

    def test_permission_error_code(self, tmp_path: Path):
        with patch("sessionkit.atomic.tempfile.mkstemp", side_effect=PermissionError("denied")):
            result = atomic_write_text(tmp_path / "state.json", "x")

        assert result.is_err()
        assert result.unwrap_err().code == "ATOMIC_PERMISSION_DENIED"


class TestAtomicWriteJson:
    """Tests for atomic_write_json()."""

    def test_writes_json(self, tmp_path: Path):
        file_path = tmp_path / "state.json"

        atomic_write_json(file_path, {"session-store": {"autoSaveInterval": 30000}})

        assert json.loads(file_path.read_text()) == {"session-store": {"autoSaveInterval": 30000}}

    def test_unserializable_data(self, tmp_path: Path):
        result = atomic_write_json(tmp_path / "state.json", {"bad": object()})

        assert result.is_err()
        assert result.unwrap_err().code == "JSON_SERIALIZATION_FAILED"
        assert not (tmp_path / "state.json").exists()


class TestAtomicWriteYaml:
    """Tests for atomic_write_yaml()."""

    def test_writes_yaml_in_order(self, tmp_path: Path):
        file_path = tmp_path / "tuning.yaml"

        atomic_write_yaml(file_path, {"b": 1, "a": 2})

        assert yaml.safe_load(file_path.read_text()) == {"b": 1, "a": 2}
        assert file_path.read_text().index("b:") < file_path.read_text().index("a:")

    def test_rejects_python_objects(self, tmp_path: Path):
        result = atomic_write_yaml(tmp_path / "tuning.yaml", {"x": object()})

        assert result.is_err()
        assert result.unwrap_err().code == "YAML_SERIALIZATION_FAILED"


def test_umask_does_not_widen_permissions(tmp_path: Path):
    """Explicit chmod wins over a permissive umask."""
    old = os.umask(0)
    try:
        atomic_write_text(tmp_path / "state.json", "x")
    finally:
        os.umask(old)

    assert (tmp_path / "state.json").stat().st_mode & 0o777 == 0o600
