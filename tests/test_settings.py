"""Tests for the two-scope settings store."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from helpers import FIXED_NOW, FIXED_TIMESTAMP
from keymentor.services import settings as settings_module
from keymentor.services.settings import (
    CLEAR,
    KEEP,
    SetTo,
    SettingsStore,
    SettingsUpdate,
    deep_merge,
    find_project_root,
    redact_secret,
)


@pytest.fixture
def project_root(tmp_path: Path) -> Path:
    root = tmp_path / "project"
    root.mkdir()
    return root


@pytest.fixture
def store(tmp_path: Path, project_root: Path) -> SettingsStore:
    return SettingsStore(
        tmp_path / "home" / "settings.json",
        project_root=project_root,
        clock=lambda: FIXED_NOW,
    )


def _read(path: Path) -> dict:
    return json.loads(path.read_text(encoding="utf-8"))


# =============================================================================
# Updates and merging
# =============================================================================


class TestSettingsUpdate:
    def test_defaults_keep_everything(self) -> None:
        update = SettingsUpdate()

        assert update.changed_fields() == []
        assert update.split() == ({}, set())

    def test_split_separates_values_and_clears(self) -> None:
        update = SettingsUpdate(preprompt=SetTo("terse"), api_key=CLEAR, debug_enabled=KEEP)

        assert update.changed_fields() == ["preprompt", "api_key"]
        assert update.split() == ({"preprompt": "terse"}, {"api_key"})


class TestDeepMerge:
    def test_nested_mappings_merge_and_new_values_win(self) -> None:
        base = {"a": 1, "nested": {"x": 1, "y": 2}}
        overrides = {"a": 2, "nested": {"y": 3, "z": 4}}

        merged = deep_merge(base, overrides)

        assert merged == {"a": 2, "nested": {"x": 1, "y": 3, "z": 4}}
        assert base == {"a": 1, "nested": {"x": 1, "y": 2}}

    def test_lists_are_replaced(self) -> None:
        assert deep_merge({"items": [1, 2]}, {"items": [3]}) == {"items": [3]}


# =============================================================================
# Store
# =============================================================================


class TestSettingsStore:
    def test_missing_files_load_defaults(self, store: SettingsStore) -> None:
        settings = store.load_global()

        assert settings.preprompt == ""
        assert settings.api_key == ""
        assert settings.debug_enabled is False
        assert settings.selected_scope == "global"
        assert not store.global_path.exists()

    def test_corrupt_file_loads_defaults(self, store: SettingsStore) -> None:
        store.global_path.parent.mkdir(parents=True)
        store.global_path.write_text("{broken", encoding="utf-8")

        assert store.load_global().preprompt == ""

    def test_wrongly_typed_fields_are_ignored(self, store: SettingsStore) -> None:
        store.global_path.parent.mkdir(parents=True)
        store.global_path.write_text(
            json.dumps({"preprompt": 42, "debug_enabled": True, "selected_scope": "elsewhere"}),
            encoding="utf-8",
        )

        settings = store.load_global()

        assert settings.preprompt == ""
        assert settings.debug_enabled is True
        assert settings.selected_scope == "global"

    def test_save_writes_stamped_document(self, store: SettingsStore) -> None:
        assert store.save_global(SettingsUpdate(preprompt=SetTo("prefer vim"))) is True

        document = _read(store.global_path)
        assert document["preprompt"] == "prefer vim"
        assert document["version"] == 1
        assert document["last_modified"] == FIXED_TIMESTAMP

    def test_keep_preserves_existing_values(self, store: SettingsStore) -> None:
        store.save_global(SettingsUpdate(preprompt=SetTo("one"), api_key=SetTo("sk-1")))

        store.save_global(SettingsUpdate(debug_enabled=SetTo(True)))

        settings = store.load_global()
        assert (settings.preprompt, settings.api_key, settings.debug_enabled) == ("one", "sk-1", True)

    def test_clear_removes_the_key(self, store: SettingsStore) -> None:
        store.save_global(SettingsUpdate(api_key=SetTo("sk-1")))

        store.save_global(SettingsUpdate(api_key=CLEAR))

        assert "api_key" not in _read(store.global_path)
        assert store.load_global().api_key == ""

    def test_failed_write_keeps_cache(self, store: SettingsStore, monkeypatch: pytest.MonkeyPatch) -> None:
        store.save_global(SettingsUpdate(preprompt=SetTo("old")))

        def _boom(*_args, **_kwargs):
            raise OSError("disk full")

        monkeypatch.setattr(settings_module.file_io, "write_text", _boom)

        assert store.save_global(SettingsUpdate(preprompt=SetTo("new"))) is False
        assert store.load_global().preprompt == "old"

    def test_cache_is_used_until_cleared(self, store: SettingsStore) -> None:
        store.save_global(SettingsUpdate(preprompt=SetTo("cached")))
        store.global_path.write_text(json.dumps({"preprompt": "on disk"}), encoding="utf-8")

        assert store.load_global().preprompt == "cached"
        store.clear_cache()
        assert store.load_global().preprompt == "on disk"

    def test_unknown_scope_is_rejected(self, store: SettingsStore) -> None:
        with pytest.raises(ValueError):
            store.path_for("team")  # type: ignore[arg-type]


class TestScopeSelection:
    def test_project_path_lives_under_project_root(self, store: SettingsStore, project_root: Path) -> None:
        assert store.project_path == project_root / ".keymentor" / "settings.json"

    def test_current_accessors_follow_selected_scope(self, store: SettingsStore) -> None:
        store.save_current_preprompt("global text")

        assert store.set_selected_scope("project") is True
        store.save_current_preprompt("project text")

        assert store.get_selected_scope() == "project"
        assert store.get_current_preprompt() == "project text"
        assert store.load_global().preprompt == "global text"
        assert _read(store.project_path)["preprompt"] == "project text"

    def test_selected_scope_is_always_stored_globally(self, store: SettingsStore) -> None:
        store.set_selected_scope("project")

        assert _read(store.global_path)["selected_scope"] == "project"
        assert not store.project_path.exists()

    def test_empty_api_key_clears(self, store: SettingsStore) -> None:
        store.save_current_api_key("sk-test")
        assert store.get_current_api_key() == "sk-test"

        store.save_current_api_key("")

        assert store.get_current_api_key() == ""
        assert "api_key" not in _read(store.global_path)

    def test_debug_mode_round_trip(self, store: SettingsStore) -> None:
        store.save_current_debug_mode(True)

        assert store.get_current_debug_mode() is True


class TestHelpers:
    def test_find_project_root_walks_up_to_git(self, tmp_path: Path) -> None:
        (tmp_path / "repo" / ".git").mkdir(parents=True)
        nested = tmp_path / "repo" / "src" / "pkg"
        nested.mkdir(parents=True)

        assert find_project_root(nested) == (tmp_path / "repo").resolve()

    def test_find_project_root_falls_back_to_start(self, tmp_path: Path) -> None:
        start = tmp_path / "loose"
        start.mkdir()

        assert find_project_root(start) == start.resolve()

    @pytest.mark.parametrize(
        ("value", "expected"),
        [(None, ""), ("", ""), ("abc", "***"), ("sk-abcdef", "sk*****ef")],
    )
    def test_redact_secret(self, value: str | None, expected: str) -> None:
        assert redact_secret(value) == expected
