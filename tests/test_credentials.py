"""Tests for API key resolution."""

from __future__ import annotations

from pathlib import Path

import pytest

from keymentor.errors import MissingCredentialsError
from keymentor.services.credentials import CredentialResolver, read_dotenv_key


class _Settings:
    def __init__(self, key: str = "") -> None:
        self.key = key

    def get_current_api_key(self) -> str:
        return self.key


@pytest.fixture
def dirs(tmp_path: Path) -> tuple[Path, Path]:
    cwd = tmp_path / "cwd"
    home = tmp_path / "home"
    cwd.mkdir()
    home.mkdir()
    return cwd, home


def _resolver(dirs: tuple[Path, Path], *, env=None, settings_key="", static=None) -> CredentialResolver:
    cwd, home = dirs
    return CredentialResolver(
        _Settings(settings_key),
        static_key=static,
        environ=env or {},
        cwd=lambda: cwd,
        home=home,
    )


class TestReadDotenvKey:
    @pytest.mark.parametrize(
        "line",
        ["OPENAI_API_KEY=sk-plain", 'OPENAI_API_KEY="sk-plain"', "OPENAI_API_KEY = 'sk-plain'"],
    )
    def test_value_is_unquoted(self, tmp_path: Path, line: str) -> None:
        path = tmp_path / ".env"
        path.write_text(f"OTHER=1\n{line}\n", encoding="utf-8")

        assert read_dotenv_key(path) == "sk-plain"

    def test_missing_file_or_key(self, tmp_path: Path) -> None:
        assert read_dotenv_key(tmp_path / ".env") is None
        (tmp_path / ".env").write_text("OTHER=1\n", encoding="utf-8")
        assert read_dotenv_key(tmp_path / ".env") is None


class TestCredentialResolver:
    def test_environment_wins(self, dirs: tuple[Path, Path]) -> None:
        (dirs[0] / ".env").write_text("OPENAI_API_KEY=sk-dotenv\n", encoding="utf-8")
        resolver = _resolver(dirs, env={"OPENAI_API_KEY": "sk-env"}, settings_key="sk-settings", static="sk-config")

        assert resolver.resolve() == "sk-env"

    def test_settings_before_dotenv(self, dirs: tuple[Path, Path]) -> None:
        (dirs[0] / ".env").write_text("OPENAI_API_KEY=sk-dotenv\n", encoding="utf-8")

        assert _resolver(dirs, settings_key="sk-settings").resolve() == "sk-settings"

    def test_project_dotenv_before_home_dotenv(self, dirs: tuple[Path, Path]) -> None:
        cwd, home = dirs
        (cwd / ".env").write_text("OPENAI_API_KEY=sk-project\n", encoding="utf-8")
        (home / ".env").write_text("OPENAI_API_KEY=sk-home\n", encoding="utf-8")

        assert _resolver(dirs).resolve() == "sk-project"

    def test_home_dotenv_before_config(self, dirs: tuple[Path, Path]) -> None:
        (dirs[1] / ".env").write_text("OPENAI_API_KEY=sk-home\n", encoding="utf-8")

        assert _resolver(dirs, static="sk-config").resolve() == "sk-home"

    def test_config_is_last_resort(self, dirs: tuple[Path, Path]) -> None:
        assert _resolver(dirs, static="sk-config").resolve() == "sk-config"

    def test_blank_values_are_skipped(self, dirs: tuple[Path, Path]) -> None:
        resolver = _resolver(dirs, env={"OPENAI_API_KEY": "   "}, static="sk-config")

        assert resolver.resolve() == "sk-config"

    def test_require_raises_when_nothing_is_configured(self, dirs: tuple[Path, Path]) -> None:
        with pytest.raises(MissingCredentialsError) as excinfo:
            _resolver(dirs).require()

        assert "OPENAI_API_KEY not found" in str(excinfo.value)
        assert excinfo.value.error_type == "missing_credentials"
