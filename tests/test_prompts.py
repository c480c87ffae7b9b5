"""Tests for system prompt rendering and environment context."""

from __future__ import annotations

from pathlib import Path

from keymentor.ai.context import (
    ContextProvider,
    EnvironmentContextProvider,
    EnvironmentSnapshot,
    StaticContextProvider,
    format_context,
)
from keymentor.ai.prompts import DEFAULT_SYSTEM_PROMPT, render_system_prompt


class TestRenderSystemPrompt:
    def test_every_occurrence_is_replaced(self) -> None:
        rendered = render_system_prompt(
            "{preprompt} / {context} / {preprompt} / {context}",
            preprompt="P",
            context="C",
        )

        assert rendered == "P / C / P / C"

    def test_context_is_substituted_before_preprompt(self) -> None:
        rendered = render_system_prompt(
            "[{context}] [{preprompt}]",
            preprompt="literal {context}",
            context="has {preprompt}",
        )

        assert rendered == "[has literal {context}] [literal {context}]"

    def test_other_braces_are_untouched(self) -> None:
        assert render_system_prompt("{x} {preprompt}", preprompt="ok") == "{x} ok"

    def test_result_is_stripped(self) -> None:
        assert render_system_prompt("\n{preprompt}\n\n{context}\n") == ""

    def test_default_template_is_used_when_none(self) -> None:
        rendered = render_system_prompt(None, preprompt="PREFS", context="CTX")

        assert rendered.startswith("PREFS")
        assert "CTX" in rendered
        assert "{context}" in DEFAULT_SYSTEM_PROMPT
        assert "{preprompt}" not in rendered


class TestContextProviders:
    def test_format_context_sections(self) -> None:
        snapshot = EnvironmentSnapshot(
            platform="Linux 6.1",
            python_version="3.12.1",
            shell="zsh",
            editor="nvim",
            terminal="kitty",
            cwd="/work",
            project_root="/work",
            extra={"tmux": "prefix C-a"},
        )

        text = format_context(snapshot)

        assert text.splitlines()[0] == "== ENVIRONMENT =="
        assert "Shell: zsh" in text
        assert "== WORKSPACE ==" in text
        assert "tmux: prefix C-a" in text

    def test_environment_provider_reads_environ_and_caches(self, tmp_path: Path) -> None:
        environ = {"SHELL": "/usr/bin/fish", "EDITOR": "helix", "TERM": "xterm"}
        provider = EnvironmentContextProvider(environ=environ, cwd=lambda: tmp_path)

        first = provider.snapshot()

        assert first.shell == "fish"
        assert first.editor == "helix"
        assert first.terminal == "xterm"
        assert first.cwd == str(tmp_path)
        assert provider.snapshot() is first
        assert "Editor: helix" in provider.collect("anything")
        provider.clear_cache()
        assert provider.snapshot() is not first

    def test_missing_values_fall_back_to_unknown(self, tmp_path: Path) -> None:
        snapshot = EnvironmentContextProvider(environ={}, cwd=lambda: tmp_path).snapshot()

        assert (snapshot.shell, snapshot.editor, snapshot.terminal) == ("unknown", "unknown", "unknown")

    def test_providers_satisfy_protocol(self) -> None:
        assert isinstance(StaticContextProvider("x"), ContextProvider)
        assert isinstance(EnvironmentContextProvider(environ={}), ContextProvider)
