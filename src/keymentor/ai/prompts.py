"""System prompt template and placeholder substitution."""

from __future__ import annotations

PREPROMPT_PLACEHOLDER = "{preprompt}"
CONTEXT_PLACEHOLDER = "{context}"

DEFAULT_SYSTEM_PROMPT = """{preprompt}

You are a keyboard-shortcut mentor helping the user with THEIR setup. The
user's environment is described below; answer based on what exists there
rather than on hypothetical configurations.

{context}

GUIDELINES:
- The user may be new to their tools and use imprecise terms. Interpret
  charitably and ask one short clarifying question when a request is ambiguous.
- For shortcut questions give the binding first, then a few words of context,
  e.g. `Ctrl-R` - reverse history search.
- For "how does X work" questions explain simply and include the relevant
  bindings.
- Only mention bindings that exist in the described setup or are standard
  defaults.
- Stay under 150 words unless a beginner needs a longer explanation.
"""


def render_system_prompt(
    template: str | None,
    *,
    preprompt: str = "",
    context: str = "",
) -> str:
    """Substitute both placeholders into ``template``.

    Every occurrence is replaced literally (no format-string parsing, so
    braces elsewhere in the template are left alone). ``{context}`` is
    substituted before ``{preprompt}``, which means placeholder text inside
    the gathered context is expanded but placeholder text typed into the
    preprompt is kept verbatim.
    """

    text = template if template is not None else DEFAULT_SYSTEM_PROMPT
    text = text.replace(CONTEXT_PLACEHOLDER, context or "")
    text = text.replace(PREPROMPT_PLACEHOLDER, preprompt or "")
    return text.strip()


__all__ = [
    "DEFAULT_SYSTEM_PROMPT",
    "PREPROMPT_PLACEHOLDER",
    "CONTEXT_PLACEHOLDER",
    "render_system_prompt",
]
