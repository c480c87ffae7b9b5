"""Assistant bootstrap.

Creates and wires the components behind the assistant panel:

1. Creates the event bus
2. Opens the history store and restore pointers
3. Instantiates the domain managers
4. Builds the prompt assembler and chat transport
5. Returns the configured :class:`AssistantPanel`

Usage::

    from keymentor.ui.bootstrap import create_assistant

    app = create_assistant(config, settings=SettingsStore())
    app.panel.open()
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from ..ai.client import ChatTransport, ClientSettings, OpenAITransport
from ..ai.context import ContextProvider, EnvironmentContextProvider
from ..ai.message_builder import PromptAssembler
from ..services.config import AssistantConfig
from ..services.credentials import CredentialResolver
from ..services.history import HistoryStore
from ..services.settings import SettingsStore
from .assistant_panel import AssistantPanel
from .domain.conversation_manager import ConversationManager
from .domain.request_controller import RequestController, RequestOptions
from .domain.restore_policy import PointerFile, ProcessPointer, SessionRestorePolicy
from .events import EventBus

_LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class AssistantApp:
    """Everything :func:`create_assistant` wired together."""

    config: AssistantConfig
    event_bus: EventBus
    history: HistoryStore
    settings: SettingsStore
    restore_policy: SessionRestorePolicy
    conversations: ConversationManager
    controller: RequestController
    transport: ChatTransport
    panel: AssistantPanel

    async def aclose(self) -> None:
        """Stop any outstanding request and release transport resources."""
        await self.controller.shutdown()
        close = getattr(self.transport, "aclose", None)
        if callable(close):
            await close()


def create_assistant(
    config: AssistantConfig,
    *,
    settings: SettingsStore,
    transport: ChatTransport | None = None,
    context_provider: ContextProvider | None = None,
    event_bus: EventBus | None = None,
    process_pointer: ProcessPointer | None = None,
    history: HistoryStore | None = None,
) -> AssistantApp:
    """Create and wire all assistant components.

    Args:
        config: Validated configuration.
        settings: Two-scope settings store supplying preprompt and API key.
        transport: Chat transport; defaults to :class:`OpenAITransport`.
        context_provider: Environment context source; defaults to
            :class:`EnvironmentContextProvider`.
        event_bus: Shared bus; a new one is created when omitted.
        process_pointer: In-process restore pointer, shared across panels
            created within one process.
        history: History store; defaults to one at ``config.history_path``.
    """
    _LOGGER.debug("Bootstrapping assistant (model=%s, restore=%s)", config.model, config.restore_conversation)

    bus = event_bus or EventBus()
    history_store = history or HistoryStore(config.history_path, max_items=config.history_max_items)
    restore_policy = SessionRestorePolicy(
        config.restore_conversation,
        history=history_store,
        process_pointer=process_pointer,
        pointer_file=PointerFile(config.pointer_path),
    )
    conversations = ConversationManager(
        history_store,
        bus,
        history_enabled=config.history_enabled,
        restore_policy=restore_policy,
    )

    if transport is None:
        resolver = CredentialResolver(settings, static_key=config.api_key)
        transport = OpenAITransport(
            ClientSettings.from_config(config),
            api_key_provider=resolver.require,
            debug_enabled=settings.get_current_debug_mode,
        )
    assembler = PromptAssembler(
        template=config.prompt_template,
        preprompt_source=settings.get_current_preprompt,
        context_provider=context_provider or EnvironmentContextProvider(),
    )
    controller = RequestController(
        conversations,
        assembler,
        transport,
        bus,
        options=RequestOptions.from_config(config),
    )
    panel = AssistantPanel(
        conversations=conversations,
        controller=controller,
        restore_policy=restore_policy,
        history=history_store,
        event_bus=bus,
        settings=settings,
    )
    return AssistantApp(
        config=config,
        event_bus=bus,
        history=history_store,
        settings=settings,
        restore_policy=restore_policy,
        conversations=conversations,
        controller=controller,
        transport=transport,
        panel=panel,
    )


__all__ = ["AssistantApp", "create_assistant"]
