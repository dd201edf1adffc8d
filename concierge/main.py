#!/usr/bin/env python3
"""
Concierge CLI
=============

Interactive loop that wires settings, provider, tools, conversation store
and the event logger around one Orchestrator.
"""

import argparse
import asyncio
import logging
import sys

from prompt_toolkit import PromptSession
from prompt_toolkit.patch_stdout import patch_stdout
from rich.console import Console
from rich.markdown import Markdown

from concierge.agent.callbacks import EventBusCallbacks
from concierge.agent.context.memory import InMemoryMemoryStore
from concierge.agent.context.store import JsonFileConversationStore
from concierge.agent.core.orchestrator import Orchestrator
from concierge.agent.templates import BUILTIN_TEMPLATES
from concierge.config.settings import load_settings
from concierge.exceptions import ConciergeError
from concierge.protocol.bus import EventBus
from concierge.providers.factory import create_provider
from concierge.tools.defaults import register_default_tools
from concierge.tools.registry import ToolRegistry
from concierge.utils.logger import EventLogger, setup_logging

logger = logging.getLogger("ConciergeCLI")

HELP_TEXT = """Commands:
  /help               show this help
  /reset              start a new conversation
  /stats              show context usage
  /templates          list templates
  /template <id>      apply a template (/template off to clear)
  /save               save the session
  quit | exit         leave"""


class ConciergeCLI:
    def __init__(self, orchestrator: Orchestrator, store, session_id: str, console=None):
        self.orchestrator = orchestrator
        self.store = store
        self.session_id = session_id
        self.console = console or Console()

    async def restore(self) -> None:
        if self.session_id in await self.store.list_sessions():
            self.orchestrator.load_messages(await self.store.load(self.session_id))
            self.console.print(f"[dim]Restored session '{self.session_id}'[/dim]")

    async def run(self) -> None:
        self.console.print("[bold]Concierge[/bold]  (type /help for commands)")
        session = PromptSession(multiline=False)
        while True:
            with patch_stdout():
                user_text = (await session.prompt_async("> ")).strip()
            if not user_text:
                continue
            if user_text.lower() in ("quit", "exit", "q"):
                break
            if user_text.startswith("/"):
                await self._command(user_text)
                continue
            await self._ask(user_text)
        await self.save()

    async def _ask(self, text: str) -> None:
        try:
            response = await self.orchestrator.run(text)
        except ConciergeError as e:
            self.console.print(f"[red]{e.user_hint}[/red]")
            logger.debug("Run failed: %s", e.message)
            return
        self.console.print(Markdown(response.content))

    async def _command(self, raw: str) -> None:
        cmd, _, arg = raw.partition(" ")
        arg = arg.strip()
        if cmd == "/help":
            self.console.print(HELP_TEXT)
        elif cmd == "/reset":
            await self.orchestrator.reset_for_new_conversation()
            self.console.print("[dim]Conversation cleared[/dim]")
        elif cmd == "/stats":
            stats = self.orchestrator.get_context_stats()
            self.console.print(
                f"{stats.current_tokens}/{stats.max_tokens} tokens "
                f"({stats.usage_percent:.0%}), {stats.message_count} messages, "
                f"{stats.trimmed_count} trimmed"
            )
        elif cmd == "/templates":
            for template in BUILTIN_TEMPLATES.values():
                self.console.print(f"  {template.id}: {template.name}")
        elif cmd == "/template":
            await self._template(arg)
        elif cmd == "/save":
            await self.save()
            self.console.print(f"[dim]Saved '{self.session_id}'[/dim]")
        else:
            self.console.print(f"Unknown command: {cmd}")

    async def _template(self, template_id: str) -> None:
        if template_id in ("", "off"):
            self.orchestrator.clear_template()
            return
        template = BUILTIN_TEMPLATES.get(template_id)
        if template is None:
            self.console.print(f"Unknown template: {template_id}")
            return
        opening = self.orchestrator.apply_template(template)
        if opening:
            await self._ask(opening)

    async def save(self) -> None:
        await self.store.save(self.session_id, self.orchestrator.get_messages_for_save())


async def main(session_id: str = "default") -> None:
    settings = load_settings()
    setup_logging(settings.log_level)

    bus = EventBus()
    await EventLogger(bus).start()

    registry = ToolRegistry()
    register_default_tools(registry, settings)

    orchestrator = Orchestrator(
        provider=create_provider(settings),
        registry=registry,
        settings=settings,
        callbacks=EventBusCallbacks(bus),
        memory=InMemoryMemoryStore(),
    )
    cli = ConciergeCLI(
        orchestrator, JsonFileConversationStore(settings.conversation_dir), session_id
    )
    await cli.restore()
    await cli.run()


def run_cli() -> None:
    parser = argparse.ArgumentParser(description="Concierge personal assistant")
    parser.add_argument("--session", default="default", help="Conversation id")
    args = parser.parse_args()
    try:
        asyncio.run(main(args.session))
    except (KeyboardInterrupt, EOFError):
        print("\n[Concierge] Interrupted by user")
        sys.exit(0)
    except ConciergeError as e:
        print(f"\n[Concierge] Fatal error: {e.message}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    run_cli()
