"""Disney AI Assistant terminal chat entry point."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
from pathlib import Path

from disney_rag.analytics import Analytics
from disney_rag.client.transport import RagClient
from disney_rag.config import settings
from disney_rag.content_cache import ContentCache
from disney_rag.conversation.models import Message
from disney_rag.conversation.preferences import ChatPreferences, load_preferences, save_preferences
from disney_rag.conversation.storage import SessionStorage
from disney_rag.conversation.store import ConversationStore
from disney_rag.orchestrator import QueryOrchestrator
from disney_rag.status.poller import StatusPoller, StatusSnapshot
from disney_rag.unlock import PremiumUnlock

logger = logging.getLogger(__name__)

HELP_TEXT = """Commands:
  /unlock CODE        unlock the premium tier
  /citations on|off   show or hide sources under answers
  /status             show tier usage and service status
  /clear              clear the conversation history
  /quit               exit"""

EXAMPLE_QUESTIONS = [
    "Tell me about Mickey Mouse",
    "What movies feature princesses?",
    "Describe Magic Kingdom",
    "Who is the villain in The Lion King?",
]


def load_content_index(path: Path | None) -> list[dict]:
    """Read ``[{content_type, content_id, content_name}, ...]`` from a JSON file."""
    if path is None or not path.exists():
        return []
    try:
        data = json.loads(path.read_text("utf-8"))
    except (OSError, ValueError):
        logger.exception("Could not read content index %s", path)
        return []
    return data if isinstance(data, list) else []


def render_message(message: Message, prefs: ChatPreferences, cache: ContentCache) -> str:
    """Format one message for the terminal."""
    if message.role == "user":
        return f"you> {message.text}"
    if message.pending:
        return "assistant> Thinking..."
    if message.failed:
        return f"assistant> Error: {message.text}"
    lines = [f"assistant> {message.text}" + (" [cached]" if message.cached else "")]
    if prefs.show_citations and message.citations:
        lines.append("  Sources:")
        for index, citation in enumerate(message.citations, start=1):
            lines.append(
                f"   {index}. {cache.label(citation)} - {citation.similarity_score:.0%} match"
            )
    return "\n".join(lines)


def render_status(snapshot: StatusSnapshot) -> str:
    parts = []
    if snapshot.tier is not None:
        tier = snapshot.tier
        parts.append(f"{tier.tier.capitalize()} tier: {tier.used}/{tier.limit} queries used")
    else:
        parts.append("Tier: unknown")
    if snapshot.availability is not None and not snapshot.availability.enabled:
        parts.append("AI Assistant temporarily unavailable")
    return " | ".join(parts)


class ChatApp:
    """Wires the core components together behind a prompt loop."""

    def __init__(self, client: RagClient, storage: SessionStorage, cache: ContentCache) -> None:
        self.storage = storage
        self.cache = cache
        self.store = ConversationStore(storage)
        self.prefs = load_preferences(storage)
        self.analytics = Analytics()
        self.poller = StatusPoller(client)
        self.orchestrator = QueryOrchestrator(client, self.store, self.poller, self.analytics)
        self.unlocker = PremiumUnlock(client, self.poller, self.analytics)
        self._was_enabled = True

    def _on_status(self, snapshot: StatusSnapshot) -> None:
        if snapshot.service_enabled != self._was_enabled:
            self._was_enabled = snapshot.service_enabled
            if snapshot.service_enabled:
                print("\n[AI Assistant is back online]")
            else:
                print("\n[AI Assistant temporarily unavailable]")

    async def start(self) -> None:
        history = self.store.load()
        if history:
            for message in history:
                print(render_message(message, self.prefs, self.cache))
        else:
            print("Ask me anything about Disney! Try:")
            for question in EXAMPLE_QUESTIONS:
                print(f'  "{question}"')
        self.poller.subscribe(self._on_status)
        await self.poller.start()

    async def stop(self) -> None:
        await self.orchestrator.drain()
        self.orchestrator.close()
        await self.poller.stop()
        await self.analytics.flush()

    async def handle(self, line: str) -> bool:
        """Process one input line. Returns False when the user quits."""
        command, _, arg = line.strip().partition(" ")
        if command == "/quit":
            return False
        if command == "/help":
            print(HELP_TEXT)
        elif command == "/status":
            print(render_status(self.poller.snapshot))
        elif command == "/clear":
            count = self.store.clear()
            print(f"Cleared {count} message(s).")
        elif command == "/citations":
            show = arg.strip().lower() != "off"
            self.prefs = ChatPreferences(show_citations=show)
            save_preferences(self.storage, self.prefs)
            print(f"Citations {'shown' if show else 'hidden'}.")
        elif command == "/unlock":
            self.unlocker.open()
            result = await self.unlocker.unlock(arg)
            if result.success:
                print(f"Premium unlocked: {result.tier.remaining} queries remaining.")
            else:
                print(f"Unlock failed: {result.error}")
        else:
            await self.ask(line)
        return True

    async def ask(self, question: str) -> None:
        task = self.orchestrator.submit(question)
        if task is None:
            if not question.strip():
                return
            if not self.poller.snapshot.service_enabled:
                print("AI Assistant temporarily unavailable.")
            elif not self.poller.can_submit:
                print("No queries remaining this hour. Use /unlock CODE for premium.")
            return
        await task
        print(render_message(self.store.all()[-1], self.prefs, self.cache))


async def run_chat(session_id: str, base_url: str | None, content_index: Path | None) -> None:
    storage = SessionStorage(session_id=session_id)
    cache = ContentCache()
    cache.initialize(load_content_index(content_index))
    async with RagClient(base_url=base_url) as client:
        app = ChatApp(client, storage, cache)
        await app.start()
        try:
            while True:
                line = await asyncio.to_thread(input, "> ")
                if not await app.handle(line):
                    break
        except (EOFError, KeyboardInterrupt):
            pass
        finally:
            await app.stop()


def main() -> None:
    """Start the terminal chat."""
    parser = argparse.ArgumentParser(description="Ask the Disney AI Assistant questions.")
    parser.add_argument("--session", default=settings.session_id, help="Session storage ID")
    parser.add_argument("--base-url", default=None, help="Backend origin (overrides API_BASE_URL)")
    parser.add_argument(
        "--content-index",
        type=Path,
        default=None,
        help="JSON file of {content_type, content_id, content_name} records",
    )
    args = parser.parse_args()

    logging.basicConfig(
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        level=settings.get_log_level(),
    )
    logger.info("Starting Disney AI Assistant chat against %s", args.base_url or settings.api_base_url)
    asyncio.run(run_chat(args.session, args.base_url, args.content_index))


if __name__ == "__main__":
    main()
