import asyncio
import logging
from concurrent.futures import Future
from typing import Optional

import discord

from radiobot.application.dispatcher import EventDispatcher
from radiobot.domain.entities import ChatMessage
from radiobot.domain.ports import Notifier

logger = logging.getLogger(__name__)


def to_chat_message(message: discord.Message, self_user: Optional[discord.abc.User] = None) -> ChatMessage:
    """Convert a discord.py message into the domain chat message.

    Messages from bots and from the bot account itself are flagged so the
    dispatcher ignores them.
    """
    author = message.author
    is_self = self_user is not None and author.id == self_user.id
    return ChatMessage(
        channel_id=message.channel.id,
        content=message.content or '',
        author_is_bot=bool(getattr(author, 'bot', False)) or is_self,
        message_id=message.id,
        author=str(author),
    )


class DiscordNotifier(Notifier):
    """Posts replies to Discord channels from any thread.

    Sends are scheduled on the client's event loop and never awaited by the
    caller; failures are only logged.
    """

    def __init__(self, client: Optional[discord.Client] = None):
        self._client = client
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    def bind(self, client: discord.Client) -> None:
        self._client = client

    def attach_loop(self, loop: asyncio.AbstractEventLoop) -> None:
        self._loop = loop

    def send(self, channel_id: int, text: str) -> None:
        if self._client is None or self._loop is None:
            raise RuntimeError("Notifier is not attached to a running Discord client")
        future = asyncio.run_coroutine_threadsafe(self._send(channel_id, text), self._loop)
        future.add_done_callback(self._log_failure)

    async def _send(self, channel_id: int, text: str) -> None:
        channel = self._client.get_channel(channel_id)
        if channel is None:
            channel = await self._client.fetch_channel(channel_id)
        await channel.send(text)

    @staticmethod
    def _log_failure(future: Future) -> None:
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            logger.warning(f"Failed to deliver Discord reply: {error}")


class RadioBotClient(discord.Client):
    """Discord gateway client feeding messages to the dispatcher."""

    def __init__(self,
                 dispatcher: EventDispatcher,
                 notifier: Optional[DiscordNotifier] = None,
                 stop_timeout: float = 30.0,
                 **options):
        intents = discord.Intents.default()
        intents.message_content = True
        super().__init__(intents=intents, **options)
        self.dispatcher = dispatcher
        self.notifier = notifier
        self.stop_timeout = stop_timeout
        if notifier is not None:
            notifier.bind(self)

    async def setup_hook(self) -> None:
        if self.notifier is not None:
            self.notifier.attach_loop(asyncio.get_running_loop())
        self.dispatcher.start()

    async def on_ready(self) -> None:
        logger.info(f"Logged in as {self.user}; watching channel {self.dispatcher.channel_id}")

    async def on_message(self, message: discord.Message) -> None:
        self.dispatcher.submit(to_chat_message(message, self.user))

    async def close(self) -> None:
        # Let the in-flight reconcile finish before tearing down the gateway
        await asyncio.to_thread(self.dispatcher.stop, self.stop_timeout)
        await super().close()
