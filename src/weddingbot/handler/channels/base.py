# channel: connect/disconnect, send, receive, media download, mention lookup.

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from weddingbot.handler.message_bus import MessageBus

from weddingbot.handler.messages import InboundMessage, MediaPayload, OutboundMessage


class BaseChannelHandler(ABC):
    """Boundary between a chat transport and the intake pipeline.

    A channel turns transport events into ``InboundMessage`` objects on the
    bus, and answers the few questions the pipeline asks back: the bytes of
    a media message, who was mentioned, and who the bot itself is.
    """

    name: str = "base"
    # Largest file the transport can hand over, None when unbounded
    max_download_mb: float | None = None

    def __init__(
        self,
        bus: MessageBus,
        config: dict | None = None,
        operator_id: str | None = None,
    ):
        self._running = False
        self._bus = bus
        self._config = config or {}
        self._operator_id = operator_id

    @abstractmethod
    async def connect(self):
        """Establish connection to the channel."""
        pass

    @abstractmethod
    async def disconnect(self):
        """Terminate connection to the channel."""
        pass

    @abstractmethod
    async def send_message(self, message: OutboundMessage):
        """Send a text message to a chat."""
        pass

    @abstractmethod
    async def download_media(self, message: InboundMessage) -> MediaPayload | None:
        """Fetch the media attached to ``message``; None when the download failed."""
        pass

    @abstractmethod
    async def get_mentions(self, message: InboundMessage) -> list[str]:
        """Return identities explicitly mentioned in ``message``."""
        pass

    @property
    @abstractmethod
    def bot_identity(self) -> str | None:
        """Identity string that ``get_mentions`` reports for the bot itself."""
        pass

    @property
    def operator_chat_id(self) -> str | None:
        """Private chat of the account operating the bot, if known."""
        return self._operator_id

    def is_operator(self, sender_id: str) -> bool:
        return self._operator_id is not None and sender_id == self._operator_id

    async def _publish_inbound(self, message: InboundMessage):
        """Publish an inbound message to the bus."""
        await self._bus.publish_inbound(message)

    @property
    def is_running(self) -> bool:
        """Return True if the handler is running, False otherwise."""
        return self._running
