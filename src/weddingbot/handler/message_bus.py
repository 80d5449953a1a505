import asyncio
from asyncio import Queue
from collections.abc import Awaitable, Callable

from loguru import logger

from .messages import InboundMessage, OutboundMessage

OutboundCallback = Callable[[OutboundMessage], Awaitable[None]]


class MessageBus:
    """Two queues between the channels and the intake loop.

    Channels publish every received message on ``inbound``; the intake loop
    publishes replies on ``outbound`` and ``dispatch_outbound`` routes them
    to the channel they belong to.
    """

    def __init__(self):
        self.inbound: Queue[InboundMessage] = Queue()
        self.outbound: Queue[OutboundMessage] = Queue()
        self._outbound_subscribers: dict[str, list[OutboundCallback]] = {}
        self._running = False

    async def publish_inbound(self, message: InboundMessage):
        """Publish an inbound message to the bus."""
        await self.inbound.put(message)

    async def consume_inbound(self) -> InboundMessage:
        """Wait for the next inbound message."""
        return await self.inbound.get()

    async def publish_outbound(self, message: OutboundMessage):
        """Queue a reply for delivery by its channel."""
        await self.outbound.put(message)

    def subscribe_outbound(self, channel: str, callback: OutboundCallback):
        """Register ``callback`` as a sender for ``channel``."""
        self._outbound_subscribers.setdefault(channel, []).append(callback)

    async def dispatch_outbound(self) -> None:
        """
        Deliver outbound messages to subscribed channels.
        Run this as a background task.
        """
        self._running = True
        while self._running:
            try:
                msg = await asyncio.wait_for(self.outbound.get(), timeout=1.0)
            except asyncio.TimeoutError:
                continue

            subscribers = self._outbound_subscribers.get(msg.channel, [])
            if not subscribers:
                logger.warning("No subscriber for outbound channel '{}'", msg.channel)
            for callback in subscribers:
                try:
                    await callback(msg)
                except Exception:
                    # one undeliverable notice must not stop the dispatcher
                    logger.exception("Error dispatching to {} chat {}", msg.channel, msg.chat_id)

    def stop(self):
        """Stop the dispatch loop after its current wait."""
        self._running = False

    @property
    def inbound_size(self) -> int:
        return self.inbound.qsize()

    @property
    def outbound_size(self) -> int:
        return self.outbound.qsize()
