"""Intake loop — consumes inbound messages and runs the media pipeline.

Each inbound message gets its own asyncio task, so a slow upload or a
backoff sleep only delays that message. Per message:
    1. Admission filter (chat type, wedding group, text-only, recency)
    2. Text-only: guidance reply (private chat, or group @mention)
    3. Media: download -> validate -> store -> one-time acknowledgment
Replies are published on the MessageBus as OutboundMessages.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from datetime import datetime

from loguru import logger

from weddingbot.config import IntakeConfig, MessageTemplates, WeddingConfig
from weddingbot.handler.channels.base import BaseChannelHandler
from weddingbot.handler.message_bus import MessageBus
from weddingbot.handler.messages import InboundMessage, OutboundMessage
from weddingbot.handler.session.session import BotSession
from weddingbot.intake.admission import AdmissionDecision, admit
from weddingbot.intake.validator import Rejected, RejectReason, validate
from weddingbot.storage.orchestrator import StorageOrchestrator


class MediaIntakeLoop:
    """Bridges the MessageBus and the storage orchestrator."""

    def __init__(
        self,
        message_bus: MessageBus,
        session: BotSession,
        storage: StorageOrchestrator,
        channels: Mapping[str, BaseChannelHandler],
        intake: IntakeConfig,
        wedding: WeddingConfig,
        messages: MessageTemplates,
    ) -> None:
        self.message_bus = message_bus
        self.session = session
        self.storage = storage
        self.channels = channels
        self._intake = intake
        self._wedding = wedding
        self._messages = messages
        self._tasks: set[asyncio.Task] = set()

    @property
    def _notifications_enabled(self) -> bool:
        return self._intake.guest_notifications_enabled

    async def run(self) -> None:
        """Main loop — runs forever as an asyncio task."""
        logger.info("MediaIntakeLoop started — waiting for messages")

        while True:
            msg = await self.message_bus.consume_inbound()
            task = asyncio.create_task(
                self.handle(msg),
                name=f"intake-{msg.channel}-{msg.message_id}",
            )
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    async def drain(self) -> None:
        """Wait for in-flight messages to finish."""
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    async def handle(self, msg: InboundMessage) -> AdmissionDecision | None:
        """Handle one message end to end. Never raises."""
        try:
            decision = admit(msg, self.session, self._intake)
            logger.debug(
                "Message {} from {} (group={}, media={}, operator={}) -> {}",
                msg.message_id,
                msg.sender.label,
                msg.chat.is_group,
                msg.has_media,
                msg.from_operator,
                decision.value,
            )

            if decision is AdmissionDecision.TEXT_ONLY:
                await self._handle_text(msg)
            elif decision is AdmissionDecision.PROCESS:
                await self._handle_media(msg)
            elif decision is AdmissionDecision.SKIP_STALE:
                logger.info(
                    "⏭️ Skipped old media from {} (captured before the bot started)",
                    msg.sender.label,
                )
            else:
                logger.info("⏭️ Skipped message in chat {} ({})", msg.chat.id, decision.value)
            return decision

        except Exception:
            logger.exception("Error handling message {} in chat {}", msg.message_id, msg.chat.id)
            return None

    # ------------------------------------------------------------------
    # Text messages
    # ------------------------------------------------------------------

    async def _handle_text(self, msg: InboundMessage) -> None:
        if msg.from_operator or not self._notifications_enabled:
            return

        couple = self._wedding.couple_names
        if not msg.chat.is_group:
            await self._reply(msg, self._messages.guidance_direct.format(couple=couple))
            logger.info("📤 Sent guidance message to {}", msg.sender.label)
            return

        # In groups only answer explicit mentions
        channel = self._channel(msg)
        mentions = await channel.get_mentions(msg)
        if channel.bot_identity and channel.bot_identity in mentions:
            await self._reply(msg, self._messages.guidance_group.format(couple=couple))
            logger.info("📤 Sent guidance message for group mention by {}", msg.sender.label)

    # ------------------------------------------------------------------
    # Media messages
    # ------------------------------------------------------------------

    async def _handle_media(self, msg: InboundMessage) -> None:
        try:
            await self._process_media(msg)
        except Exception:
            logger.exception("❌ Error processing media from {}", msg.sender.label)
            if self._notifications_enabled and not msg.from_operator:
                await self._send_direct(msg, self._messages.processing_error)

    def _max_size_mb(self, channel: BaseChannelHandler) -> float:
        """Configured limit, lowered to what the transport can deliver."""
        max_mb = self._intake.max_file_size_mb
        if channel.max_download_mb is not None and channel.max_download_mb < max_mb:
            return channel.max_download_mb
        return max_mb

    async def _process_media(self, msg: InboundMessage) -> None:
        channel = self._channel(msg)
        max_mb = self._max_size_mb(channel)

        # Reject on the declared size first: the transport may refuse the download
        if msg.size_hint is not None:
            outcome = validate(msg.mime_type, msg.size_hint, max_mb)
            if isinstance(outcome, Rejected):
                await self._reject(msg, outcome, msg.mime_type, max_mb)
                return

        media = await channel.download_media(msg)
        if media is None:
            logger.warning("❌ Failed to download media {} from {}", msg.message_id, msg.sender.label)
            return

        outcome = validate(media.mime_type, media.size, max_mb)
        if isinstance(outcome, Rejected):
            await self._reject(msg, outcome, media.mime_type, max_mb)
            return

        location = await self.storage.store(
            media,
            msg.sender,
            outcome,
            datetime.fromtimestamp(msg.timestamp),
        )
        logger.debug("Stored {} ({})", location.filename, location.bucket)

        if self.session.notifications.claim(msg.sender.id, msg.from_operator):
            storage_line = (
                self._messages.storage_cloud if self.storage.remote_enabled else self._messages.storage_local
            )
            await self._send_direct(msg, self._messages.welcome_ack.format(storage=storage_line))
            logger.info("📱 Sent welcome confirmation to {}", msg.sender.label)

    async def _reject(self, msg: InboundMessage, outcome: Rejected, mime_type: str | None, max_mb: float) -> None:
        if outcome.reason is not RejectReason.TOO_LARGE:
            logger.info("Unsupported media type from {}: {}", msg.sender.label, mime_type)
            return

        logger.info(
            "❌ File too large from {} ({:.1f}MB > {}MB)",
            msg.sender.label,
            outcome.size_mb,
            max_mb,
        )
        if self._notifications_enabled and not msg.from_operator:
            await self._send_direct(
                msg,
                self._messages.file_too_large.format(size=f"{outcome.size_mb:.1f}", max=max_mb),
            )

    # ------------------------------------------------------------------
    # Outbound helpers
    # ------------------------------------------------------------------

    async def send_activation(self, channel_name: str) -> None:
        """Tell the operator the bot is live. Failures are only logged."""
        channel = self.channels.get(channel_name)
        if channel is None or channel.operator_chat_id is None:
            logger.debug("No operator chat known for {} - skipping activation message", channel_name)
            return

        storage_line = (
            self._messages.activation_cloud if self.storage.remote_enabled else self._messages.activation_local
        )
        text = self._messages.activation.format(
            couple=self._wedding.couple_names,
            date=self._wedding.date,
            storage=storage_line,
        )
        try:
            await self.message_bus.publish_outbound(
                OutboundMessage(channel=channel_name, content=text, chat_id=channel.operator_chat_id)
            )
        except Exception as exc:
            logger.warning("Could not send activation message: {}", exc)

    def _channel(self, msg: InboundMessage) -> BaseChannelHandler:
        return self.channels[msg.channel]

    async def _reply(self, msg: InboundMessage, text: str) -> None:
        """Answer in the chat the message came from."""
        await self.message_bus.publish_outbound(
            OutboundMessage(
                channel=msg.channel,
                content=text,
                chat_id=msg.chat.id,
                reply_to=msg.message_id,
            )
        )

    async def _send_direct(self, msg: InboundMessage, text: str) -> None:
        """Message the sender privately, even when they wrote in a group."""
        if not msg.sender.direct_chat_id:
            logger.warning("No private chat known for {} - notice not sent", msg.sender.label)
            return
        await self.message_bus.publish_outbound(
            OutboundMessage(
                channel=msg.channel,
                content=text,
                chat_id=msg.sender.direct_chat_id,
            )
        )
