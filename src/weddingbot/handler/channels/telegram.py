"""Telegram channel handler — connects to Telegram Bot API and publishes to bus.

Every message (text or media) becomes an ``InboundMessage``; admission and
storage decisions happen downstream. Media bytes are fetched lazily through
``download_media`` so stale or filtered media is never downloaded.
"""

from __future__ import annotations

from loguru import logger
from telegram import Bot, Message, MessageEntity, ReplyParameters, Update
from telegram.constants import ChatType
from telegram.ext import (
    Application,
    ContextTypes,
    MessageHandler,
    filters,
)

from weddingbot.constants import TELEGRAM_MAX_DOWNLOAD_MB
from weddingbot.handler.message_bus import MessageBus
from weddingbot.handler.messages import (
    ChatRef,
    InboundMessage,
    MediaPayload,
    OutboundMessage,
    Sender,
)

from .base import BaseChannelHandler

_GROUP_CHAT_TYPES = (ChatType.GROUP, ChatType.SUPERGROUP)
_MENTION_TYPES = [MessageEntity.MENTION, MessageEntity.TEXT_MENTION]


class TelegramChannelHandler(BaseChannelHandler):
    """Telegram channel handler using polling.

    Responsibilities:
        - Connect / disconnect to Telegram (polling mode)
        - Send an OutboundMessage via Bot API
        - Convert incoming messages to InboundMessage and publish to bus
        - Download media and list mentions on request from the pipeline
    """

    name = "telegram"
    CHANNEL_NAME = "telegram"
    max_download_mb = TELEGRAM_MAX_DOWNLOAD_MB

    def __init__(
        self,
        bus: MessageBus,
        token: str,
        config: dict | None = None,
        operator_id: str | None = None,
    ):
        """
        Args:
            bus: MessageBus instance for publishing inbound messages.
            token: Telegram Bot API token from @BotFather.
            config: Optional channel-specific config dict.
            operator_id: Telegram user id of the couple's own account.
        """
        super().__init__(bus, config, operator_id)
        self._token = token
        self._app: Application | None = None
        self._bot: Bot | None = None

    # ------------------------------------------------------------------
    # BaseChannelHandler interface
    # ------------------------------------------------------------------

    async def connect(self):
        """Build the Telegram Application, register handlers, start polling."""
        if self._running:
            logger.warning(
                "TelegramChannelHandler.connect() called while already connected"
            )
            return

        self._app = Application.builder().token(self._token).build()
        self._bot = self._app.bot

        self._app.add_handler(MessageHandler(filters.ALL, self._handle_update))

        # Initialize and start polling (non-blocking)
        await self._app.initialize()
        await self._app.start()
        await self._app.updater.start_polling(drop_pending_updates=True)

        self._running = True
        logger.info("Telegram channel connected (polling) as @{}", self.bot_identity)

    async def disconnect(self):
        """Stop polling, shut down the Application gracefully."""
        if not self._running or self._app is None:
            return

        try:
            if self._app.updater and self._app.updater.running:
                await self._app.updater.stop()
            await self._app.stop()
            await self._app.shutdown()
        except Exception as exc:
            logger.error("Error during Telegram disconnect: {}", exc)
        finally:
            self._running = False
            logger.info("Telegram channel disconnected")

    async def send_message(self, message: OutboundMessage):
        """Send a text message to a Telegram chat."""
        if self._bot is None:
            raise RuntimeError("Cannot send message: handler is not connected")

        reply = (
            ReplyParameters(message_id=int(message.reply_to))
            if message.reply_to
            else None
        )
        await self._bot.send_message(
            chat_id=message.chat_id,
            text=message.content,
            reply_parameters=reply,
        )
        logger.debug("Sent message to chat {}", message.chat_id)

    async def download_media(self, message: InboundMessage) -> MediaPayload | None:
        """Download the attached file into memory."""
        if self._bot is None:
            raise RuntimeError("Cannot download media: handler is not connected")

        file_id = message.metadata.get("file_id")
        if not file_id:
            return None

        try:
            tg_file = await self._bot.get_file(file_id)
            data = await tg_file.download_as_bytearray()
        except Exception as exc:
            logger.error("Failed to download media {}: {}", message.message_id, exc)
            return None

        return MediaPayload(
            data=bytes(data),
            mime_type=message.mime_type or "application/octet-stream",
            filename=message.metadata.get("file_name"),
        )

    async def get_mentions(self, message: InboundMessage) -> list[str]:
        """Usernames (lowercase, no ``@``) and user ids mentioned in the text."""
        raw: Message | None = message.metadata.get("telegram_message")
        if raw is None:
            return []

        entities = raw.parse_entities(_MENTION_TYPES)
        entities.update(raw.parse_caption_entities(_MENTION_TYPES))

        mentions: list[str] = []
        for entity, text in entities.items():
            if entity.type == MessageEntity.MENTION:
                mentions.append(text.lstrip("@").lower())
            elif entity.user is not None:
                mentions.append(str(entity.user.id))
                if entity.user.username:
                    mentions.append(entity.user.username.lower())
        return mentions

    @property
    def bot_identity(self) -> str | None:
        if self._bot is None:
            return None
        username = self._bot.username
        return username.lower() if username else None

    # ------------------------------------------------------------------
    # Update handler
    # ------------------------------------------------------------------

    async def _handle_update(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Convert an incoming Telegram message into an InboundMessage."""
        if update.message is None:
            return

        inbound = self._to_inbound(update.message)
        await self._publish_inbound(inbound)
        logger.debug(
            "Received {} from {} in chat {}",
            inbound.mime_type or "text",
            inbound.sender.id,
            inbound.chat.id,
        )

    def _to_inbound(self, msg: Message) -> InboundMessage:
        user = msg.from_user
        sender_id = str(user.id) if user else "unknown"
        sender = Sender(
            id=sender_id,
            display_name=(user.full_name or user.username) if user else None,
            direct_chat_id=sender_id if user else None,
        )

        is_group = msg.chat.type in _GROUP_CHAT_TYPES
        chat = ChatRef(
            id=str(msg.chat_id),
            is_group=is_group,
            group_id=str(msg.chat_id) if is_group else None,
        )

        file_id, mime_type, file_name, file_size = self._extract_media(msg)
        return InboundMessage(
            channel=self.CHANNEL_NAME,
            message_id=str(msg.message_id),
            sender=sender,
            chat=chat,
            timestamp=msg.date.timestamp(),
            text=msg.text or msg.caption or "",
            from_operator=self.is_operator(sender_id),
            has_media=file_id is not None,
            mime_type=mime_type,
            size_hint=file_size,
            metadata={
                "file_id": file_id,
                "file_name": file_name,
                "username": user.username if user else None,
                "telegram_message": msg,
            },
        )

    @staticmethod
    def _extract_media(msg) -> tuple[str | None, str | None, str | None, int | None]:
        """Return (file_id, mime type, original filename, byte size) of the attached media."""
        if msg.photo:
            largest = msg.photo[-1]
            return largest.file_id, "image/jpeg", None, largest.file_size
        if msg.video:
            video = msg.video
            return video.file_id, video.mime_type or "video/mp4", video.file_name, video.file_size
        if msg.video_note:
            return msg.video_note.file_id, "video/mp4", None, msg.video_note.file_size
        if msg.animation:
            animation = msg.animation
            return (
                animation.file_id,
                animation.mime_type or "video/mp4",
                animation.file_name,
                animation.file_size,
            )
        if msg.document:
            document = msg.document
            return (
                document.file_id,
                document.mime_type or "application/octet-stream",
                document.file_name,
                document.file_size,
            )
        if msg.audio:
            audio = msg.audio
            return audio.file_id, audio.mime_type or "audio/mpeg", audio.file_name, audio.file_size
        if msg.voice:
            return msg.voice.file_id, msg.voice.mime_type or "audio/ogg", None, msg.voice.file_size
        return None, None, None, None
