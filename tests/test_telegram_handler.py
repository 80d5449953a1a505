"""Unit tests for TelegramChannelHandler (all Telegram API calls are mocked)."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from telegram import MessageEntity

from weddingbot.handler.channels.telegram import TelegramChannelHandler
from weddingbot.handler.messages import ChatRef, InboundMessage, OutboundMessage, Sender

CAPTURED = datetime(2026, 6, 20, 18, 42, 7, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def mock_message_bus():
    """A lightweight mock that quacks like MessageBus."""
    bus = MagicMock()
    bus.publish_inbound = AsyncMock()
    return bus


@pytest.fixture
def handler(mock_message_bus):
    """A fresh TelegramChannelHandler wired to a mock bus."""
    return TelegramChannelHandler(
        bus=mock_message_bus,
        token="TEST_TOKEN_123",
        operator_id="999",
    )


def _mock_app():
    app_instance = AsyncMock()
    app_instance.bot = MagicMock()
    app_instance.bot.username = "WeddingBot"
    app_instance.updater = AsyncMock()
    app_instance.updater.running = True
    app_instance.add_handler = MagicMock()

    builder = MagicMock()
    builder.token.return_value = builder
    builder.build.return_value = app_instance
    return builder, app_instance


# ---------------------------------------------------------------------------
# Helpers to build Telegram-like objects
# ---------------------------------------------------------------------------

def _make_telegram_message(
    text="hello",
    chat_id=42,
    user_id=7,
    message_id=1,
    chat_type="private",
    **media,
):
    """Create a minimal mock that looks like ``telegram.Message``."""
    user = MagicMock()
    user.id = user_id
    user.full_name = "Ana García"
    user.username = "ana"

    chat = MagicMock()
    chat.type = chat_type

    msg = MagicMock()
    msg.text = text
    msg.caption = None
    msg.chat_id = chat_id
    msg.message_id = message_id
    msg.from_user = user
    msg.chat = chat
    msg.date = CAPTURED
    for kind in ("photo", "video", "video_note", "animation", "document", "audio", "voice"):
        setattr(msg, kind, media.get(kind))
    return msg


def _make_update(**kwargs):
    update = MagicMock()
    update.message = _make_telegram_message(**kwargs)
    return update


def _file(file_id, mime_type=None, file_name=None, file_size=None):
    f = MagicMock()
    f.file_id = file_id
    f.mime_type = mime_type
    f.file_name = file_name
    f.file_size = file_size
    return f


def _inbound(metadata=None, mime_type="image/jpeg"):
    return InboundMessage(
        channel="telegram",
        message_id="5",
        sender=Sender(id="7"),
        chat=ChatRef(id="42"),
        timestamp=CAPTURED.timestamp(),
        has_media=True,
        mime_type=mime_type,
        metadata=metadata or {},
    )


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------

class TestConnect:
    """Verify the connect lifecycle."""

    @pytest.mark.asyncio
    @patch("weddingbot.handler.channels.telegram.Application")
    async def test_connect_starts_polling(self, MockApplication, handler):
        builder, app_instance = _mock_app()
        MockApplication.builder.return_value = builder

        await handler.connect()

        builder.token.assert_called_once_with("TEST_TOKEN_123")
        app_instance.add_handler.assert_called_once()
        app_instance.initialize.assert_awaited_once()
        app_instance.start.assert_awaited_once()
        app_instance.updater.start_polling.assert_awaited_once_with(drop_pending_updates=True)
        assert handler.is_running is True
        assert handler.bot_identity == "weddingbot"

    @pytest.mark.asyncio
    @patch("weddingbot.handler.channels.telegram.Application")
    async def test_connect_twice_is_noop(self, MockApplication, handler):
        builder, _ = _mock_app()
        MockApplication.builder.return_value = builder

        await handler.connect()
        await handler.connect()

        MockApplication.builder.assert_called_once()


class TestDisconnect:
    @pytest.mark.asyncio
    @patch("weddingbot.handler.channels.telegram.Application")
    async def test_disconnect_stops_app(self, MockApplication, handler):
        builder, app_instance = _mock_app()
        MockApplication.builder.return_value = builder
        await handler.connect()

        await handler.disconnect()

        app_instance.updater.stop.assert_awaited_once()
        app_instance.stop.assert_awaited_once()
        app_instance.shutdown.assert_awaited_once()
        assert handler.is_running is False

    @pytest.mark.asyncio
    async def test_disconnect_when_not_connected(self, handler):
        await handler.disconnect()
        assert handler.is_running is False


class TestSendMessage:
    @pytest.mark.asyncio
    async def test_send_message_calls_bot(self, handler):
        handler._bot = AsyncMock()

        await handler.send_message(
            OutboundMessage(channel="telegram", content="Hello from bot!", chat_id="42")
        )

        handler._bot.send_message.assert_awaited_once_with(
            chat_id="42",
            text="Hello from bot!",
            reply_parameters=None,
        )

    @pytest.mark.asyncio
    async def test_reply_quotes_original_message(self, handler):
        handler._bot = AsyncMock()

        await handler.send_message(
            OutboundMessage(channel="telegram", content="hi", chat_id="42", reply_to="17")
        )

        kwargs = handler._bot.send_message.call_args.kwargs
        assert kwargs["reply_parameters"].message_id == 17

    @pytest.mark.asyncio
    async def test_send_message_raises_when_not_connected(self, handler):
        outbound = OutboundMessage(channel="telegram", content="oops", chat_id="1")
        with pytest.raises(RuntimeError, match="not connected"):
            await handler.send_message(outbound)


class TestReceiveMessage:
    @pytest.mark.asyncio
    async def test_handle_update_publishes_to_bus(self, handler, mock_message_bus):
        await handler._handle_update(_make_update(text="hello bus"), MagicMock())

        mock_message_bus.publish_inbound.assert_awaited_once()
        published = mock_message_bus.publish_inbound.call_args[0][0]
        assert isinstance(published, InboundMessage)
        assert published.text == "hello bus"

    @pytest.mark.asyncio
    async def test_update_without_message_is_ignored(self, handler, mock_message_bus):
        update = MagicMock()
        update.message = None

        await handler._handle_update(update, MagicMock())

        mock_message_bus.publish_inbound.assert_not_awaited()

    def test_private_text_conversion(self, handler):
        inbound = handler._to_inbound(_make_telegram_message(text="hi bot"))

        assert inbound.channel == "telegram"
        assert inbound.message_id == "1"
        assert inbound.sender == Sender(id="7", display_name="Ana García", direct_chat_id="7")
        assert inbound.chat == ChatRef(id="42", is_group=False, group_id=None)
        assert inbound.timestamp == CAPTURED.timestamp()
        assert inbound.text == "hi bot"
        assert inbound.has_media is False
        assert inbound.from_operator is False
        assert inbound.metadata["username"] == "ana"

    def test_group_photo_conversion(self, handler):
        msg = _make_telegram_message(
            text=None,
            chat_id=-100123,
            chat_type="supergroup",
            photo=[_file("small", file_size=100), _file("large", file_size=24 * 1024 * 1024)],
        )

        inbound = handler._to_inbound(msg)

        assert inbound.chat.is_group is True
        assert inbound.chat.group_id == "-100123"
        assert inbound.has_media is True
        assert inbound.mime_type == "image/jpeg"
        assert inbound.metadata["file_id"] == "large"
        assert inbound.size_hint == 24 * 1024 * 1024
        assert inbound.text == ""

    def test_operator_is_flagged(self, handler):
        inbound = handler._to_inbound(_make_telegram_message(user_id=999))
        assert inbound.from_operator is True


class TestMediaExtraction:
    def test_extracts_largest_photo(self):
        msg = _make_telegram_message(photo=[_file("photo_small", file_size=512), _file("photo_123", file_size=2048)])
        assert TelegramChannelHandler._extract_media(msg) == ("photo_123", "image/jpeg", None, 2048)

    def test_extracts_video(self):
        msg = _make_telegram_message(video=_file("vid", "video/quicktime", "clip.mov"))
        assert TelegramChannelHandler._extract_media(msg) == ("vid", "video/quicktime", "clip.mov", None)

    def test_video_note_is_mp4(self):
        msg = _make_telegram_message(video_note=_file("note"))
        assert TelegramChannelHandler._extract_media(msg) == ("note", "video/mp4", None, None)

    def test_extracts_document(self):
        msg = _make_telegram_message(document=_file("doc_456", "application/pdf", "menu.pdf"))
        assert TelegramChannelHandler._extract_media(msg) == ("doc_456", "application/pdf", "menu.pdf", None)

    def test_voice_defaults_to_ogg(self):
        msg = _make_telegram_message(voice=_file("v1"))
        assert TelegramChannelHandler._extract_media(msg) == ("v1", "audio/ogg", None, None)

    def test_no_media(self):
        assert TelegramChannelHandler._extract_media(_make_telegram_message()) == (None, None, None, None)

    def test_download_limit_matches_bot_api(self, handler):
        assert handler.max_download_mb == 20


class TestDownloadMedia:
    @pytest.mark.asyncio
    async def test_downloads_bytes(self, handler):
        tg_file = MagicMock()
        tg_file.download_as_bytearray = AsyncMock(return_value=bytearray(b"jpeg"))
        handler._bot = MagicMock()
        handler._bot.get_file = AsyncMock(return_value=tg_file)

        payload = await handler.download_media(_inbound({"file_id": "abc", "file_name": "p.jpg"}))

        handler._bot.get_file.assert_awaited_once_with("abc")
        assert payload.data == b"jpeg"
        assert payload.mime_type == "image/jpeg"
        assert payload.filename == "p.jpg"

    @pytest.mark.asyncio
    async def test_download_failure_returns_none(self, handler):
        handler._bot = MagicMock()
        handler._bot.get_file = AsyncMock(side_effect=RuntimeError("file is too big"))

        assert await handler.download_media(_inbound({"file_id": "abc"})) is None

    @pytest.mark.asyncio
    async def test_message_without_file(self, handler):
        handler._bot = MagicMock()
        assert await handler.download_media(_inbound({})) is None

    @pytest.mark.asyncio
    async def test_raises_when_not_connected(self, handler):
        with pytest.raises(RuntimeError, match="not connected"):
            await handler.download_media(_inbound({"file_id": "abc"}))


class TestMentions:
    @pytest.mark.asyncio
    async def test_username_and_text_mentions(self, handler):
        mention = MagicMock(type=MessageEntity.MENTION)
        user = MagicMock(id=555, username="Luis")
        text_mention = MagicMock(type=MessageEntity.TEXT_MENTION, user=user)
        raw = MagicMock()
        raw.parse_entities.return_value = {mention: "@WeddingBot"}
        raw.parse_caption_entities.return_value = {text_mention: "Luis"}

        mentions = await handler.get_mentions(_inbound({"telegram_message": raw}))

        assert mentions == ["weddingbot", "555", "luis"]

    @pytest.mark.asyncio
    async def test_no_raw_message(self, handler):
        assert await handler.get_mentions(_inbound({})) == []

    def test_bot_identity_unknown_before_connect(self, handler):
        assert handler.bot_identity is None
