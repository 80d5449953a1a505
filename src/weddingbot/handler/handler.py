# roles: connection with channels, outbound message transport.

import asyncio

from loguru import logger

from weddingbot.config import AppConfig
from weddingbot.handler.channels.base import BaseChannelHandler
from weddingbot.handler.channels.telegram import TelegramChannelHandler
from weddingbot.handler.message_bus import MessageBus


class CommunicationHandler:
    """Owns the chat channels and the outbound side of the MessageBus.

    Responsibilities:
        1. **Channel connections** — instantiate and connect/disconnect channels.
        2. **Message transport** — passes the MessageBus to channels so they
           publish inbound messages directly, and subscribes each channel's
           send_message for outbound dispatch.
    """

    def __init__(self, config: AppConfig, message_bus: MessageBus):
        self._config = config
        self.message_bus = message_bus
        self.channels: dict[str, BaseChannelHandler] = {}
        self._dispatch_task: asyncio.Task | None = None

        self._register_channels()

    def _register_channels(self):
        """Instantiate a handler for every enabled channel in the config."""
        for name, channel_cfg in self._config.get_enabled_channels().items():
            if channel_cfg.type == "telegram":
                if not channel_cfg.token:
                    logger.warning(
                        "Telegram token not resolved for channel '{}'. "
                        "Check your .env file. Skipping.",
                        name,
                    )
                    continue
                if not channel_cfg.user_id:
                    logger.warning(
                        "No operator user id for channel '{}': the couple's own "
                        "messages will be treated as guest messages",
                        name,
                    )
                self.channels[name] = TelegramChannelHandler(
                    bus=self.message_bus,
                    token=channel_cfg.token,
                    config=channel_cfg.extra,
                    operator_id=channel_cfg.user_id,
                )
                logger.info("Registered channel: {} (type={})", name, channel_cfg.type)
                self._warn_download_limit(name, self.channels[name])
            else:
                logger.warning("Unknown channel type: {}", channel_cfg.type)

    def _warn_download_limit(self, name: str, channel: BaseChannelHandler):
        limit = channel.max_download_mb
        configured = self._config.intake.max_file_size_mb
        if limit is not None and limit < configured:
            logger.warning(
                "Channel '{}' cannot download files over {}MB; MAX_FILE_SIZE_MB={} "
                "is lowered to {}MB for this channel",
                name,
                limit,
                configured,
                limit,
            )

    async def start(self):
        """Connect all channels and start outbound dispatch."""
        for name, channel in self.channels.items():
            await channel.connect()
            logger.info("Channel '{}' connected", name)
            self.message_bus.subscribe_outbound(name, channel.send_message)

        self._dispatch_task = asyncio.create_task(
            self.message_bus.dispatch_outbound(),
            name="bus-outbound-dispatch",
        )

        logger.info("CommunicationHandler started")

    async def stop(self):
        """Disconnect channels, cancel background tasks, stop bus."""
        self.message_bus.stop()
        if self._dispatch_task is not None:
            self._dispatch_task.cancel()
            self._dispatch_task = None

        for name, channel in self.channels.items():
            await channel.disconnect()
            logger.info("Channel '{}' disconnected", name)

        logger.info("CommunicationHandler stopped")
