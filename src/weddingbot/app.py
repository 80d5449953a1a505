"""Application bootstrap — creates shared components and runs everything.

This is the single place that reads the configuration and wires the
CommunicationHandler, the storage stack and the MediaIntakeLoop together
through a shared MessageBus.
"""

from __future__ import annotations

import asyncio
import dataclasses
import signal

from loguru import logger

from weddingbot.config import AppConfig, get_config
from weddingbot.errors import ConfigurationError
from weddingbot.handler.handler import CommunicationHandler
from weddingbot.handler.message_bus import MessageBus
from weddingbot.handler.session.session import BotSession
from weddingbot.intake.loop import MediaIntakeLoop
from weddingbot.storage.drive import GoogleDriveStore
from weddingbot.storage.folders import FolderCache, FolderResolver
from weddingbot.storage.orchestrator import StorageOrchestrator
from weddingbot.storage.permissions import PermissionGranter
from weddingbot.storage.retry import RetryExecutor

# Upper bound for letting in-flight uploads finish on shutdown
SHUTDOWN_GRACE_SECONDS = 30.0


def report_config_problems(config: AppConfig) -> list[str]:
    """Log configuration problems once; the bot keeps running best-effort."""
    errors = config.validate()
    if errors:
        logger.warning("❌ Configuration errors:")
        for error in errors:
            logger.warning("   - {}", error)
    return errors


def build_storage(config: AppConfig, folders: FolderCache) -> StorageOrchestrator:
    """Assemble the storage stack; falls back to local-only when Drive can't be used."""
    storage_cfg = config.storage
    if not storage_cfg.google_drive_enabled:
        return StorageOrchestrator(storage_cfg)

    try:
        store = GoogleDriveStore(config.drive)
    except ConfigurationError as exc:
        logger.warning("☁️ Google Drive disabled for this run: {}", exc)
        return StorageOrchestrator(dataclasses.replace(storage_cfg, google_drive_enabled=False))

    retry = RetryExecutor()
    permissions = PermissionGranter(
        store,
        retry,
        owner_email=storage_cfg.owner_email,
        skip_owner_sharing=storage_cfg.skip_owner_sharing,
    )
    resolver = FolderResolver(
        store,
        folders,
        permissions,
        root_folder_template=storage_cfg.root_folder_template,
    )
    return StorageOrchestrator(
        storage_cfg,
        store=store,
        resolver=resolver,
        retry=retry,
        permissions=permissions,
    )


class Application:
    """Top-level application that owns all major components.

    Architecture:
        MessageBus (shared)
            ├── CommunicationHandler  (channels → inbound queue, outbound queue → channels)
            └── MediaIntakeLoop       (inbound queue → admission → storage → outbound queue)
    """

    def __init__(self, config: AppConfig | None = None) -> None:
        self._config = config or get_config()
        report_config_problems(self._config)

        self.message_bus = MessageBus()

        folders = FolderCache(self._config.storage.folder_cache_file)
        folders.load()
        self.session = BotSession.start(
            notifications_enabled=self._config.intake.guest_notifications_enabled,
            folders=folders,
        )

        self.storage = build_storage(self._config, self.session.folders)
        self.handler = CommunicationHandler(self._config, self.message_bus)
        self.intake = MediaIntakeLoop(
            message_bus=self.message_bus,
            session=self.session,
            storage=self.storage,
            channels=self.handler.channels,
            intake=self._config.intake,
            wedding=self._config.wedding,
            messages=self._config.messages,
        )

        self._shutdown_event = asyncio.Event()

    async def start(self) -> None:
        """Start all components and run until shutdown signal."""
        logger.info("🚀 Starting Wedding Media Collector Bot...")

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, self._signal_handler)

        self.storage.ensure_local_folders()
        await self.handler.start()

        intake_task = asyncio.create_task(self.intake.run(), name="intake-loop")

        for name in self.handler.channels:
            await self.intake.send_activation(name)
        logger.info(
            "✅ Bot is ready: couple={}, drive={}, local={}, max={}MB",
            self._config.wedding.couple_names,
            self.storage.remote_enabled,
            self._config.storage.save_locally,
            self._config.intake.max_file_size_mb,
        )

        await self._shutdown_event.wait()

        # Graceful shutdown
        logger.info("Shutting down...")
        intake_task.cancel()
        try:
            await intake_task
        except asyncio.CancelledError:
            pass

        if self.intake.in_flight:
            logger.info("Waiting for {} in-flight messages", self.intake.in_flight)
            try:
                await asyncio.wait_for(self.intake.drain(), timeout=SHUTDOWN_GRACE_SECONDS)
            except asyncio.TimeoutError:
                logger.warning("In-flight messages did not finish in {}s", SHUTDOWN_GRACE_SECONDS)

        await self.handler.stop()
        await self.storage.close()
        logger.info("Bot stopped.")

    def _signal_handler(self) -> None:
        """Handle SIGINT/SIGTERM by setting the shutdown event."""
        logger.info("Shutdown signal received")
        self._shutdown_event.set()

    def run(self) -> None:
        """Synchronous entry point — creates event loop and runs the app."""
        asyncio.run(self.start())
