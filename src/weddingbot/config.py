"""Runtime configuration loader for weddingbot.

Loads config.json once, applies environment overrides, resolves secret
references, and exposes typed dataclasses via get_config().

Secret Resolution
-----------------
Values in config.json that look like ``UPPER_SNAKE_CASE`` strings
(e.g. ``"GOOGLE_DRIVE_TOKEN"``) are treated as env-var references and
resolved from ``os.environ``.

Environment Overrides
---------------------
The flat variables used by the original ``wedding.env`` file
(``GROUPS_ONLY``, ``MAX_FILE_SIZE_MB``, ``OWNER_EMAIL`` ...) win over the
values found in config.json, so a deployment can be tuned without editing
the file.

Components never call get_config() themselves: the Application builds one
AppConfig at startup and hands the relevant section to each constructor.
"""

from __future__ import annotations

import json
import os
import re
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Any

from loguru import logger

from weddingbot.constants import (
    CONFIG_DIR_NAME,
    CONFIG_ENV_VAR,
    CONFIG_FILENAME,
    DEFAULT_COUPLE_NAMES,
    DEFAULT_FOLDER_CACHE_FILE,
    DEFAULT_MAX_FILE_SIZE_MB,
    DEFAULT_MEDIA_DIR,
    DEFAULT_ROOT_FOLDER_TEMPLATE,
    DEFAULT_TEMP_DIR,
    DRIVE_API_BASE,
    DRIVE_UPLOAD_BASE,
    MAX_FILE_SIZE_LIMIT_MB,
    MIN_FILE_SIZE_LIMIT_MB,
)
from weddingbot.errors import ConfigurationError

# Pattern to detect env-var-style values: UPPER_SNAKE_CASE with optional digits
_ENV_VAR_PATTERN = re.compile(r"^[A-Z][A-Z0-9_]{2,}$")
_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")

# env var -> (section, key, kind)
_ENV_OVERRIDES: dict[str, tuple[str, str, str]] = {
    "COUPLE_NAMES": ("wedding", "couple_names", "str"),
    "WEDDING_DATE": ("wedding", "date", "str"),
    "GROUPS_ONLY": ("intake", "groups_only", "bool"),
    "WEDDING_GROUP_ONLY": ("intake", "wedding_group_only", "bool"),
    "WEDDING_GROUP_ID": ("intake", "wedding_group_id", "str"),
    "MAX_FILE_SIZE_MB": ("intake", "max_file_size_mb", "int"),
    "GUEST_NOTIFICATIONS_ENABLED": ("intake", "guest_notifications_enabled", "bool"),
    "SAVE_LOCALLY": ("storage", "save_locally", "bool"),
    "GOOGLE_DRIVE_ENABLED": ("storage", "google_drive_enabled", "bool"),
    "DELETE_AFTER_UPLOAD": ("storage", "delete_after_upload", "bool"),
    "OWNER_EMAIL": ("storage", "owner_email", "str"),
    "SKIP_OWNER_SHARING": ("storage", "skip_owner_sharing", "bool"),
    "GOOGLE_DRIVE_CREDENTIALS_FILE": ("drive", "credentials_file", "str"),
}


# ──────────────────────────────────────────────────────────────────────
# Secret Resolution
# ──────────────────────────────────────────────────────────────────────


def resolve_secret(value: str) -> str | None:
    """Resolve a potential secret reference.

    If ``value`` looks like an env-var name (UPPER_SNAKE_CASE),
    resolve it from os.environ.

    Returns:
        The resolved secret string, or None if not found.
    """
    if not isinstance(value, str) or not value:
        return value

    if _ENV_VAR_PATTERN.match(value):
        resolved = os.environ.get(value)
        if resolved is None:
            logger.warning(
                "Secret reference '{}' not found in environment. "
                "Set it in .env or export it.",
                value,
            )
        return resolved

    # Literal value (not an env-var reference)
    return value


def parse_bool(value: Any, default: bool = False) -> bool:
    """Interpret config booleans; strings count as true only when ``"true"``."""
    if value is None or value == "":
        return default
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return bool(value)


def parse_int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


# ──────────────────────────────────────────────────────────────────────
# Config Dataclasses
# ──────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class WeddingConfig:
    """Who the bot is collecting media for."""

    couple_names: str = DEFAULT_COUPLE_NAMES
    date: str = field(default_factory=lambda: date.today().isoformat())


@dataclass(frozen=True)
class IntakeConfig:
    """Admission filters and guest-facing behaviour."""

    groups_only: bool = False
    wedding_group_only: bool = False
    wedding_group_id: str | None = None
    max_file_size_mb: int = DEFAULT_MAX_FILE_SIZE_MB
    guest_notifications_enabled: bool = True


@dataclass(frozen=True)
class StorageConfig:
    """Where accepted media ends up."""

    save_locally: bool = True
    google_drive_enabled: bool = True
    delete_after_upload: bool = False
    media_dir: Path = Path(DEFAULT_MEDIA_DIR)
    temp_dir: Path = Path(DEFAULT_TEMP_DIR)
    folder_cache_file: Path = Path(DEFAULT_FOLDER_CACHE_FILE)
    owner_email: str | None = None
    skip_owner_sharing: bool = False
    root_folder_template: str = DEFAULT_ROOT_FOLDER_TEMPLATE


@dataclass(frozen=True)
class DriveConfig:
    """Google Drive REST access.

    A service-account key file is preferred: its tokens are refreshed by the
    bot. A bare ``access_token`` is used as is and stops working when it expires.
    """

    credentials_file: Path | None = None
    access_token: str | None = None
    api_base: str = DRIVE_API_BASE
    upload_base: str = DRIVE_UPLOAD_BASE


@dataclass(frozen=True)
class MessageTemplates:
    """Localized texts sent to guests and to the operator.

    Placeholders: ``{couple}``, ``{size}``, ``{max}``, ``{storage}``, ``{date}``.
    """

    guidance_direct: str = (
        "📸 ¡Hola! Gracias por participar en la boda de {couple}.\n\n"
        "Envía tus *fotos* 📷 y *videos* 🎥 de la celebración.\n"
        "Se guardarán automáticamente. ¡Muchas gracias! 💕"
    )
    guidance_group: str = (
        "📸 ¡Hola! Envía tus *fotos* 📷 y *videos* 🎥 de la boda de {couple}.\n"
        "Se guardarán automáticamente. ¡Muchas gracias! 💕"
    )
    welcome_ack: str = (
        "✅ ¡Recibido! Tus fotos y videos se guardan automáticamente.\n"
        "{storage}\n"
        "¡Gracias por compartir estos momentos especiales! 💕\n\n"
        "📸 Puedes seguir enviando más fotos sin preocuparte."
    )
    storage_cloud: str = (
        "☁️ Las fotos tomadas desde que empezó la boda se sincronizan en la nube."
    )
    storage_local: str = "💾 Se guardan localmente."
    file_too_large: str = (
        "❌ El archivo es demasiado grande ({size}MB).\n"
        "Máximo permitido: {max}MB.\n"
        "Por favor, envía un archivo más pequeño. 🙏"
    )
    processing_error: str = (
        "❌ Hubo un problema al procesar tu archivo.\n"
        "Por favor, inténtalo de nuevo. ¡Gracias! 🙏"
    )
    activation: str = (
        "🎊 *Wedding Media Collector Bot Activated!* 🎊\n\n"
        "💒 Wedding: {couple}\n"
        "📅 Date: {date}\n\n"
        "✅ Bot is ready to receive photos and videos\n"
        "{storage}"
    )
    activation_cloud: str = "☁️ All media will be automatically saved to Google Drive"
    activation_local: str = "💾 Media will be saved locally"


@dataclass(frozen=True)
class ChannelConfig:
    """Configuration for a single communication channel."""

    name: str
    type: str
    enabled: bool = False
    token: str | None = None     # Already resolved from env
    user_id: str | None = None   # Operator account, already resolved from env
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass
class AppConfig:
    """Root config object holding all resolved configuration."""

    wedding: WeddingConfig = field(default_factory=WeddingConfig)
    intake: IntakeConfig = field(default_factory=IntakeConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    drive: DriveConfig = field(default_factory=DriveConfig)
    messages: MessageTemplates = field(default_factory=MessageTemplates)
    channels: dict[str, ChannelConfig] = field(default_factory=dict)

    def get_enabled_channels(self) -> dict[str, ChannelConfig]:
        """Return only enabled channels."""
        return {k: v for k, v in self.channels.items() if v.enabled}

    def validate(self) -> list[str]:
        """Return human-readable problems; an empty list means the config is sane."""
        errors: list[str] = []

        if not _DATE_PATTERN.match(self.wedding.date or ""):
            errors.append("WEDDING_DATE must be in YYYY-MM-DD format")

        if self.intake.wedding_group_only and not self.intake.wedding_group_id:
            errors.append("WEDDING_GROUP_ONLY=true requires WEDDING_GROUP_ID to be set")

        size = self.intake.max_file_size_mb
        if size < MIN_FILE_SIZE_LIMIT_MB or size > MAX_FILE_SIZE_LIMIT_MB:
            errors.append(
                f"MAX_FILE_SIZE_MB must be between {MIN_FILE_SIZE_LIMIT_MB} "
                f"and {MAX_FILE_SIZE_LIMIT_MB}"
            )

        if self.storage.google_drive_enabled and not (
            self.drive.credentials_file or self.drive.access_token
        ):
            errors.append(
                "GOOGLE_DRIVE_ENABLED=true requires Drive credentials "
                "(drive.credentials_file or drive.access_token)"
            )

        if not self.storage.save_locally and not self.storage.google_drive_enabled:
            errors.append(
                "Both SAVE_LOCALLY and GOOGLE_DRIVE_ENABLED are false; "
                "accepted media would not be stored anywhere"
            )

        return errors


# ──────────────────────────────────────────────────────────────────────
# Config Loading
# ──────────────────────────────────────────────────────────────────────

_config: AppConfig | None = None


def _find_config_path() -> Path:
    """Locate config.json: explicit env var first, then walk up from cwd."""
    explicit = os.environ.get(CONFIG_ENV_VAR)
    if explicit:
        return Path(explicit).expanduser().resolve()

    current = Path.cwd().resolve()
    for _ in range(10):  # safety limit
        candidate = current / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            break
        current = parent
    raise ConfigurationError(
        f"Could not find {CONFIG_FILENAME} (set {CONFIG_ENV_VAR} or run "
        f"from the project directory, started at {Path.cwd()})"
    )


def _load_raw_config(config_path: Path) -> dict[str, Any]:
    """Load and return the raw config.json dict."""
    if not config_path.exists():
        raise ConfigurationError(f"Config file not found: {config_path}")

    try:
        with open(config_path, encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"Malformed JSON in {config_path}: {exc}") from None

    logger.info("Loaded config from {}", config_path)
    return data


def _apply_env_overrides(raw: dict[str, Any]) -> dict[str, Any]:
    """Copy ``raw`` with flat environment variables written into their sections."""
    merged = {k: dict(v) if isinstance(v, dict) else v for k, v in raw.items()}
    for env_name, (section, key, _kind) in _ENV_OVERRIDES.items():
        value = os.environ.get(env_name)
        if value:
            merged.setdefault(section, {})[key] = value
            logger.debug("Config override from env: {}", env_name)
    return merged


def _resolve_path(value: str | None, default: str, base_dir: Path) -> Path:
    path = Path(value or default).expanduser()
    return path if path.is_absolute() else (base_dir / path)


def _parse_config(raw: dict[str, Any], base_dir: Path) -> AppConfig:
    """Parse raw config dict into typed AppConfig.

    Relative paths are anchored at ``base_dir`` (the project root).
    """
    raw = _apply_env_overrides(raw)

    # --- Wedding ---
    wedding_raw = raw.get("wedding", {})
    wedding = WeddingConfig(
        couple_names=wedding_raw.get("couple_names") or DEFAULT_COUPLE_NAMES,
        date=wedding_raw.get("date") or date.today().isoformat(),
    )

    # --- Intake ---
    intake_raw = raw.get("intake", {})
    intake = IntakeConfig(
        groups_only=parse_bool(intake_raw.get("groups_only"), False),
        wedding_group_only=parse_bool(intake_raw.get("wedding_group_only"), False),
        wedding_group_id=intake_raw.get("wedding_group_id") or None,
        max_file_size_mb=parse_int(
            intake_raw.get("max_file_size_mb"), DEFAULT_MAX_FILE_SIZE_MB
        ),
        guest_notifications_enabled=parse_bool(
            intake_raw.get("guest_notifications_enabled"), True
        ),
    )

    # --- Storage ---
    storage_raw = raw.get("storage", {})
    owner_email = storage_raw.get("owner_email")
    storage = StorageConfig(
        save_locally=parse_bool(storage_raw.get("save_locally"), True),
        google_drive_enabled=parse_bool(storage_raw.get("google_drive_enabled"), True),
        delete_after_upload=parse_bool(storage_raw.get("delete_after_upload"), False),
        media_dir=_resolve_path(storage_raw.get("media_dir"), DEFAULT_MEDIA_DIR, base_dir),
        temp_dir=_resolve_path(storage_raw.get("temp_dir"), DEFAULT_TEMP_DIR, base_dir),
        folder_cache_file=_resolve_path(
            storage_raw.get("folder_cache_file"), DEFAULT_FOLDER_CACHE_FILE, base_dir
        ),
        owner_email=resolve_secret(owner_email) if owner_email else None,
        skip_owner_sharing=parse_bool(storage_raw.get("skip_owner_sharing"), False),
        root_folder_template=storage_raw.get(
            "root_folder_template", DEFAULT_ROOT_FOLDER_TEMPLATE
        ),
    )

    # --- Drive ---
    drive_raw = raw.get("drive", {})
    token_ref = drive_raw.get("access_token", "")
    credentials_ref = drive_raw.get("credentials_file")
    drive = DriveConfig(
        credentials_file=(
            _resolve_path(credentials_ref, "", base_dir) if credentials_ref else None
        ),
        access_token=resolve_secret(token_ref) if token_ref else None,
        api_base=drive_raw.get("api_base", DRIVE_API_BASE),
        upload_base=drive_raw.get("upload_base", DRIVE_UPLOAD_BASE),
    )

    # --- Messages ---
    known = set(MessageTemplates.__dataclass_fields__)
    messages_raw = raw.get("messages", {})
    unknown = set(messages_raw) - known
    if unknown:
        logger.warning("Ignoring unknown message templates: {}", sorted(unknown))
    messages = MessageTemplates(**{k: v for k, v in messages_raw.items() if k in known})

    # --- Channels ---
    channels: dict[str, ChannelConfig] = {}
    for name, chan_raw in raw.get("channels", {}).items():
        token_key = chan_raw.get("env_token", "")
        user_id_key = chan_raw.get("env_user_id", "")

        channels[name] = ChannelConfig(
            name=name,
            type=chan_raw.get("type", name),
            enabled=parse_bool(chan_raw.get("enabled"), False),
            token=resolve_secret(token_key) if token_key else None,
            user_id=resolve_secret(user_id_key) if user_id_key else None,
            extra={
                k: v for k, v in chan_raw.items()
                if k not in {"type", "enabled", "env_token", "env_user_id"}
            },
        )

    return AppConfig(
        wedding=wedding,
        intake=intake,
        storage=storage,
        drive=drive,
        messages=messages,
        channels=channels,
    )


def load_config(config_path: Path) -> AppConfig:
    """Read and parse one config file. Relative paths anchor at its project root."""
    config_path = config_path.resolve()
    raw = _load_raw_config(config_path)
    base_dir = config_path.parent
    # configs/config.json -> project root is one level further up
    if base_dir.name == CONFIG_DIR_NAME:
        base_dir = base_dir.parent
    return _parse_config(raw, base_dir)


def get_config(*, reload: bool = False) -> AppConfig:
    """Return the singleton AppConfig, loading it on first call.

    Args:
        reload: Force re-read from disk (useful for testing).
    """
    global _config

    if _config is None or reload:
        from dotenv import load_dotenv

        load_dotenv()  # populate os.environ from .env

        _config = load_config(_find_config_path())
        logger.debug(
            "Config loaded: {} channels, drive={}, local={}",
            len(_config.channels),
            _config.storage.google_drive_enabled,
            _config.storage.save_locally,
        )

    return _config
