"""Admission filter: decide what the pipeline does with an inbound message.

Rules, first match wins:
    1. groups_only and not a group             -> SKIP_GROUP_FILTER
    2. wedding_group_only, group, id mismatch  -> SKIP_WEDDING_GROUP_FILTER
       (no id configured: warn, keep evaluating)
    3. no media                                -> TEXT_ONLY
    4. captured at or before session start     -> SKIP_STALE
    5. otherwise                               -> PROCESS

Operator messages go through exactly the same gates.
"""

from __future__ import annotations

from enum import Enum

from loguru import logger

from weddingbot.config import IntakeConfig
from weddingbot.handler.messages import InboundMessage
from weddingbot.handler.session.session import BotSession


class AdmissionDecision(str, Enum):
    PROCESS = "process"
    SKIP_GROUP_FILTER = "skip-group-filter"
    SKIP_WEDDING_GROUP_FILTER = "skip-wedding-group-filter"
    SKIP_STALE = "skip-stale"
    TEXT_ONLY = "text-only"


def is_recent(message: InboundMessage, session: BotSession) -> bool:
    """Strictly after the session start; the same instant does not count."""
    return message.timestamp > session.start_time


def admit(message: InboundMessage, session: BotSession, config: IntakeConfig) -> AdmissionDecision:
    chat = message.chat

    if config.groups_only and not chat.is_group:
        return AdmissionDecision.SKIP_GROUP_FILTER

    if config.wedding_group_only and chat.is_group:
        if config.wedding_group_id:
            if config.wedding_group_id not in (chat.group_id or ""):
                return AdmissionDecision.SKIP_WEDDING_GROUP_FILTER
        else:
            logger.warning("⚠️ WEDDING_GROUP_ONLY=true but no WEDDING_GROUP_ID configured - not filtering")

    if not message.has_media:
        return AdmissionDecision.TEXT_ONLY

    if not is_recent(message, session):
        return AdmissionDecision.SKIP_STALE

    return AdmissionDecision.PROCESS
