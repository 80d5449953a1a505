"""Unit tests for the admission filter."""

import pytest

from weddingbot.config import IntakeConfig
from weddingbot.handler.messages import ChatRef, InboundMessage, Sender
from weddingbot.handler.session.session import BotSession
from weddingbot.intake.admission import AdmissionDecision, admit

START = 1_750_000_000.0


@pytest.fixture
def session():
    return BotSession(start_time=START)


def _message(
    *,
    has_media=True,
    is_group=False,
    group_id=None,
    timestamp=START + 10,
    from_operator=False,
):
    return InboundMessage(
        channel="test",
        message_id="m1",
        sender=Sender(id="34111", display_name="Ana", direct_chat_id="34111@c.us"),
        chat=ChatRef(id=group_id or "34111@c.us", is_group=is_group, group_id=group_id),
        timestamp=timestamp,
        from_operator=from_operator,
        has_media=has_media,
        mime_type="image/jpeg" if has_media else None,
    )


class TestChatFilters:
    def test_groups_only_skips_individual_chat(self, session):
        decision = admit(_message(), session, IntakeConfig(groups_only=True))
        assert decision is AdmissionDecision.SKIP_GROUP_FILTER

    def test_groups_only_admits_group(self, session):
        msg = _message(is_group=True, group_id="120363@g.us")
        assert admit(msg, session, IntakeConfig(groups_only=True)) is AdmissionDecision.PROCESS

    def test_group_filter_applies_before_text_check(self, session):
        msg = _message(has_media=False)
        assert admit(msg, session, IntakeConfig(groups_only=True)) is AdmissionDecision.SKIP_GROUP_FILTER

    def test_wedding_group_mismatch(self, session):
        config = IntakeConfig(wedding_group_only=True, wedding_group_id="120363999")
        msg = _message(is_group=True, group_id="120363111")
        assert admit(msg, session, config) is AdmissionDecision.SKIP_WEDDING_GROUP_FILTER

    def test_wedding_group_match(self, session):
        config = IntakeConfig(wedding_group_only=True, wedding_group_id="120363999")
        msg = _message(is_group=True, group_id="120363999")
        assert admit(msg, session, config) is AdmissionDecision.PROCESS

    def test_wedding_group_only_ignores_individual_chats(self, session):
        config = IntakeConfig(wedding_group_only=True, wedding_group_id="120363999")
        assert admit(_message(), session, config) is AdmissionDecision.PROCESS

    def test_missing_wedding_group_id_does_not_filter(self, session):
        config = IntakeConfig(wedding_group_only=True, wedding_group_id=None)
        msg = _message(is_group=True, group_id="120363111")
        assert admit(msg, session, config) is AdmissionDecision.PROCESS


class TestMediaAndRecency:
    def test_text_only_regardless_of_age(self, session):
        msg = _message(has_media=False, timestamp=START - 3600)
        assert admit(msg, session, IntakeConfig()) is AdmissionDecision.TEXT_ONLY

    def test_media_before_start_is_stale(self, session):
        msg = _message(timestamp=START - 1)
        assert admit(msg, session, IntakeConfig()) is AdmissionDecision.SKIP_STALE

    def test_media_at_exact_start_is_stale(self, session):
        msg = _message(timestamp=START)
        assert admit(msg, session, IntakeConfig()) is AdmissionDecision.SKIP_STALE

    def test_recent_media_is_processed(self, session):
        msg = _message(timestamp=START + 0.5)
        assert admit(msg, session, IntakeConfig()) is AdmissionDecision.PROCESS

    def test_operator_media_goes_through_same_gates(self, session):
        assert admit(_message(from_operator=True), session, IntakeConfig()) is AdmissionDecision.PROCESS
        stale = _message(from_operator=True, timestamp=START - 5)
        assert admit(stale, session, IntakeConfig()) is AdmissionDecision.SKIP_STALE
