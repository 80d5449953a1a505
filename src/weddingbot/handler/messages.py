# inbound and outbound messages

from dataclasses import dataclass, field


@dataclass(frozen=True)
class Sender:
    id: str  # stable id used for dedup (phone number, Telegram user id)
    display_name: str | None = None
    direct_chat_id: str | None = None  # where private notices are delivered

    @property
    def label(self) -> str:
        """Name for logs and filenames, falling back to the id."""
        return self.display_name or self.id


@dataclass(frozen=True)
class ChatRef:
    id: str
    is_group: bool = False
    group_id: str | None = None  # serialized group identifier without the domain


@dataclass
class InboundMessage:
    channel: str
    message_id: str
    sender: Sender
    chat: ChatRef
    timestamp: float  # capture time, epoch seconds
    text: str = ""
    from_operator: bool = False  # sent by the account running the bot
    has_media: bool = False
    mime_type: str | None = None  # transport hint; the downloaded payload wins
    size_hint: int | None = None  # declared byte size, known before downloading
    metadata: dict = field(default_factory=dict)


@dataclass
class MediaPayload:
    data: bytes
    mime_type: str
    filename: str | None = None

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass
class OutboundMessage:
    channel: str
    content: str
    chat_id: str
    reply_to: str | None = None  # message id to quote, if any
    metadata: dict = field(default_factory=dict)
