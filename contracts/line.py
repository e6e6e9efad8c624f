"""LINE backup data contracts.

Normalized values produced from the ``chat``, ``chat_history`` and ``groups``
tables of an exported LINE database, plus the attachment variants a message
can carry.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import IntEnum
from typing import ClassVar, Literal, Protocol


def _integral(value: object) -> int | None:
    """Read a raw column value as an integer.

    Accepts ints, integral floats (REAL affinity) and numeric strings (TEXT
    affinity). Anything else, including booleans and fractions, yields None.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        text = value.strip()
        try:
            return int(text)
        except ValueError:
            try:
                value = float(text)
            except ValueError:
                return None
    if isinstance(value, float) and math.isfinite(value) and value.is_integer():
        return int(value)
    return None


class MessageType(IntEnum):
    """Raw ``chat_history.type`` values."""

    TEXT = 1
    IMAGE = 2
    VIDEO = 3
    CALL = 4
    STICKER = 5
    POST_NOTIFICATION = 8
    GROUP_EVENT = 13
    SYSTEM = 17
    LINK_PREVIEW = 27
    UNKNOWN = 33

    @classmethod
    def from_raw(cls, value: object) -> MessageType:
        """Map a raw column value to a member, falling back to UNKNOWN."""
        number = _integral(value)
        if number is None:
            return cls.UNKNOWN
        try:
            return cls(number)
        except ValueError:
            return cls.UNKNOWN


class AttachmentType(IntEnum):
    """Raw ``chat_history.attachement_type`` values.

    Independent of MessageType; the same numeric value means different things
    on the two axes.
    """

    NONE = 0
    IMAGE = 1
    AUDIO = 3
    CALL = 6
    STICKER = 7
    CONTACT = 13
    FILE = 14
    LOCATION = 15
    POST = 16
    GROUP_EVENT = 18
    LINE_MUSIC = 19
    FLEX = 22

    @classmethod
    def from_raw(cls, value: object) -> AttachmentType | None:
        """Map a raw column value to a member, or None when unrecognized."""
        number = _integral(value)
        if number is None:
            return None
        try:
            return cls(number)
        except ValueError:
            return None


# Attachment variants


@dataclass(frozen=True)
class StickerAttachment:
    """Sticker reference by package and sticker id."""

    kind: ClassVar[str] = "sticker"

    package_id: str | None = None
    sticker_id: str | None = None

    @property
    def metadata(self) -> dict[str, str]:
        """Sticker ids as a ``{"packageId", "stickerId"}`` mapping, or empty."""
        if self.package_id is None or self.sticker_id is None:
            return {}
        return {"packageId": self.package_id, "stickerId": self.sticker_id}


@dataclass(frozen=True)
class ImageAttachment:
    """Image stored in the media set; url is None until loaded."""

    kind: ClassVar[str] = "image"

    url: str | None = None


@dataclass(frozen=True)
class VideoAttachment:
    kind: ClassVar[str] = "video"

    url: str | None = None


@dataclass(frozen=True)
class CallAttachment:
    """Voice or video call record.

    Attributes:
        call_type: "audio" or "video".
        result: Lower-cased outcome ("normal", "canceled", "rejected", ...).
        duration: Call length in milliseconds.
    """

    kind: ClassVar[str] = "call"

    call_type: Literal["audio", "video"]
    result: str
    duration: int

    def __post_init__(self) -> None:
        """Validate field constraints."""
        if self.call_type not in ("audio", "video"):
            msg = f"call_type must be 'audio' or 'video', got {self.call_type}"
            raise ValueError(msg)


@dataclass(frozen=True)
class LocationAttachment:
    """Shared location. Coordinates are degrees, None when missing."""

    kind: ClassVar[str] = "location"

    name: str | None = None
    address: str | None = None
    latitude: float | None = None
    longitude: float | None = None


@dataclass(frozen=True)
class FileAttachment:
    """Shared file.

    Attributes:
        name: File name ("Unknown file" when absent).
        size: Size in bytes.
        expire_timestamp: Epoch ms after which the server copy expires.
    """

    kind: ClassVar[str] = "file"

    name: str
    size: int
    expire_timestamp: int | None = None


@dataclass(frozen=True)
class ContactAttachment:
    kind: ClassVar[str] = "contact"

    mid: str
    display_name: str


@dataclass(frozen=True)
class MusicAttachment:
    """LINE MUSIC share."""

    kind: ClassVar[str] = "music"

    title: str
    artist: str | None = None
    preview_url: str | None = None
    duration: int | None = None
    track_id: str | None = None
    link_url: str | None = None


@dataclass(frozen=True)
class FlexAttachment:
    """Flex message; json is the raw FLEX_JSON payload."""

    kind: ClassVar[str] = "flex"

    json: str | None = None
    image_url: str | None = None


@dataclass(frozen=True)
class PostAttachment:
    """Album or note notification."""

    kind: ClassVar[str] = "post"

    post_type: Literal["album", "note"]
    album_name: str | None = None
    text: str | None = None
    post_url: str | None = None


@dataclass(frozen=True)
class VoiceAttachment:
    """Voice message.

    Attributes:
        url: Local URL of ``voice_<id>.aac`` once loaded.
        duration: Length in milliseconds.
        file_size: Size in bytes when recorded by the client.
    """

    kind: ClassVar[str] = "voice"

    url: str | None = None
    duration: int = 0
    file_size: int | None = None


@dataclass(frozen=True)
class LinkAttachment:
    kind: ClassVar[str] = "link"

    url: str
    title: str | None = None


@dataclass(frozen=True)
class GroupEventAttachment:
    """Membership change in a group chat.

    Attributes:
        loc_key: Event key (A_MC, C_MI, C_MA, C_ME, C_MK, ...).
        mids: Member ids mentioned in LOC_ARGS, in order.
        actor_name: Contact name of the first mid, if known.
        target_name: Contact name of the second mid, if known.
    """

    kind: ClassVar[str] = "groupEvent"

    loc_key: str | None = None
    mids: tuple[str, ...] = ()
    actor_name: str | None = None
    target_name: str | None = None


@dataclass(frozen=True)
class OtherAttachment:
    kind: ClassVar[str] = "other"

    metadata: dict[str, str] = field(default_factory=dict)


Attachment = (
    StickerAttachment
    | ImageAttachment
    | VideoAttachment
    | CallAttachment
    | LocationAttachment
    | FileAttachment
    | ContactAttachment
    | MusicAttachment
    | FlexAttachment
    | PostAttachment
    | VoiceAttachment
    | LinkAttachment
    | GroupEventAttachment
    | OtherAttachment
)


@dataclass(frozen=True)
class Message:
    """Normalized LINE message.

    Attributes:
        id: Row id in chat_history.
        server_id: Server-side message id, if any.
        type: Message type.
        attachment_type: Attachment type, None when the raw value is unknown.
        chat_id: Conversation the message belongs to.
        from_id: Sender mid; empty string when authored by the viewer.
        from_name: Contact name for from_id, if known.
        content: Message text.
        timestamp: Creation time in epoch milliseconds.
        status: "read" or "sent".
        attachment: At most one resolved attachment.
    """

    id: int
    server_id: str | None
    type: MessageType
    attachment_type: AttachmentType | None
    chat_id: str
    from_id: str
    content: str | None
    timestamp: int
    status: Literal["read", "sent"] = "sent"
    attachment: Attachment | None = None
    from_name: str | None = None

    @property
    def is_me(self) -> bool:
        """Whether the viewer authored this message."""
        return not self.from_id


@dataclass(frozen=True)
class ChatRoom:
    """Conversation summary.

    Attributes:
        id: Chat id.
        name: Display name (group name, stored name, contact name or "Unknown").
        last_message: Preview text of the most recent message.
        last_message_time: Epoch milliseconds of the most recent message.
        is_group: Whether the chat id is listed in the groups table.
        unread_count: Unread messages recorded by the client.
    """

    id: str
    name: str
    last_message: str
    last_message_time: int
    is_group: bool
    unread_count: int = 0

    def __post_init__(self) -> None:
        """Validate field constraints."""
        if self.unread_count < 0:
            msg = f"unread_count must be >= 0, got {self.unread_count}"
            raise ValueError(msg)


@dataclass(frozen=True)
class SearchResult:
    """A message matched by a global search."""

    id: int
    chat_id: str
    content: str
    timestamp: int
    from_id: str
    from_name: str | None = None


@dataclass(frozen=True)
class TypeCount:
    """Row count for one raw type value.

    Attributes:
        value: Raw column value (None for NULL).
        count: Number of chat_history rows with this value.
        related: Distinct values seen on the other type axis for these rows.
    """

    value: int | None
    count: int
    related: tuple[int, ...] = ()


@dataclass(frozen=True)
class TypeBreakdown:
    """Distribution of chat_history rows over both type columns."""

    message_types: list[TypeCount]
    attachment_types: list[TypeCount]


@dataclass(frozen=True)
class TableSchema:
    name: str
    sql: str | None


class MediaSource(Protocol):
    """Lookup interface the attachment resolver uses for binary media."""

    def get_media_url(self, chat_id: str, filename: str) -> str | None:
        """Local URL for a media file, or None when not (yet) loaded."""
        ...


class ContactLookup(Protocol):
    """Lookup interface for member display names."""

    def get_contact_name(self, mid: str) -> str | None:
        """Display name for a member id, or None."""
        ...
