"""Data contracts shared by the LINE integration and the LIME core.

Everything downstream (reader, exporter, CLI) codes against these types,
not against raw database rows.
"""

from contracts.line import (
    Attachment,
    AttachmentType,
    CallAttachment,
    ChatRoom,
    ContactAttachment,
    ContactLookup,
    FileAttachment,
    FlexAttachment,
    GroupEventAttachment,
    ImageAttachment,
    LinkAttachment,
    LocationAttachment,
    MediaSource,
    Message,
    MessageType,
    MusicAttachment,
    OtherAttachment,
    PostAttachment,
    SearchResult,
    StickerAttachment,
    TableSchema,
    TypeBreakdown,
    TypeCount,
    VideoAttachment,
    VoiceAttachment,
)

__all__ = [
    # Enums
    "AttachmentType",
    "MessageType",
    # Attachment variants
    "Attachment",
    "CallAttachment",
    "ContactAttachment",
    "FileAttachment",
    "FlexAttachment",
    "GroupEventAttachment",
    "ImageAttachment",
    "LinkAttachment",
    "LocationAttachment",
    "MusicAttachment",
    "OtherAttachment",
    "PostAttachment",
    "StickerAttachment",
    "VideoAttachment",
    "VoiceAttachment",
    # Records
    "ChatRoom",
    "Message",
    "SearchResult",
    "TableSchema",
    "TypeBreakdown",
    "TypeCount",
    # Lookups
    "ContactLookup",
    "MediaSource",
]
