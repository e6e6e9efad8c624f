"""Attachment resolution for LINE chat_history rows.

A row's ``type`` and ``attachement_type`` columns overlap, so dispatch runs
through an ordered rule table. The first rule whose predicate holds decides
the result, even when its builder returns None.
"""

import json
import logging
import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from contracts.line import (
    Attachment,
    AttachmentType,
    CallAttachment,
    ContactAttachment,
    ContactLookup,
    FileAttachment,
    FlexAttachment,
    GroupEventAttachment,
    ImageAttachment,
    LinkAttachment,
    LocationAttachment,
    MediaSource,
    MessageType,
    MusicAttachment,
    PostAttachment,
    StickerAttachment,
    VoiceAttachment,
)

from .parser import coerce_number, coerce_str, parse_int, parse_parameter

logger = logging.getLogger(__name__)

# Location coordinates are stored as fixed-point integers
COORDINATE_SCALE = 1_000_000

URL_PATTERN = re.compile(r"(https?://[^\s]+)")
MUSIC_TRACK_PATTERN = re.compile(r"subitem=(mt[a-f0-9]+)", re.IGNORECASE)
STICKER_PACKAGE_PATTERN = re.compile(r"STKPKGID[\"']?[:=\t]?\s*[\"']?(\d+)", re.IGNORECASE)
STICKER_ID_PATTERN = re.compile(r"STKID[\"']?[:=\t]?\s*[\"']?(\d+)", re.IGNORECASE)
MEMBER_ID_PATTERN = re.compile(r"u[a-f0-9]{32}")

MUSIC_LINK_KEYS = ("linkUri", "a-linkUri", "i-linkUri")


@dataclass(frozen=True)
class RowContext:
    """Everything a rule needs to look at one row."""

    row: Mapping[str, Any]
    chat_id: str
    params: dict[str, str]
    message_id: Any
    message_type: MessageType
    attachment_type: AttachmentType | None

    @property
    def raw_parameter(self) -> str | None:
        value = self.row.get("parameter")
        return value if isinstance(value, str) else None


Predicate = Callable[[RowContext], bool]
Builder = Callable[["AttachmentResolver", RowContext], Attachment | None]


def _find_flex_image_url(node: Any) -> str | None:
    """Depth-first search for the first ``url`` string containing "http"."""
    if isinstance(node, dict):
        url = node.get("url")
        if isinstance(url, str) and "http" in url:
            return url
        children = node.values()
    elif isinstance(node, list):
        children = node
    else:
        return None

    for child in children:
        found = _find_flex_image_url(child)
        if found:
            return found
    return None


def _scaled_coordinate(value: Any) -> float | None:
    number = coerce_number(value)
    if not number:
        return None
    return number / COORDINATE_SCALE


class AttachmentResolver:
    """Turns raw chat_history rows into attachment variants.

    Media URLs come from the media source's synchronous lookup, so an image
    that is known but not loaded yet resolves with ``url=None``. Member names
    for group events come from the contact lookup.

    Example:
        resolver = AttachmentResolver(media=locator, contacts=directory)
        attachment = resolver.resolve(row, chat_id)
    """

    def __init__(
        self,
        media: MediaSource | None = None,
        contacts: ContactLookup | None = None,
    ) -> None:
        self.media = media
        self.contacts = contacts

    def resolve(self, row: Mapping[str, Any], chat_id: str) -> Attachment | None:
        """Resolve the attachment of a raw row.

        Args:
            row: chat_history row (sqlite3.Row or mapping)
            chat_id: Conversation the row belongs to

        Returns:
            The attachment variant, or None for plain text/system messages
        """
        if not isinstance(row, Mapping):
            row = {key: row[key] for key in row.keys()}

        ctx = RowContext(
            row=row,
            chat_id=chat_id,
            params=parse_parameter(row.get("parameter")),
            message_id=row.get("id"),
            message_type=MessageType.from_raw(row.get("type")),
            attachment_type=AttachmentType.from_raw(row.get("attachement_type")),
        )

        for name, predicate, builder in RULES:
            if predicate(ctx):
                logger.debug("Row %s matched attachment rule %s", ctx.message_id, name)
                return builder(self, ctx)
        return None

    # Helpers

    def _media_url(self, chat_id: str, filename: str) -> str | None:
        if self.media is None:
            return None
        return self.media.get_media_url(chat_id, filename)

    def _contact_name(self, mid: str | None) -> str | None:
        if not mid or self.contacts is None:
            return None
        return self.contacts.get_contact_name(mid)

    # Builders

    def _voice(self, ctx: RowContext) -> VoiceAttachment:
        return VoiceAttachment(
            url=self._media_url(ctx.chat_id, f"voice_{ctx.message_id}.aac"),
            duration=parse_int(ctx.params.get("DURATION"), 0),
            file_size=parse_int(ctx.params.get("FILE_SIZE")),
        )

    def _image(self, ctx: RowContext) -> ImageAttachment:
        return ImageAttachment(url=self._media_url(ctx.chat_id, str(ctx.message_id)))

    def _link(self, ctx: RowContext) -> LinkAttachment | None:
        match = URL_PATTERN.search(ctx.row["content"])
        if not match:
            return None
        return LinkAttachment(url=match.group(1))

    def _location(self, ctx: RowContext) -> LocationAttachment:
        return LocationAttachment(
            name=coerce_str(ctx.row.get("location_name")) or None,
            address=coerce_str(ctx.row.get("location_address")) or None,
            latitude=_scaled_coordinate(ctx.row.get("location_latitude")),
            longitude=_scaled_coordinate(ctx.row.get("location_longitude")),
        )

    def _file(self, ctx: RowContext) -> FileAttachment:
        return FileAttachment(
            name=ctx.params.get("FILE_NAME") or "Unknown file",
            size=parse_int(ctx.params.get("FILE_SIZE"), 0) or 0,
            expire_timestamp=parse_int(ctx.params.get("FILE_EXPIRE_TIMESTAMP")),
        )

    def _contact(self, ctx: RowContext) -> ContactAttachment:
        return ContactAttachment(
            mid=ctx.params.get("mid") or "",
            display_name=ctx.params.get("displayName") or "Unknown",
        )

    def _music(self, ctx: RowContext) -> MusicAttachment:
        params = ctx.params
        track_id = params.get("id") or None
        if not track_id:
            link = next((params[key] for key in MUSIC_LINK_KEYS if params.get(key)), None)
            if link:
                match = MUSIC_TRACK_PATTERN.search(link)
                if match:
                    track_id = match.group(1)

        content = ctx.row.get("content")
        title = (
            (content if isinstance(content, str) else None)
            or params.get("text")
            or params.get("title")
            or "Unknown"
        )
        return MusicAttachment(
            title=title,
            artist=params.get("subText") or None,
            preview_url=params.get("previewUrl") or None,
            duration=parse_int(params.get("duration")),
            track_id=track_id,
            link_url=params.get("linkUri") or None,
        )

    def _flex(self, ctx: RowContext) -> FlexAttachment:
        flex_json = ctx.params.get("FLEX_JSON")
        image_url = None
        if flex_json:
            try:
                image_url = _find_flex_image_url(json.loads(flex_json))
            except (ValueError, RecursionError) as e:
                logger.debug("Unparseable FLEX_JSON in row %s: %s", ctx.message_id, e)
        return FlexAttachment(json=flex_json, image_url=image_url)

    def _post(self, ctx: RowContext) -> PostAttachment:
        params = ctx.params
        return PostAttachment(
            post_type="album" if params.get("serviceType") == "AB" else "note",
            album_name=params.get("albumName") or None,
            text=params.get("text") or None,
            post_url=params.get("postEndUrl") or None,
        )

    def _sticker(self, ctx: RowContext) -> StickerAttachment:
        raw = ctx.raw_parameter
        if raw:
            package = STICKER_PACKAGE_PATTERN.search(raw)
            sticker = STICKER_ID_PATTERN.search(raw)
            if package and sticker:
                return StickerAttachment(package_id=package.group(1), sticker_id=sticker.group(1))

        package_id = ctx.params.get("STKPKGID")
        sticker_id = ctx.params.get("STKID")
        if package_id and sticker_id:
            return StickerAttachment(package_id=package_id, sticker_id=sticker_id)
        return StickerAttachment()

    def _call(self, ctx: RowContext) -> CallAttachment:
        params = ctx.params
        return CallAttachment(
            call_type="video" if params.get("TYPE") == "V" else "audio",
            result=(params.get("RESULT") or "normal").lower(),
            duration=parse_int(params.get("DURATION"), 0) or 0,
        )

    def _group_event(self, ctx: RowContext) -> GroupEventAttachment:
        mids = tuple(MEMBER_ID_PATTERN.findall(ctx.params.get("LOC_ARGS") or ""))
        return GroupEventAttachment(
            loc_key=ctx.params.get("LOC_KEY"),
            mids=mids,
            actor_name=self._contact_name(mids[0] if mids else None),
            target_name=self._contact_name(mids[1] if len(mids) > 1 else None),
        )


# Evaluated top-down; order matters because predicates overlap.
RULES: tuple[tuple[str, Predicate, Builder], ...] = (
    (
        "voice",
        lambda c: c.attachment_type is AttachmentType.AUDIO or c.params.get("SID") == "ema",
        AttachmentResolver._voice,
    ),
    ("image", lambda c: c.attachment_type is AttachmentType.IMAGE, AttachmentResolver._image),
    (
        "link",
        lambda c: c.attachment_type is AttachmentType.NONE
        and bool(c.params.get("web_page_preview_type"))
        and isinstance(c.row.get("content"), str),
        AttachmentResolver._link,
    ),
    (
        "location",
        lambda c: c.attachment_type is AttachmentType.LOCATION,
        AttachmentResolver._location,
    ),
    ("file", lambda c: c.attachment_type is AttachmentType.FILE, AttachmentResolver._file),
    ("contact", lambda c: c.attachment_type is AttachmentType.CONTACT, AttachmentResolver._contact),
    ("music", lambda c: c.attachment_type is AttachmentType.LINE_MUSIC, AttachmentResolver._music),
    ("flex", lambda c: c.attachment_type is AttachmentType.FLEX, AttachmentResolver._flex),
    (
        "post",
        lambda c: c.message_type is MessageType.POST_NOTIFICATION
        or c.attachment_type is AttachmentType.POST,
        AttachmentResolver._post,
    ),
    ("sticker", lambda c: c.message_type is MessageType.STICKER, AttachmentResolver._sticker),
    ("call", lambda c: c.message_type is MessageType.CALL, AttachmentResolver._call),
    ("image_message", lambda c: c.message_type is MessageType.IMAGE, AttachmentResolver._image),
    (
        "group_event",
        lambda c: c.attachment_type is AttachmentType.GROUP_EVENT
        and c.message_type in (MessageType.GROUP_EVENT, MessageType.SYSTEM),
        AttachmentResolver._group_event,
    ),
)


def determine_attachment(
    row: Mapping[str, Any],
    chat_id: str,
    media: MediaSource | None = None,
    contacts: ContactLookup | None = None,
) -> Attachment | None:
    """Resolve a row's attachment without keeping a resolver around."""
    return AttachmentResolver(media=media, contacts=contacts).resolve(row, chat_id)
