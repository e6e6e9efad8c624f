"""Chat history export.

Produces transcripts in the formats of LINE's own "save chat" feature:
- TXT: date-grouped ``H:MM<TAB>sender<TAB>message`` lines
- CSV: one row per message

Every string written here (headers, attachment placeholders, call and group
event sentences, date formats) matches LINE's Japanese output exactly.
"""

import csv
import io
import logging
import re
from collections.abc import Callable, Sequence
from datetime import datetime, tzinfo
from enum import Enum
from pathlib import Path

from contracts.line import (
    CallAttachment,
    ChatRoom,
    ContactAttachment,
    FileAttachment,
    GroupEventAttachment,
    LinkAttachment,
    LocationAttachment,
    Message,
    MessageType,
    MusicAttachment,
    PostAttachment,
)
from lime.errors import ExportError

logger = logging.getLogger(__name__)

DEFAULT_SELF_NAME = "自分"
DEFAULT_OTHER_NAME = "相手"

WEEKDAYS = ("日", "月", "火", "水", "木", "金", "土")
SEPARATOR_LINE = "═" * 50

CSV_HEADER = "日付,時刻,送信者,メッセージ"
CSV_ALL_HEADER = "トーク名,グループ,日付,時刻,送信者,メッセージ"

# Placeholder text by attachment kind
ATTACHMENT_TEXT = {
    "sticker": "[スタンプ]",
    "image": "[写真]",
    "voice": "[ボイスメッセージ]",
    "flex": "[Flexメッセージ]",
}

# Placeholder text by message type
MESSAGE_TYPE_TEXT = {
    MessageType.VIDEO: "[動画]",
}

_FILENAME_UNSAFE_RE = re.compile(r'[\\/:*?"<>|]')

MessagesFor = Callable[[str], Sequence[Message]]


class ExportFormat(str, Enum):
    """Supported export formats."""

    TXT = "txt"
    CSV = "csv"


# Attachment text


def format_call_duration(duration_ms: int) -> str:
    """Format a call length as ``MM:SS``."""
    minutes, seconds = divmod(duration_ms // 1000, 60)
    return f"{minutes:02d}:{seconds:02d}"


def get_group_event_text(
    loc_key: str | None, actor_name: str | None = None, target_name: str | None = None
) -> str:
    """Sentence describing a group membership event."""
    actor = actor_name or "誰か"
    target = target_name or "メンバー"

    match loc_key:
        case "A_MC":
            return f"{actor}が{target}をグループに追加しました。"
        case "C_MI":
            return f"{actor}が{target}を招待しました。"
        case "C_MA":
            return f"{actor}がグループに参加しました。"
        case "C_ME":
            return f"{actor}がグループを退出しました。"
        case "C_MK":
            return f"{actor}が{target}をグループから削除しました。"
        case _:
            return f"グループイベント: {loc_key}"


def format_call_text(call: CallAttachment) -> str:
    call_type = "ビデオ通話" if call.call_type == "video" else "音声通話"

    match call.result:
        case "normal":
            if call.duration:
                return f"☎ {call_type} {format_call_duration(call.duration)}"
            return f"☎ {call_type}"
        case "canceled":
            return f"☎ キャンセルされた{call_type}"
        case "rejected":
            return "☎ 応答なし"
        case _:
            return f"☎ {call_type}"


def _format_complex_attachment(message: Message) -> str | None:
    attachment = message.attachment
    match attachment:
        case FileAttachment():
            return f"[ファイル: {attachment.name}]"
        case LocationAttachment():
            return f"[位置情報: {attachment.name}]" if attachment.name else "[位置情報]"
        case ContactAttachment():
            return f"[連絡先: {attachment.display_name}]"
        case MusicAttachment():
            if attachment.artist:
                return f"♪ {attachment.title} - {attachment.artist}"
            return f"♪ {attachment.title}"
        case PostAttachment():
            if attachment.post_type != "album":
                return "[ノート]"
            if attachment.album_name:
                return f"[アルバム: {attachment.album_name}]"
            return "[アルバム]"
        case LinkAttachment():
            return attachment.url or message.content or ""
        case _:
            return None


def get_message_text(message: Message) -> str:
    """Plain text for one message as it appears in an export.

    Returns "" for messages that have nothing to show; callers skip those.
    """
    attachment = message.attachment

    if isinstance(attachment, GroupEventAttachment):
        return get_group_event_text(
            attachment.loc_key, attachment.actor_name, attachment.target_name
        )

    if message.type is MessageType.SYSTEM:
        return message.content or ""

    is_sticker = attachment is not None and attachment.kind == "sticker"
    if message.type is MessageType.STICKER or is_sticker:
        return ATTACHMENT_TEXT["sticker"]

    if attachment is not None and attachment.kind in ATTACHMENT_TEXT:
        return ATTACHMENT_TEXT[attachment.kind]

    if message.type in MESSAGE_TYPE_TEXT:
        return MESSAGE_TYPE_TEXT[message.type]

    if message.type is MessageType.CALL and isinstance(attachment, CallAttachment):
        return format_call_text(attachment)

    if attachment is not None:
        text = _format_complex_attachment(message)
        if text is not None:
            return text

    return message.content or ""


# Dates and names


def _to_datetime(timestamp_ms: int, tz: tzinfo | None) -> datetime:
    return datetime.fromtimestamp(timestamp_ms / 1000, tz)


def format_save_date(when: datetime) -> str:
    """``YYYY/M/D 午前h:MM`` timestamp for the header line."""
    ampm = "午後" if when.hour >= 12 else "午前"
    hours = when.hour % 12 or 12
    return f"{when.year}/{when.month}/{when.day} {ampm}{hours}:{when.minute:02d}"


def format_message_date(when: datetime) -> str:
    """``YYYY/M/D(曜)`` date header."""
    weekday = WEEKDAYS[(when.weekday() + 1) % 7]
    return f"{when.year}/{when.month}/{when.day}({weekday})"


def format_message_time(when: datetime) -> str:
    return f"{when.hour}:{when.minute:02d}"


def format_csv_date(when: datetime) -> str:
    return f"{when.year}/{when.month:02d}/{when.day:02d}"


def get_sender_name(message: Message, self_name: str) -> str:
    if message.is_me:
        return self_name
    return message.from_name or DEFAULT_OTHER_NAME


def format_csv_row(fields: Sequence[str]) -> str:
    """Join fields into one CSV line without a terminator.

    Fields holding a comma, quote or line break are quoted with inner quotes
    doubled. The CRLF terminator makes both CR and LF trigger quoting and is
    stripped again, so rows are joined with LF by the callers.
    """
    buffer = io.StringIO()
    csv.writer(buffer, lineterminator="\r\n").writerow(fields)
    return buffer.getvalue().removesuffix("\r\n")


def escape_csv_field(value: str) -> str:
    """Quote a single CSV field if it holds a comma, quote or line break."""
    return format_csv_row([value]) if value else ""


# Text export


def _append_text_lines(
    lines: list[str], messages: Sequence[Message], self_name: str, tz: tzinfo | None
) -> None:
    current_date = ""
    for message in messages:
        content = get_message_text(message)
        if not content:
            continue

        when = _to_datetime(message.timestamp, tz)
        message_date = format_message_date(when)
        if message_date != current_date:
            current_date = message_date
            lines.append(current_date)

        sender = get_sender_name(message, self_name)
        lines.append(f"{format_message_time(when)}\t{sender}\t{content}")


def export_as_text(
    chat: ChatRoom,
    messages: Sequence[Message],
    self_name: str = DEFAULT_SELF_NAME,
    *,
    tz: tzinfo | None = None,
    now: datetime | None = None,
) -> str:
    """Export one conversation as a LINE-style text transcript.

    Args:
        chat: Conversation being exported.
        messages: Its messages, oldest first.
        self_name: Sender label for the viewer's own messages.
        tz: Time zone for rendered times. None uses local time.
        now: Save timestamp for the header. Defaults to the current time.

    Returns:
        Transcript text (no trailing newline).
    """
    saved_at = now or datetime.now(tz)
    lines = [
        f"[LINE] {chat.name}とのトーク履歴",
        f"保存日時：{format_save_date(saved_at)}",
        "",
    ]
    _append_text_lines(lines, messages, self_name, tz)
    return "\n".join(lines)


def export_all_chats_as_text(
    chats: Sequence[ChatRoom],
    get_messages: MessagesFor,
    self_name: str = DEFAULT_SELF_NAME,
    *,
    tz: tzinfo | None = None,
    now: datetime | None = None,
) -> str:
    """Export every conversation into one text transcript.

    Conversations without messages are left out of the body but still count
    toward the header total.
    """
    saved_at = now or datetime.now(tz)
    lines = [
        "[LINE] 全トーク履歴",
        f"保存日時：{format_save_date(saved_at)}",
        f"トーク数：{len(chats)}件",
        "",
    ]

    for chat in chats:
        messages = get_messages(chat.id)
        if not messages:
            continue

        title = f"■ {chat.name} (グループ)" if chat.is_group else f"■ {chat.name}"
        lines.extend([SEPARATOR_LINE, title, SEPARATOR_LINE, ""])
        _append_text_lines(lines, messages, self_name, tz)
        lines.append("")

    return "\n".join(lines)


# CSV export


def _csv_row(
    message: Message,
    self_name: str,
    tz: tzinfo | None,
    chat: ChatRoom | None = None,
) -> str | None:
    content = get_message_text(message)
    if not content:
        return None

    when = _to_datetime(message.timestamp, tz)
    fields = []
    if chat is not None:
        fields.extend([chat.name, "はい" if chat.is_group else "いいえ"])
    fields.extend(
        [
            format_csv_date(when),
            format_message_time(when),
            get_sender_name(message, self_name),
            content,
        ]
    )
    return format_csv_row(fields)


def export_as_csv(
    chat: ChatRoom,
    messages: Sequence[Message],
    self_name: str = DEFAULT_SELF_NAME,
    *,
    tz: tzinfo | None = None,
) -> str:
    """Export one conversation as CSV (``日付,時刻,送信者,メッセージ``)."""
    lines = [CSV_HEADER]
    for message in messages:
        row = _csv_row(message, self_name, tz)
        if row is not None:
            lines.append(row)
    return "\n".join(lines)


def export_all_chats_as_csv(
    chats: Sequence[ChatRoom],
    get_messages: MessagesFor,
    self_name: str = DEFAULT_SELF_NAME,
    *,
    tz: tzinfo | None = None,
) -> str:
    """Export every conversation into one CSV with room name and group columns."""
    lines = [CSV_ALL_HEADER]
    for chat in chats:
        for message in get_messages(chat.id):
            row = _csv_row(message, self_name, tz, chat)
            if row is not None:
                lines.append(row)
    return "\n".join(lines)


# Dispatch and files


def _parse_format(format: ExportFormat | str) -> ExportFormat:
    try:
        return ExportFormat(format)
    except ValueError as e:
        raise ExportError(f"Unsupported export format: {format}", cause=e) from e


def export_chat(
    chat: ChatRoom,
    messages: Sequence[Message],
    format: ExportFormat | str,
    self_name: str = DEFAULT_SELF_NAME,
    *,
    tz: tzinfo | None = None,
) -> str:
    """Export one conversation in the specified format.

    Raises:
        ExportError: If format is not supported.
    """
    if _parse_format(format) is ExportFormat.CSV:
        return export_as_csv(chat, messages, self_name, tz=tz)
    return export_as_text(chat, messages, self_name, tz=tz)


def export_all_chats(
    chats: Sequence[ChatRoom],
    get_messages: MessagesFor,
    format: ExportFormat | str,
    self_name: str = DEFAULT_SELF_NAME,
    *,
    tz: tzinfo | None = None,
) -> str:
    """Export every conversation in the specified format.

    Raises:
        ExportError: If format is not supported.
    """
    if _parse_format(format) is ExportFormat.CSV:
        return export_all_chats_as_csv(chats, get_messages, self_name, tz=tz)
    return export_all_chats_as_text(chats, get_messages, self_name, tz=tz)


def _filename_timestamp(now: datetime | None) -> str:
    return (now or datetime.now()).strftime("%Y%m%d_%H%M")


def sanitize_filename(name: str) -> str:
    return _FILENAME_UNSAFE_RE.sub("_", name)


def generate_export_filename(
    chat_name: str, extension: ExportFormat | str, *, now: datetime | None = None
) -> str:
    """``[LINE] <name>_<YYYYMMDD_HHMM>.<ext>`` with unsafe characters replaced."""
    ext = _parse_format(extension).value
    return f"[LINE] {sanitize_filename(chat_name)}_{_filename_timestamp(now)}.{ext}"


def generate_all_export_filename(
    extension: ExportFormat | str, *, now: datetime | None = None
) -> str:
    ext = _parse_format(extension).value
    return f"[LINE] 全トーク履歴_{_filename_timestamp(now)}.{ext}"


def write_export(path: Path, content: str) -> Path:
    """Write an export as UTF-8 with a byte order mark.

    Raises:
        ExportError: If the file cannot be written.
    """
    path = Path(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8-sig", newline="")
    except OSError as e:
        raise ExportError(f"Failed to write export to {path}: {e}", cause=e) from e
    logger.info("Wrote export to %s", path)
    return path
