"""Contact directory built from the exported ``mid,profile_name`` CSV."""

import logging
import re

logger = logging.getLogger(__name__)

_QUOTED_LINE_RE = re.compile(r'^"([^"]+)","([^"]+)"$')
_LINE_SPLIT_RE = re.compile(r"\r?\n")


def _strip_quotes(value: str) -> str:
    """Drop one leading and one trailing double quote."""
    if value.startswith('"'):
        value = value[1:]
    if value.endswith('"'):
        value = value[:-1]
    return value


class ContactDirectory:
    """In-memory mapping of member ids (mid) to display names.

    Lines are expected as ``"mid","name"``. Anything else falls back to a
    comma split where the name keeps any further commas.
    """

    def __init__(self) -> None:
        self._names: dict[str, str] = {}
        self._initialized = False

    def load_csv(self, text: str) -> int:
        """Replace the directory with the contents of a contacts CSV.

        Args:
            text: Full CSV text; the first line is a header and is skipped.

        Returns:
            Number of contacts loaded
        """
        self._names.clear()

        lines = _LINE_SPLIT_RE.split(text)
        for line in lines[1:]:
            line = line.strip()
            if not line:
                continue

            match = _QUOTED_LINE_RE.match(line)
            if match:
                self._names[match.group(1)] = match.group(2)
                continue

            parts = line.split(",")
            if len(parts) >= 2:
                mid = _strip_quotes(parts[0])
                self._names[mid] = _strip_quotes(",".join(parts[1:]))
            else:
                logger.debug("Skipping malformed contacts line: %r", line[:80])

        self._initialized = True
        logger.info("Loaded %d contacts", len(self._names))
        return len(self._names)

    def get_contact_name(self, mid: str) -> str | None:
        return self._names.get(mid)

    @property
    def count(self) -> int:
        return len(self._names)

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    def clear(self) -> None:
        self._names.clear()
        self._initialized = False
