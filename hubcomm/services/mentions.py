"""
Mention codec: @-mentions embedded in message text.

A mention is stored inline as ``@Display Name(user_id)`` so the text keeps the
readable name while carrying the id used for notification targeting.
Malformed tokens are left alone as literal text.
"""

import re
from typing import Iterable, List, Mapping, NamedTuple, Optional, Set, Tuple

from hubcomm.errors import ValidationError

# "@" + a name without parens/"@"/newlines + "(" + an id without parens/whitespace + ")"
_TOKEN_RE = re.compile(r"@([^()@\r\n]+)\(([^()\s]+)\)")
_NAME_STRIP_RE = re.compile(r"[()@]")


class MentionMatch(NamedTuple):
    display_name: str
    user_id: str
    start: int
    end: int


class MentionQuery(NamedTuple):
    """A partially typed mention: ``start`` is the index of its "@"."""

    start: int
    query: str


def encode_mention(display_name: str, user_id: str) -> str:
    """Build a ``@name(id)`` token, sanitising the name so decoding stays unambiguous."""
    name = _NAME_STRIP_RE.sub("", display_name or "")
    name = name.replace("\r", " ").replace("\n", " ").strip()
    if not name:
        raise ValidationError("Mention needs a display name")
    if not user_id or re.search(r"[()\s]", user_id):
        raise ValidationError(f"Invalid user id for mention: {user_id!r}")
    return f"@{name}({user_id})"


def decode_mentions(text: str) -> List[MentionMatch]:
    mentions = []
    for match in _TOKEN_RE.finditer(text):
        name = match.group(1).strip()
        if not name:
            continue
        mentions.append(MentionMatch(name, match.group(2), match.start(), match.end()))
    return mentions


def extract_user_ids(text: str) -> Set[str]:
    return {m.user_id for m in decode_mentions(text)}


def render_for_display(text: str) -> str:
    """Replace every token with ``@name``. For presentation only, never re-parse the result."""
    parts = []
    cursor = 0
    for mention in decode_mentions(text):
        parts.append(text[cursor:mention.start])
        parts.append(f"@{mention.display_name}")
        cursor = mention.end
    parts.append(text[cursor:])
    return "".join(parts)


# ── Autocomplete helpers for the message input ──

def detect_mention_query(text: str, cursor: Optional[int] = None) -> Optional[MentionQuery]:
    """
    Find the mention being typed at ``cursor``: the text after the last "@"
    before it. Once a space or newline follows that "@" the mention is
    considered finished and ``None`` is returned.
    """
    if cursor is None:
        cursor = len(text)
    before = text[:cursor]
    at = before.rfind("@")
    if at == -1:
        return None
    typed = before[at + 1:]
    if " " in typed or "\n" in typed:
        return None
    return MentionQuery(at, typed.strip())


def insert_mention(
    text: str, query: MentionQuery, cursor: int, display_name: str, user_id: str
) -> Tuple[str, int]:
    """Swap the partial query for a full token; returns the new text and cursor."""
    token = encode_mention(display_name, user_id)
    new_text = text[:query.start] + token + " " + text[cursor:]
    return new_text, query.start + len(token) + 1


def filter_members(query: str, members: Mapping[str, str]) -> List[Tuple[str, str]]:
    """
    Narrow ``{user_id: display_name}`` to names containing ``query``
    (case-insensitive), prefix matches first.
    """
    needle = (query or "").lower()
    hits: Iterable[Tuple[str, str]] = (
        (uid, name) for uid, name in members.items() if needle in name.lower()
    )
    return sorted(hits, key=lambda m: (not m[1].lower().startswith(needle), m[1].lower()))
