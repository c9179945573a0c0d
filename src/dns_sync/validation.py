"""
Validation of user-provided domain metadata.

Every check here runs before any network call; a rejected input leaves both
the remote and the local cache untouched.
"""

from typing import Iterable, Optional

from .enums import DomainColor
from .exceptions import ValidationError
from .models import UNSET, DomainMetadataUpdate

MAX_TAG_LENGTH = 50
MAX_TAGS = 10
MAX_NOTE_LENGTH = 500
VALID_COLORS = frozenset(c.value for c in DomainColor)


def clean_tag(tag: str) -> str:
    """
    Trim and check a single tag.

    Raises:
        ValidationError: If the tag is empty after trimming or too long
    """
    trimmed = tag.strip() if isinstance(tag, str) else ""
    if not trimmed:
        raise ValidationError(
            code="empty_tag",
            message="Tag cannot be empty",
            details={"tag": tag},
        )
    if len(trimmed) > MAX_TAG_LENGTH:
        raise ValidationError(
            code="tag_too_long",
            message=f"Tag length cannot exceed {MAX_TAG_LENGTH} characters",
            details={"tag": trimmed, "length": len(trimmed)},
        )
    return trimmed


def clean_tags(tags: Iterable[str]) -> list[str]:
    """
    Clean a tag list: trim each tag, drop duplicates, sort.

    Raises:
        ValidationError: If any tag is invalid or more than MAX_TAGS remain
    """
    cleaned = sorted({clean_tag(t) for t in tags})
    if len(cleaned) > MAX_TAGS:
        raise ValidationError(
            code="too_many_tags",
            message=f"Cannot have more than {MAX_TAGS} tags",
            details={"count": len(cleaned)},
        )
    return cleaned


def validate_color(color: str) -> str:
    if color not in VALID_COLORS:
        raise ValidationError(
            code="invalid_color",
            message=f"Invalid color key: '{color}'. Must be one of: {', '.join(sorted(VALID_COLORS))}",
            details={"color": color},
        )
    return color


def validate_note(note: Optional[str]) -> Optional[str]:
    """None is valid and means "clear the note"."""
    if note is not None and len(note) > MAX_NOTE_LENGTH:
        raise ValidationError(
            code="note_too_long",
            message=f"Note length cannot exceed {MAX_NOTE_LENGTH} characters",
            details={"length": len(note)},
        )
    return note


def validate_update(update: DomainMetadataUpdate) -> DomainMetadataUpdate:
    """
    Validate a partial metadata update.

    Returns:
        A new update with its tag list cleaned

    Raises:
        ValidationError: If the update changes nothing, or on the first
            invalid field
    """
    if update.is_noop():
        raise ValidationError(
            code="empty_update",
            message="Metadata update has no fields to change",
        )
    return DomainMetadataUpdate(
        is_favorite=update.is_favorite,
        tags=clean_tags(update.tags) if update.tags is not None else None,
        color=validate_color(update.color) if update.color is not None else None,
        note=validate_note(update.note) if update.note is not UNSET else UNSET,
    )
