"""
normalization of user-supplied video metadata.

the community field arrives either as a bare name or as an object with a
`name` key; both are reduced to a CommunityName before anything is stored.
"""
from dataclasses import dataclass, field
from typing import Any, List, Optional

from upload_service.core.errors import ValidationError

MAX_TITLE_LENGTH = 256
MAX_DESCRIPTION_LENGTH = 50000
MAX_TAGS = 25
MAX_TAG_LENGTH = 64


@dataclass(frozen=True)
class CommunityName:
    name: str


@dataclass
class VideoMetadata:
    title: str
    description: str = ""
    tags: List[str] = field(default_factory=list)
    community: Optional[CommunityName] = None
    decline_rewards: bool = False


def parse_community(value: Any) -> Optional[CommunityName]:
    """accept 'hive-123' or {'name': 'hive-123', ...}; None/'' mean no community"""
    if value is None:
        return None
    if isinstance(value, str):
        name = value.strip()
        return CommunityName(name) if name else None
    if isinstance(value, dict):
        name = value.get("name")
        if not isinstance(name, str) or not name.strip():
            raise ValidationError("community object must have a non-empty name")
        return CommunityName(name.strip())
    raise ValidationError("community must be a name or an object with a name")


def parse_tags(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        # comma separated form input
        value = value.split(",")
    if not isinstance(value, list):
        raise ValidationError("tags must be a list of strings")

    tags = []
    for tag in value:
        if not isinstance(tag, str):
            raise ValidationError("tags must be a list of strings")
        tag = tag.strip()
        if not tag:
            continue
        if len(tag) > MAX_TAG_LENGTH:
            raise ValidationError(f"tag too long (max {MAX_TAG_LENGTH} characters): {tag[:20]}...")
        if tag not in tags:
            tags.append(tag)

    if len(tags) > MAX_TAGS:
        raise ValidationError(f"too many tags (max {MAX_TAGS})")
    return tags


def normalize_metadata(
    title: Any,
    description: Any = None,
    tags: Any = None,
    community: Any = None,
    decline_rewards: Any = False,
) -> VideoMetadata:
    if not isinstance(title, str) or not title.strip():
        raise ValidationError("title is required")
    title = title.strip()
    if len(title) > MAX_TITLE_LENGTH:
        raise ValidationError(f"title too long (max {MAX_TITLE_LENGTH} characters)")

    description = description or ""
    if not isinstance(description, str):
        raise ValidationError("description must be a string")
    if len(description) > MAX_DESCRIPTION_LENGTH:
        raise ValidationError(f"description too long (max {MAX_DESCRIPTION_LENGTH} characters)")

    return VideoMetadata(
        title=title,
        description=description,
        tags=parse_tags(tags),
        community=parse_community(community),
        decline_rewards=bool(decline_rewards),
    )
