import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from .extractor import DEFAULT_LANGUAGE_PRIORITY, UNKNOWN_COLOR, is_empty
from .profiles import SupplierProfile, profile_for

logger = logging.getLogger(__name__)


@dataclass
class ColorGroup:
    color_code: str
    primary: dict
    members: List[dict] = field(default_factory=list)
    sizes_for_color: List[str] = field(default_factory=list)
    embroidery_sizes: Optional[List[str]] = None


def group_variants(
    children: Sequence[dict],
    parent_sku: str,
    profile: Optional[SupplierProfile] = None,
    language_priority: Sequence[str] = DEFAULT_LANGUAGE_PRIORITY,
) -> List[ColorGroup]:
    """
    Group child records by color code.

    Colors keep their first-seen order. Each group gets the sorted distinct
    sizes of all its members and one primary member (the first one unless
    the supplier profile says otherwise). Only the primary is persisted.
    """
    profile = profile or profile_for(parent_sku=parent_sku)
    buckets: Dict[str, List[Tuple[dict, Optional[str]]]] = {}

    for child in children or []:
        if not isinstance(child, dict):
            logger.warning("Ignoring malformed child record of %s: %r", parent_sku, child)
            continue
        color, size = profile.resolver(child, language_priority)
        key = str(color).strip() if not is_empty(color) else UNKNOWN_COLOR
        buckets.setdefault(key, []).append((child, size))

    groups = []
    for color_code, entries in buckets.items():
        members = [child for child, _ in entries]
        sizes = sorted({str(size).strip() for _, size in entries if not is_empty(size)})
        primary_index = profile.select_primary(members, language_priority)
        groups.append(ColorGroup(
            color_code=color_code,
            primary=members[primary_index],
            members=members,
            sizes_for_color=sizes,
            embroidery_sizes=profile.roll_up_service_sizes(members, language_priority),
        ))
        logger.debug(
            "%s color %s: %d member(s), sizes %s", parent_sku, color_code, len(members), sizes,
        )
    return groups
