"""
Declarative per-supplier behaviour.

A profile bundles the color/size resolver, the primary-selection rule and the
post-processing rules of one supplier. Suppliers without an entry use
DEFAULT_PROFILE.
"""
import re
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence

from .extractor import (
    DEFAULT_LANGUAGE_PRIORITY,
    ColorSizeResolver,
    declared_sku,
    default_color_size_resolver,
    sku_pattern_resolver,
)

EMBROIDERY_SKU_RE = re.compile(r'^BOR(\d+)')
ROLLUP_SKU_RE = re.compile(r'BOR(\w+)', re.IGNORECASE)
SALES_SKU_RE = re.compile(r'BLSales$', re.IGNORECASE)
A461_SKU_RE = re.compile(r'^A461-\d+-(?P<color>\d+)-(?P<size>\d+)$')


def first_member(members: Sequence[dict], language_priority: Sequence[str] = DEFAULT_LANGUAGE_PRIORITY) -> int:
    return 0


def expand_embroidery_sizes(sku: str) -> Optional[List[str]]:
    """`BOR3` -> ['BOR1', 'BOR2', 'BOR3']; None for any other SKU."""
    match = EMBROIDERY_SKU_RE.match(sku or '')
    if not match:
        return None
    return [f"BOR{i}" for i in range(1, int(match.group(1)) + 1)]


def is_sales_base(sku: str) -> bool:
    return (sku or '').startswith('BLSales')


def no_rollup(members: Sequence[dict], language_priority: Sequence[str] = DEFAULT_LANGUAGE_PRIORITY) -> Optional[List[str]]:
    return None


@dataclass(frozen=True)
class SupplierProfile:
    code: str
    resolver: ColorSizeResolver = default_color_size_resolver
    select_primary: Callable[..., int] = first_member
    roll_up_service_sizes: Callable[..., Optional[List[str]]] = no_rollup
    is_service_base: Callable[[str], bool] = is_sales_base
    service_sizes: Callable[[str], Optional[List[str]]] = expand_embroidery_sizes


# ---------------------------------------------------------------------------
# A73: one "sales" SKU per color carries the embroidery options of the group
# ---------------------------------------------------------------------------

def sales_sku_member(members: Sequence[dict], language_priority: Sequence[str] = DEFAULT_LANGUAGE_PRIORITY) -> int:
    for index, member in enumerate(members):
        if SALES_SKU_RE.search(declared_sku(member, language_priority) or ''):
            return index
    return 0


def embroidery_option_sizes(members: Sequence[dict], language_priority: Sequence[str] = DEFAULT_LANGUAGE_PRIORITY):
    sizes = set()
    for member in members:
        match = ROLLUP_SKU_RE.search(declared_sku(member, language_priority) or '')
        if match:
            sizes.add(match.group(1))
    return sorted(sizes) or None


A73_PROFILE = SupplierProfile(
    code='A73',
    select_primary=sales_sku_member,
    roll_up_service_sizes=embroidery_option_sizes,
    is_service_base=lambda sku: bool(SALES_SKU_RE.search(sku or '')),
)

A461_PROFILE = SupplierProfile(
    code='A461',
    resolver=sku_pattern_resolver(A461_SKU_RE),
)

DEFAULT_PROFILE = SupplierProfile(code='*')

PROFILES: Dict[str, SupplierProfile] = {
    profile.code: profile for profile in (A73_PROFILE, A461_PROFILE)
}


def profile_for(supplier_code: Optional[str] = None, parent_sku: Optional[str] = None) -> SupplierProfile:
    """Look up by supplier code, else by the code prefix of the parent SKU."""
    if supplier_code and supplier_code in PROFILES:
        return PROFILES[supplier_code]
    if parent_sku:
        prefix = parent_sku.split('-', 1)[0]
        if prefix in PROFILES:
            return PROFILES[prefix]
    return DEFAULT_PROFILE
