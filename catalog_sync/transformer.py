import hashlib
import json
import logging
from typing import Any, List, Optional, Sequence, Tuple

from .extractor import (
    DEFAULT_LANGUAGE_PRIORITY,
    clean_text,
    configuration_color_size,
    declared_sku,
    extract_localized,
    first_language_value,
    first_non_empty,
    first_present,
    get_nested,
    is_empty,
    language_values,
    map_localized,
    ordered_languages,
    supplier_color_code,
)
from .grouping import ColorGroup
from .manifest import product_code_from_url
from .profiles import DEFAULT_PROFILE, SupplierProfile

logger = logging.getLogger(__name__)

PHYSICAL_FIELDS = (
    ('weight', 'Weight'),
    ('dimensions_length', 'DimensionsLength'),
    ('dimensions_height', 'DimensionsHeight'),
    ('dimensions_width', 'DimensionsWidth'),
    ('dimensions_depth', 'DimensionsDepth'),
    ('dimensions_diameter', 'DimensionsDiameter'),
)

TRUE_STRINGS = frozenset({'true', '1', 'yes', 'y', 'ja', 'on'})

ImageSource = Tuple[str, Optional[str]]


def compute_hash(payload: Any) -> str:
    """Stable SHA-256 of a JSON-able structure; key order does not matter."""
    serialized = json.dumps(payload, sort_keys=True, ensure_ascii=False, default=str)
    return hashlib.sha256(serialized.encode('utf-8')).hexdigest()


def _text(value: Any) -> str:
    if value is None:
        return ''
    return str(value).strip()


def _to_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip().replace(',', '.')
        if not value:
            return None
    try:
        return float(value)
    except (TypeError, ValueError):
        logger.debug("Non-numeric physical value %r ignored.", value)
        return None


def _to_bool(value: Any) -> bool:
    """Feed flags arrive as booleans, numbers or strings such as "false"."""
    if isinstance(value, str):
        return value.strip().lower() in TRUE_STRINGS
    if isinstance(value, (list, dict)):
        return False
    return bool(value)


def _unquote_or_join(value: Any) -> str:
    """'"FSC"' -> 'FSC', ['FSC', 'CE'] -> 'FSC, CE', other objects -> JSON."""
    if isinstance(value, str):
        trimmed = value.strip()
        if len(trimmed) > 1 and trimmed.startswith('"') and trimmed.endswith('"'):
            return trimmed[1:-1]
        return value
    if isinstance(value, list):
        return ', '.join(str(v) for v in value)
    if not value:
        return ''
    return json.dumps(value, sort_keys=True)


def _first_default_product(value: Any) -> str:
    """DefaultProducts is either a SKU or a {region: SKU} map; keep the first SKU."""
    if isinstance(value, str):
        return value
    if isinstance(value, dict) and value:
        return _text(next(iter(value.values())))
    return ''


def physical_attributes(*sources: Optional[dict]) -> dict:
    """First present value per attribute across `sources`; zero is a value."""
    attrs = {}
    for field_name, doc_key in PHYSICAL_FIELDS:
        values = [_to_float(source.get(doc_key)) for source in sources if isinstance(source, dict)]
        attrs[field_name] = first_present(*values)
    return attrs


def extract_product_code(doc: dict, url: Optional[str] = None) -> Optional[str]:
    code = first_non_empty(doc.get('Sku'), doc.get('SupplierSku'))
    if code is None and url:
        code = product_code_from_url(url) or None
    if code is None:
        code = first_non_empty(*(doc.get(key) for key in ('SKU', 'Code', 'ProductCode', 'ItemCode', 'ArtNr')))
    return _text(code) or None


def build_parent_payload(
    doc: dict,
    product_code: str,
    content_hash: str,
    supplier_name: str = '',
    language_priority: Sequence[str] = DEFAULT_LANGUAGE_PRIORITY,
) -> dict:
    """Project a parent document onto ParentProduct fields (supplier excluded)."""
    structured = doc.get('NonLanguageDependedProductDetails') or {}
    children = doc.get('ChildProducts')
    sku = _text(doc.get('Sku')) or product_code
    brand = _text(structured.get('Brand'))

    payload = {
        'sku': sku,
        'a_number': _text(doc.get('ANumber')),
        'supplier_sku': _text(doc.get('SupplierSku')),
        'supplier_name': supplier_name or _text(get_nested(doc, 'UnstructuredInformation.SupplierNameToShow')),
        'brand': brand,
        'category': _text(structured.get('Category')),
        'default_products': _first_default_product(doc.get('DefaultProducts')),
        'variant_count': len(children) if isinstance(children, list) else 0,
        'content_hash': (content_hash or '').strip(),
        'customs_tariff_number': _text(structured.get('CustomsTariffNumber')),
        'battery_information': _unquote_or_join(doc.get('BatteryInformation')),
        'required_certificates': _unquote_or_join(doc.get('RequiredCertificates')),
        'name': extract_localized(doc, 'Name', language_priority, fallback=brand or sku),
        'description': map_localized(
            extract_localized(doc, 'Description', language_priority), clean_text
        ),
    }
    payload.update(physical_attributes(structured, doc))
    return payload


def derive_variant_sku(
    child: dict,
    parent_sku: str,
    profile: SupplierProfile = DEFAULT_PROFILE,
    language_priority: Sequence[str] = DEFAULT_LANGUAGE_PRIORITY,
) -> Optional[str]:
    """
    The variant SKU, from what the child declares or composed from the parent.

    Falls back to `<parent>-<A_number>`, then `<parent>-<color>-<size>` and
    `<parent>-<color>`. None when nothing can be derived.
    """
    sku = declared_sku(child, language_priority)
    if sku:
        return sku
    if not parent_sku:
        return None
    if not is_empty(child.get('A_number')):
        return f"{parent_sku}-{_text(child['A_number'])}"

    color_code = supplier_color_code(child, language_priority)
    _, size = profile.resolver(child, language_priority)
    size_code = ''.join(ch for ch in _text(size) if ch.isalnum())
    if color_code and size_code:
        return f"{parent_sku}-{color_code}-{size_code}"
    if color_code:
        return f"{parent_sku}-{color_code}"
    return None


def image_sources(child: dict, language_priority: Sequence[str] = DEFAULT_LANGUAGE_PRIORITY):
    """(primary image, gallery images) as (url, original filename) pairs, deduplicated by URL."""
    primary: Optional[ImageSource] = None
    gallery: List[ImageSource] = []
    seen = set()
    details = child.get('ProductDetails')
    if not isinstance(details, dict):
        return primary, gallery

    for lang in ordered_languages(details, language_priority):
        lang_details = details.get(lang) or {}
        image = lang_details.get('Image') or {}
        if primary is None and image.get('Url'):
            primary = (image['Url'], image.get('FileName'))
        for item in lang_details.get('MediaGalleryImages') or []:
            url = item.get('Url') if isinstance(item, dict) else None
            if url and url not in seen:
                seen.add(url)
                gallery.append((url, item.get('FileName')))
    return primary, gallery


def _color_and_size(child: dict, language_priority: Sequence[str]) -> Tuple[str, str]:
    color, size = configuration_color_size(child, language_priority)
    color = first_non_empty(
        color,
        get_nested(child, 'UnstructuredInformation.SupplierColorName'),
        get_nested(child, 'UnstructuredInformation.SupplierSearchColor'),
        get_nested(child, 'NonLanguageDependedProductDetails.SearchColor'),
        get_nested(child, 'NonLanguageDependedProductDetails.SupplierColorName'),
        get_nested(child, 'NonLanguageDependedProductDetails.Color'),
        first_language_value(child, 'UnstructuredInformation.SupplierColorName', language_priority),
        first_language_value(child, 'UnstructuredInformation.SupplierSearchColor', language_priority),
    )
    size = first_non_empty(
        size,
        get_nested(child, 'UnstructuredInformation.SupplierSize'),
        get_nested(child, 'NonLanguageDependedProductDetails.Size'),
        first_language_value(child, 'UnstructuredInformation.SupplierSize', language_priority),
    )
    return _text(color), _text(size)


def build_variant_payload(
    group: ColorGroup,
    variant_sku: str,
    parent_doc: dict,
    profile: SupplierProfile = DEFAULT_PROFILE,
    language_priority: Sequence[str] = DEFAULT_LANGUAGE_PRIORITY,
) -> dict:
    """Project the primary child of a color group onto ProductVariant fields (parent and images excluded)."""
    child = group.primary
    structured = child.get('NonLanguageDependedProductDetails') or {}
    filters = structured.get('ProductFiltersByGroup') or {}
    color, size = _color_and_size(child, language_priority)

    def lang_value(path):
        return first_language_value(child, path, language_priority)

    payload = {
        'sku': variant_sku,
        'name': language_values(child, 'Name', language_priority),
        'description': map_localized(language_values(child, 'Description', language_priority), clean_text),
        'short_description': map_localized(
            language_values(child, 'ShortDescription', language_priority), clean_text
        ),
        'meta_name': language_values(child, 'MetaName', language_priority),
        'material': language_values(child, 'WebShopInformation.Material.InformationValue', language_priority),
        'color': color,
        'size': size,
        'supplier_search_color': _text(first_non_empty(
            get_nested(child, 'UnstructuredInformation.SupplierSearchColor'),
            structured.get('SearchColor'),
            lang_value('UnstructuredInformation.SupplierSearchColor'),
            color,
        )),
        'supplier_color_code': _text(supplier_color_code(child, language_priority)),
        'hex_color': _text(first_non_empty(
            get_nested(child, 'UnstructuredInformation.HexColor'),
            structured.get('HexColor'),
            lang_value('UnstructuredInformation.HexColor'),
        )),
        'country_of_origin': _text(first_non_empty(
            lang_value('WebShopInformation.CountryOfOrigin.InformationValue'),
            structured.get('CountryOfOrigin'),
        )),
        'production_time': _text(lang_value('WebShopInformation.ProductionTimeInformationText.InformationValue')),
        'compliance': _text(lang_value('WebShopInformation.Compliance.InformationValue')),
        'imprint_required': _to_bool(lang_value('ImportantInformation.ImprintRequired')),
        'fragile': _to_bool(structured.get('Fragile')),
        'usb_item': _to_bool(structured.get('USBItem')),
        'eco': _to_bool(filters.get('Eco')),
        'new_product': _to_bool(filters.get('NewProduct')),
        'sizes_for_color': list(group.sizes_for_color),
        'is_primary_for_color': True,
        'is_service_base': bool(profile.is_service_base(variant_sku)),
        'embroidery_sizes': group.embroidery_sizes or profile.service_sizes(variant_sku),
    }
    payload.update(physical_attributes(
        structured, child, parent_doc.get('NonLanguageDependedProductDetails') or {},
    ))
    return payload
