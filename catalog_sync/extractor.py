"""
Side-effect-free helpers that pull values out of raw product documents.

Nothing in here raises for missing data: absent paths yield None or an empty
mapping and callers decide on business fallbacks.
"""
import re
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Pattern, Sequence, Tuple

DEFAULT_LANGUAGE_PRIORITY = ('en', 'nl')
UNKNOWN_COLOR = 'unknown'

COLOR_TERMS = ('color', 'colour', 'kleur', 'couleur')
SIZE_TERMS = ('size', 'maat', 'taille', 'afmeting')

LocalizedText = Dict[str, Any]
ColorSizeResolver = Callable[[dict, Sequence[str]], Tuple[Optional[str], Optional[str]]]

_BR_RE = re.compile(r'<br\s*/?>', re.IGNORECASE)
_TAG_RE = re.compile(r'<[^>]*>')
_ENTITIES = (
    ('&lt;', '<'),
    ('&gt;', '>'),
    ('&quot;', '"'),
    ('&#39;', "'"),
    ('&nbsp;', ' '),
    ('&amp;', '&'),  # last, so "&amp;lt;" decodes to "&lt;" and not "<"
)


def get_nested(obj: Any, path: str) -> Any:
    """Follow a dot separated path through nested dicts; None when any hop is missing."""
    if obj is None or not path:
        return None
    current = obj
    for key in path.split('.'):
        if not isinstance(current, dict):
            return None
        current = current.get(key)
        if current is None:
            return None
    return current


def is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, dict)):
        return not value
    return False


def first_present(*values: Any) -> Any:
    """First value that is not None. Zero and False count as present."""
    for value in values:
        if value is not None:
            return value
    return None


def first_non_empty(*values: Any) -> Any:
    for value in values:
        if not is_empty(value):
            return value
    return None


def ordered_languages(available: Iterable[str], priority: Sequence[str]) -> List[str]:
    """Priority languages that are available, then the remaining ones in document order."""
    available = list(available)
    ordered = [lang for lang in priority if lang in available]
    ordered += [lang for lang in available if lang not in priority]
    return ordered

# ---------------------------------------------------------------------------
# Localized field extraction
# ---------------------------------------------------------------------------


def _from_unstructured(doc: dict, path: str, priority: Sequence[str]) -> Iterator[Tuple[Optional[str], Any]]:
    yield None, get_nested(doc.get('UnstructuredInformation'), path)


def _from_structured(doc: dict, path: str, priority: Sequence[str]) -> Iterator[Tuple[Optional[str], Any]]:
    yield None, get_nested(doc.get('NonLanguageDependedProductDetails'), path)


def _from_language_details(doc: dict, path: str, priority: Sequence[str]) -> Iterator[Tuple[Optional[str], Any]]:
    details = doc.get('ProductDetails')
    if not isinstance(details, dict):
        return
    for lang in ordered_languages(details, priority):
        yield lang, get_nested(details.get(lang), path)

# Evaluated in order; a strategy yields (language or None, value) pairs.
FIELD_STRATEGIES = (
    ('unstructured', _from_unstructured),
    ('structured', _from_structured),
    ('per_language', _from_language_details),
)


def extract_localized(
    doc: dict,
    path: str,
    language_priority: Sequence[str] = DEFAULT_LANGUAGE_PRIORITY,
    fallback: Any = None,
    strategies: Optional[Sequence[str]] = None,
) -> LocalizedText:
    """
    Collect one value per language for `path`.

    Language independent blocks are consulted first and only decide the
    primary value. If no language specific value exists the primary value
    (else `fallback`) is emitted under the first priority language. The
    returned mapping lists languages in priority order.
    """
    priority = list(language_priority) or list(DEFAULT_LANGUAGE_PRIORITY)
    result: LocalizedText = {}
    primary = None

    if isinstance(doc, dict):
        for name, strategy in FIELD_STRATEGIES:
            if strategies is not None and name not in strategies:
                continue
            for lang, value in strategy(doc, path, priority):
                if is_empty(value):
                    continue
                if primary is None:
                    primary = value
                if lang is not None and lang not in result:
                    result[lang] = value

    if result:
        return result
    value = primary if primary is not None else fallback
    if is_empty(value):
        return {}
    return {priority[0]: value}


def language_values(doc: dict, path: str, language_priority: Sequence[str] = DEFAULT_LANGUAGE_PRIORITY) -> LocalizedText:
    """Only the per-language values of `path`, without any fallback."""
    return extract_localized(doc, path, language_priority, strategies=('per_language',))


def pick_localized(text: Optional[LocalizedText], language_priority: Sequence[str] = DEFAULT_LANGUAGE_PRIORITY) -> Any:
    """Resolve a localized mapping to a single value: preferred languages, then any remaining."""
    if not text:
        return None
    for lang in ordered_languages(text, language_priority):
        if not is_empty(text[lang]):
            return text[lang]
    return None


def first_language_value(doc: dict, path: str, language_priority: Sequence[str] = DEFAULT_LANGUAGE_PRIORITY) -> Any:
    return pick_localized(language_values(doc, path, language_priority), language_priority)


def map_localized(text: LocalizedText, fn: Callable[[Any], Any]) -> LocalizedText:
    return {lang: fn(value) for lang, value in text.items()}

# ---------------------------------------------------------------------------
# HTML cleaning
# ---------------------------------------------------------------------------


def clean_text(html: Any) -> str:
    """Turn a supplier HTML fragment into plain text, keeping line and paragraph breaks."""
    if not html or not isinstance(html, str):
        return ''
    text = html.replace('\r\n', '\n').replace('\r', '\n')
    text = _BR_RE.sub('\n', text)
    text = re.sub(r'\n\s*\n', '\n\n', text)
    text = _TAG_RE.sub('', text)
    for entity, char in _ENTITIES:
        text = text.replace(entity, char)
    text = re.sub(r'[ \t]+', ' ', text)
    text = re.sub(r'\n[ \t]+', '\n', text)
    text = re.sub(r'[ \t]+\n', '\n', text)
    text = re.sub(r'\n{3,}', '\n\n', text)
    return text.strip()

# ---------------------------------------------------------------------------
# Color / size decoding
# ---------------------------------------------------------------------------


def _matches(name: Optional[str], terms: Sequence[str]) -> bool:
    return bool(name) and any(term in name for term in terms)


def _translated_name(field: dict, language: str) -> Optional[str]:
    translated = field.get('ConfigurationNameTranslated')
    if isinstance(translated, dict):
        translated = translated.get(language.lower())
    return translated.lower() if isinstance(translated, str) else None


def parse_configuration_fields(fields: Any, language: str = 'en') -> Tuple[Optional[str], Optional[str]]:
    """Pick (color, size) out of a ConfigurationFields list by localized field name."""
    color = size = None
    if not isinstance(fields, list):
        return color, size

    for field in fields:
        if not isinstance(field, dict):
            continue
        value = field.get('ConfigurationValue')
        if is_empty(value):
            continue
        name = field.get('ConfigurationName')
        name = name.lower() if isinstance(name, str) else None
        translated = _translated_name(field, language)

        if color is None and (_matches(name, COLOR_TERMS) or _matches(translated, COLOR_TERMS)):
            color = str(value)
        elif size is None and (_matches(name, SIZE_TERMS) or _matches(translated, SIZE_TERMS)):
            size = str(value)
        if color and size:
            break
    return color, size


def configuration_color_size(child: dict, language_priority: Sequence[str] = DEFAULT_LANGUAGE_PRIORITY):
    """(color, size) from ConfigurationFields, walking languages in priority order."""
    color = size = None
    details = child.get('ProductDetails') if isinstance(child, dict) else None
    if not isinstance(details, dict):
        return color, size
    for lang in ordered_languages(details, language_priority):
        fields = get_nested(details.get(lang), 'ConfigurationFields')
        parsed_color, parsed_size = parse_configuration_fields(fields, lang)
        color = color or parsed_color
        size = size or parsed_size
        if color and size:
            break
    return color, size


def supplier_color_code(child: dict, language_priority: Sequence[str] = DEFAULT_LANGUAGE_PRIORITY) -> Optional[str]:
    code = first_non_empty(
        get_nested(child, 'UnstructuredInformation.SupplierColorCode'),
        first_language_value(child, 'UnstructuredInformation.SupplierColorCode', language_priority),
    )
    return str(code) if code is not None else None


def default_color_size_resolver(child: dict, language_priority: Sequence[str] = DEFAULT_LANGUAGE_PRIORITY):
    """Color code from SupplierColorCode or a color-named configuration field; size from configuration."""
    config_color, size = configuration_color_size(child, language_priority)
    color = supplier_color_code(child, language_priority) or config_color
    return color, size


def sku_pattern_resolver(pattern: Pattern) -> ColorSizeResolver:
    """
    Resolver decoding the color from the child SKU itself.

    `pattern` must define a `color` group and may define a `size` group; the
    size still prefers the configuration fields. Children whose SKU does not
    match fall back to the default resolver.
    """
    def resolve(child: dict, language_priority: Sequence[str] = DEFAULT_LANGUAGE_PRIORITY):
        sku = child.get('Sku') if isinstance(child, dict) else None
        match = pattern.match(sku) if isinstance(sku, str) else None
        if not match:
            return default_color_size_resolver(child, language_priority)
        _, config_size = configuration_color_size(child, language_priority)
        groups = match.groupdict()
        return groups.get('color'), config_size or groups.get('size')

    return resolve


def declared_sku(child: dict, language_priority: Sequence[str] = DEFAULT_LANGUAGE_PRIORITY) -> Optional[str]:
    """The SKU a child record declares about itself, if any."""
    if not isinstance(child, dict):
        return None
    sku = first_non_empty(
        first_language_value(child, 'Sku', language_priority),
        child.get('Sku'),
        child.get('SupplierSku'),
        get_nested(child, 'NonLanguageDependedProductDetails.Sku'),
    )
    return str(sku).strip() if sku is not None else None
