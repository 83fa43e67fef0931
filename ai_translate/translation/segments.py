"""
Segment extraction and merge-back for schema-described documents.

A document is walked attribute by attribute according to its content type
schema. Every translatable string becomes a Segment addressed by its path
(a list of keys and list indices). After translation, the same paths are used
to write the translated strings into a copy of the original document.

Example:
    >>> schema = {"attributes": {"title": {"type": "string",
    ...     "pluginOptions": {"i18n": {"localized": True}}}}}
    >>> collect_translatable_segments(schema, {}, {"title": "Hello"})
    [Segment(id='0', path=['title'], text='Hello')]
"""

import copy
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple, Union

from ai_translate.logger import get_logger

logger = get_logger(__name__)

PathSegment = Union[str, int]
Path = List[PathSegment]
Schema = Dict[str, Any]
ComponentsDictionary = Dict[str, Optional[Schema]]

TEXT_TYPES = ("string", "text", "richtext")
DYNAMIC_ZONE_KEY = "__component"


@dataclass
class Segment:
    """One addressable unit of translatable text."""
    id: str
    path: Path
    text: str


def format_path(path: Path) -> str:
    """Dotted representation of a path, e.g. features.0.title."""
    return ".".join(str(part) for part in path)


def is_plain_object(value: Any) -> bool:
    return isinstance(value, dict)


def is_attribute_localized(attribute: Optional[Dict[str, Any]]) -> bool:
    if not isinstance(attribute, dict):
        return False
    plugin_options = attribute.get("pluginOptions") or {}
    i18n = plugin_options.get("i18n") or {}
    return i18n.get("localized") is True


def is_schema_localized(schema: Optional[Schema]) -> bool:
    """Whether the content type itself has i18n enabled."""
    return is_attribute_localized(schema)


def get_attributes(schema: Optional[Schema]) -> Dict[str, Dict[str, Any]]:
    if not isinstance(schema, dict):
        return {}
    attributes = schema.get("attributes")
    return attributes if isinstance(attributes, dict) else {}


def resolve_component_schema(components: ComponentsDictionary, uid: Any) -> Optional[Schema]:
    """Component schema for uid, or None if unknown or without attributes."""
    if not isinstance(uid, str):
        return None
    component_schema = components.get(uid)
    if not get_attributes(component_schema):
        return None
    return component_schema


def extract_localized_top_level_fields(schema: Schema, data: Dict[str, Any]) -> Dict[str, Any]:
    """Only the top-level fields whose attribute is localized and present in data."""
    result = {}
    for key, attribute in get_attributes(schema).items():
        if not is_attribute_localized(attribute):
            continue
        if key not in data:
            continue
        result[key] = data[key]
    return result


def extract_top_level_media_fields(schema: Schema, data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Top-level media fields, copied verbatim from the source locale.

    Media is never translated, but carrying it over saves re-linking images
    by hand in the target locale.
    """
    result = {}
    for key, attribute in get_attributes(schema).items():
        if attribute.get("type") != "media":
            continue
        if key not in data:
            continue
        result[key] = data[key]
    return result


def collect_translatable_segments(
    schema: Schema,
    components: ComponentsDictionary,
    localized_data: Dict[str, Any],
    include_json: bool = False,
) -> List[Segment]:
    """
    Walk the localized fields of a document and return its text segments in
    document order.

    Args:
        schema: Content type schema
        components: Component schemas keyed by uid
        localized_data: Document reduced to its localized top-level fields
        include_json: Also translate every string inside json attributes

    Returns:
        Ordered list of segments; ids are "0", "1", ... for this call only
    """
    segments: List[Segment] = []

    def push_segment(path: Path, text: str):
        if not text.strip():
            return
        segments.append(Segment(id=str(len(segments)), path=path, text=text))

    def walk_blocks(value: Any, base_path: Path):
        if isinstance(value, list):
            for index, item in enumerate(value):
                walk_blocks(item, base_path + [index])
            return
        if is_plain_object(value):
            for key, child in value.items():
                child_path = base_path + [key]
                if key == "text" and isinstance(child, str):
                    push_segment(child_path, child)
                    continue
                walk_blocks(child, child_path)

    def walk_json(value: Any, base_path: Path):
        if isinstance(value, str):
            push_segment(base_path, value)
            return
        if isinstance(value, list):
            for index, item in enumerate(value):
                walk_json(item, base_path + [index])
            return
        if is_plain_object(value):
            for key, child in value.items():
                walk_json(child, base_path + [key])

    def walk_media_item(item: Any, item_path: Path):
        if not is_plain_object(item):
            return
        alternative_text = item.get("alternativeText")
        if isinstance(alternative_text, str):
            push_segment(item_path + ["alternativeText"], alternative_text)
        caption = item.get("caption")
        if isinstance(caption, str):
            push_segment(item_path + ["caption"], caption)

    def walk_media(value: Any, base_path: Path):
        if isinstance(value, list):
            for index, item in enumerate(value):
                walk_media_item(item, base_path + [index])
            return
        if is_plain_object(value) and "data" in value:
            nested = value["data"]
            if isinstance(nested, list):
                for index, item in enumerate(nested):
                    walk_media_item(item, base_path + ["data", index])
                return
            walk_media_item(nested, base_path + ["data"])
            return
        walk_media_item(value, base_path)

    def walk_component(uid: Any, value: Any, base_path: Path, stack: Tuple[str, ...]):
        if uid in stack:
            logger.debug(f"Skipping recursive component {uid} at {format_path(base_path)}")
            return
        component_schema = resolve_component_schema(components, uid)
        if component_schema is None:
            return
        walk_schema(component_schema, value, base_path, stack + (uid,))

    def walk_by_attribute(attribute: Dict[str, Any], value: Any, base_path: Path, stack: Tuple[str, ...]):
        if value is None:
            return

        attribute_type = attribute.get("type")
        if attribute_type in TEXT_TYPES:
            if isinstance(value, str):
                push_segment(base_path, value)
        elif attribute_type == "blocks":
            walk_blocks(value, base_path)
        elif attribute_type == "json":
            if include_json:
                walk_json(value, base_path)
        elif attribute_type == "component":
            uid = attribute.get("component")
            if attribute.get("repeatable"):
                if not isinstance(value, list):
                    return
                for index, item in enumerate(value):
                    walk_component(uid, item, base_path + [index], stack)
                return
            walk_component(uid, value, base_path, stack)
        elif attribute_type == "dynamiczone":
            if not isinstance(value, list):
                return
            for index, item in enumerate(value):
                if not is_plain_object(item):
                    continue
                walk_component(item.get(DYNAMIC_ZONE_KEY), item, base_path + [index], stack)
        elif attribute_type == "media":
            walk_media(value, base_path)

    def walk_schema(current_schema: Schema, value: Any, base_path: Path, stack: Tuple[str, ...]):
        if not is_plain_object(value):
            return
        for key, attribute in get_attributes(current_schema).items():
            walk_by_attribute(attribute, value.get(key), base_path + [key], stack)

    for key, attribute in get_attributes(schema).items():
        if not is_attribute_localized(attribute):
            continue
        walk_by_attribute(attribute, localized_data.get(key), [key], ())

    return segments


def _get_child(container: Any, key: PathSegment) -> Any:
    if isinstance(container, list) and isinstance(key, int) and not isinstance(key, bool):
        if 0 <= key < len(container):
            return container[key]
        return None
    if is_plain_object(container) and isinstance(key, str):
        return container.get(key)
    return None


def _set_child(container: Any, key: PathSegment, value: Any) -> bool:
    if isinstance(container, list) and isinstance(key, int) and not isinstance(key, bool):
        if 0 <= key < len(container):
            container[key] = value
            return True
        return False
    if is_plain_object(container) and isinstance(key, str):
        container[key] = value
        return True
    return False


def apply_segment_translations(
    localized_data: Dict[str, Any],
    segments: List[Segment],
    translations_by_id: Dict[str, str],
) -> Dict[str, Any]:
    """
    Write translated strings back at their segment paths.

    Works on a deep copy; the input is never modified. Segments without a
    translation keep their source text. A segment whose parent path no longer
    resolves to a container is skipped.
    """
    result = copy.deepcopy(localized_data)

    for segment in segments:
        translated = translations_by_id.get(segment.id)
        if not isinstance(translated, str) or not segment.path:
            continue

        current: Any = result
        for part in segment.path[:-1]:
            current = _get_child(current, part)
            if current is None:
                break
        if current is None or not _set_child(current, segment.path[-1], translated):
            logger.debug(f"Skipping segment {segment.id}: path {format_path(segment.path)} no longer resolves")

    return result


def build_populate(schema: Schema, components: ComponentsDictionary) -> Dict[str, Any]:
    """
    Build the populate tree needed to fetch everything the walker may visit.

    Components and dynamic zones are populated recursively; media and
    relations are populated one level. A component that is already being
    expanded on the current branch is populated shallowly to break cycles.
    """

    def populate_for(current_schema: Schema, stack: Tuple[str, ...]) -> Dict[str, Any]:
        populate: Dict[str, Any] = {}
        for key, attribute in get_attributes(current_schema).items():
            attribute_type = attribute.get("type")
            if attribute_type in ("media", "relation"):
                populate[key] = True
            elif attribute_type == "component":
                populate[key] = component_populate(attribute.get("component"), stack)
            elif attribute_type == "dynamiczone":
                on = {}
                for uid in attribute.get("components") or []:
                    on[uid] = component_populate(uid, stack)
                populate[key] = {"on": on}
        return populate

    def component_populate(uid: Any, stack: Tuple[str, ...]) -> Any:
        component_schema = resolve_component_schema(components, uid)
        if component_schema is None or uid in stack:
            return True
        nested = populate_for(component_schema, stack + (uid,))
        return {"populate": nested} if nested else True

    return populate_for(schema, ())
