"""
Component instance identity removal.

When a translated document is written into a target locale that does not own
the source's component instances yet, re-submitting their ids makes the host
reject the write ("components are not related to the entity"). Only component
and dynamic zone instances are stripped; media and relation ids point at
independent resources and are kept.
"""

import copy
from typing import Any, Dict, Tuple

from ai_translate.translation.segments import (
    DYNAMIC_ZONE_KEY,
    ComponentsDictionary,
    Schema,
    get_attributes,
    is_attribute_localized,
    is_plain_object,
    resolve_component_schema,
)

INSTANCE_IDENTITY_KEYS = ("id", "createdAt", "updatedAt", "publishedAt", "createdBy", "updatedBy")


def strip_component_instance_ids(
    schema: Schema,
    components: ComponentsDictionary,
    localized_data: Dict[str, Any],
) -> Dict[str, Any]:
    """Return a deep copy of localized_data without component instance identity fields."""
    result = copy.deepcopy(localized_data)

    def strip_component_value(uid: str, component_schema: Schema, value: Any, stack: Tuple[str, ...]) -> Any:
        if not is_plain_object(value):
            return value

        for key in INSTANCE_IDENTITY_KEYS:
            value.pop(key, None)

        if uid in stack:
            return value
        for key, attribute in get_attributes(component_schema).items():
            if key in value:
                value[key] = strip_by_attribute(attribute, value[key], stack + (uid,))
        return value

    def strip_by_attribute(attribute: Dict[str, Any], value: Any, stack: Tuple[str, ...]) -> Any:
        if value is None:
            return value

        attribute_type = attribute.get("type")
        if attribute_type == "component":
            uid = attribute.get("component")
            component_schema = resolve_component_schema(components, uid)
            if component_schema is None:
                return value
            if attribute.get("repeatable"):
                if not isinstance(value, list):
                    return value
                return [strip_component_value(uid, component_schema, item, stack) for item in value]
            return strip_component_value(uid, component_schema, value, stack)

        if attribute_type == "dynamiczone":
            if not isinstance(value, list):
                return value
            stripped = []
            for item in value:
                if not is_plain_object(item):
                    stripped.append(item)
                    continue
                uid = item.get(DYNAMIC_ZONE_KEY)
                component_schema = resolve_component_schema(components, uid)
                if component_schema is None:
                    stripped.append(item)
                    continue
                stripped.append(strip_component_value(uid, component_schema, item, stack))
            return stripped

        return value

    for key, attribute in get_attributes(schema).items():
        if not is_attribute_localized(attribute):
            continue
        if key in result:
            result[key] = strip_by_attribute(attribute, result[key], ())

    return result
