"""
Normalization boundary for incoming field records.

Scanners hand over plain dicts (camelCase or snake_case keys) or arbitrary
objects. Everything is converted into one FieldDescriptor here; the core never
inspects the raw shapes.
"""

from __future__ import annotations

from typing import Any, Iterable, Mapping, Optional

from .models import FieldDescriptor, FieldNormalizationError, IndexSource, MLPrediction

# descriptor attribute -> accepted record keys, first present wins
_ALIASES: dict[str, tuple[str, ...]] = {
    "selector": ("selector", "cssSelector", "css_selector"),
    "name": ("name",),
    "dom_id": ("dom_id", "domId", "id"),
    "label": ("label", "labelText", "label_text"),
    "control_type": ("control_type", "controlType", "type", "tagName"),
    "parent_context": ("parent_context", "parentContext", "context"),
    "section_type": ("section_type", "sectionType"),
    "field_index": ("field_index", "fieldIndex", "index"),
    "index_source": ("index_source", "indexSource"),
    "is_strong_repeater": ("is_strong_repeater", "isStrongRepeater"),
    "in_repeater_container": ("in_repeater_container", "inRepeaterContainer", "isRepeater"),
    "group_id": ("group_id", "groupId", "parentGroupId", "parent_group_id"),
    "multiple": ("multiple", "isMultiple"),
    "placeholder": ("placeholder",),
    "options": ("options",),
    "ml_prediction": ("ml_prediction", "mlPrediction", "__ml_prediction"),
    "cache_label": ("cache_label", "cacheLabel"),
}


def _lookup(record: Any, keys: Iterable[str]) -> Any:
    for key in keys:
        if isinstance(record, Mapping):
            if key in record and record[key] is not None:
                return record[key]
        else:
            value = getattr(record, key, None)
            if value is not None:
                return value
    return None


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _index(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _index_source(value: Any, field_index: Optional[int]) -> IndexSource:
    if isinstance(value, IndexSource):
        return value
    text = _text(value).upper()
    if text in IndexSource.__members__:
        return IndexSource[text]
    return IndexSource.SYNTHETIC if field_index is not None else IndexSource.NONE


def coerce_prediction(value: Any) -> Optional[MLPrediction]:
    if value is None or isinstance(value, MLPrediction):
        return value
    label = _lookup(value, ("label", "type"))
    if not label:
        return None
    try:
        confidence = float(_lookup(value, ("confidence", "score")) or 0.0)
    except (TypeError, ValueError):
        confidence = 0.0
    return MLPrediction(label=str(label), confidence=confidence)


def _options(value: Any) -> list[str]:
    if not value:
        return []
    items: list[str] = []
    for option in value:
        if isinstance(option, Mapping):
            option = option.get("text") or option.get("label") or option.get("value")
        text = _text(option)
        if text:
            items.append(text)
    return items


def _section_type(value: Any) -> Optional[str]:
    text = _text(value).lower()
    return text or None


def normalize_field(record: Any) -> FieldDescriptor:
    """Convert a raw field record into a FieldDescriptor."""
    if isinstance(record, FieldDescriptor):
        return record
    if record is None:
        raise FieldNormalizationError("Field record is empty")

    raw = {attr: _lookup(record, keys) for attr, keys in _ALIASES.items()}
    name = _text(raw["name"])
    dom_id = _text(raw["dom_id"])
    selector = _text(raw["selector"])
    if not selector:
        if dom_id:
            selector = f"#{dom_id}"
        elif name:
            selector = f'[name="{name}"]'
        else:
            raise FieldNormalizationError(f"Field record has no selector, id or name: {record!r}")

    field_index = _index(raw["field_index"])
    return FieldDescriptor(
        selector=selector,
        name=name,
        dom_id=dom_id,
        label=_text(raw["label"]),
        control_type=(_text(raw["control_type"]) or "text").lower(),
        parent_context=_text(raw["parent_context"]),
        section_type=_section_type(raw["section_type"]),
        field_index=field_index,
        index_source=_index_source(raw["index_source"], field_index),
        is_strong_repeater=bool(raw["is_strong_repeater"]),
        in_repeater_container=bool(raw["in_repeater_container"]),
        group_id=_text(raw["group_id"]) or None,
        multiple=bool(raw["multiple"]),
        placeholder=_text(raw["placeholder"]),
        options=_options(raw["options"]),
        ml_prediction=coerce_prediction(raw["ml_prediction"]),
        cache_label=_text(raw["cache_label"]) or None,
    )


def normalize_fields(records: Iterable[Any]) -> list[FieldDescriptor]:
    return [normalize_field(record) for record in records]
