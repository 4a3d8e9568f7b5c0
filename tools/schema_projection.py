"""
Schema projection for preconfigured actions.

A preconfigured action exposes to the model only the parameters the workflow
author left open: those without a preset value, and those whose preset value
is the placeholder sentinel. The projection is shallow; nested object and
array sub-schemas are copied as-is.

Task schemas come from pydantic and are first translated into the subset of
JSON schema that tool calling models accept: ``type``, ``description``,
``enum``, ``properties``, ``required`` and ``items``.
"""

import copy
import logging
from typing import Any, Dict, FrozenSet, List, Mapping

from bridge.exceptions import ToolConfigurationError
from tools.tool_models import LLM_PLACEHOLDER

logger = logging.getLogger(__name__)

# Keywords copied verbatim by the translation; nested schemas are translated recursively.
SCALAR_KEYWORDS = ("type", "description", "enum")
COMBINATORS = ("anyOf", "oneOf", "allOf")


def to_tool_schema(schema: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Translate a pydantic JSON schema into the tool parameter subset.

    ``$ref`` targets are inlined from ``$defs``, a combinator collapses into its
    first non-null branch (so ``Optional[X]`` becomes ``X``), a ``const``
    becomes a one-value ``enum`` and every other keyword is dropped,
    ``title`` and ``default`` included.
    """
    return _translate(schema, schema.get("$defs", {}), frozenset())


def _resolve(node: Dict[str, Any], definitions: Mapping[str, Any], seen: FrozenSet[str]):
    """Inline references and collapse combinators until neither is left at the top of the node."""
    while True:
        if "$ref" in node:
            ref = node.pop("$ref")
            name = ref.rsplit("/", 1)[-1]
            if name in seen:
                raise ToolConfigurationError(f"Recursive schema reference '{ref}' cannot be exposed as a tool parameter")
            if name not in definitions:
                raise ToolConfigurationError(f"Unresolvable schema reference '{ref}'")
            seen = seen | {name}
            # keywords set beside the reference (description) win over the definition's
            node = {**definitions[name], **node}
            continue

        combinator = next((key for key in COMBINATORS if key in node), None)
        if combinator is None:
            return node, seen
        branches = node.pop(combinator) or []
        chosen = next((branch for branch in branches if branch.get("type") != "null"), None)
        if chosen is not None:
            node = {**chosen, **node}


def _translate(schema: Mapping[str, Any], definitions: Mapping[str, Any], seen: FrozenSet[str]) -> Dict[str, Any]:
    node, seen = _resolve(dict(schema), definitions, seen)

    translated = {key: node[key] for key in SCALAR_KEYWORDS if key in node}
    if "const" in node and "enum" not in translated:
        translated["enum"] = [node["const"]]
    if "properties" in node:
        translated["properties"] = {
            name: _translate(prop, definitions, seen) for name, prop in node["properties"].items()
        }
    if "required" in node:
        translated["required"] = list(node["required"])
    if "items" in node:
        translated["items"] = _translate(node["items"], definitions, seen)
    return translated


def is_placeholder(value: Any) -> bool:
    return isinstance(value, str) and value == LLM_PLACEHOLDER


def is_open(name: str, presets: Mapping[str, Any]) -> bool:
    """A parameter is open when it has no preset value or its preset is the placeholder."""
    return name not in presets or is_placeholder(presets[name])


def open_parameters(schema: Mapping[str, Any], presets: Mapping[str, Any]) -> List[str]:
    return [name for name in schema.get("properties", {}) if is_open(name, presets)]


def placeholder_parameters(presets: Mapping[str, Any]) -> List[str]:
    return [name for name, value in presets.items() if is_placeholder(value)]


def project_schema(schema: Mapping[str, Any], presets: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Remove from a parameter schema every property already fixed by a preset.

    Args:
        schema: Full object schema with ``properties`` and ``required``
        presets: Preset values of the action

    Returns:
        A new schema; the input schema is left untouched
    """
    projected = copy.deepcopy(dict(schema))
    properties = projected.get("properties") or {}
    required = projected.get("required") or []

    projected["properties"] = {
        name: prop for name, prop in properties.items() if is_open(name, presets)
    }
    projected["required"] = [name for name in required if is_open(name, presets)]
    projected.setdefault("type", "object")
    return projected
