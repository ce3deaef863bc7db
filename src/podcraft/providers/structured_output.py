"""Schema-constrained output for chat models.

Every provider is driven through ``json_schema`` mode with the raw message
included, so token usage can be read from the same response that carries
the parsed object.

OpenAI's strict mode requires every property to appear in ``required``;
schemas sent there are post-processed by ``_make_all_required``.
"""

from __future__ import annotations

import copy
from typing import TYPE_CHECKING, Any

from podcraft.observability.logging import get_logger

if TYPE_CHECKING:
    from langchain_core.language_models import BaseChatModel
    from langchain_core.runnables import Runnable
    from pydantic import BaseModel

log = get_logger(__name__)

# JSON-schema keywords OpenAI strict mode rejects
_STRICT_UNSUPPORTED = ("minLength", "maxLength", "minItems", "maxItems", "pattern", "format")


def _make_all_required(schema: dict[str, Any], schema_name: str = "root") -> dict[str, Any]:
    """Post-process a JSON schema in place so strict mode accepts it.

    Marks all properties required, disallows extra properties and drops
    validation keywords strict mode does not support. Constraints are still
    enforced afterwards by pydantic on our side.

    Args:
        schema: JSON schema dict to modify in-place.
        schema_name: Name for logging.

    Returns:
        The modified schema.
    """
    for keyword in _STRICT_UNSUPPORTED:
        schema.pop(keyword, None)

    if "properties" in schema:
        schema["required"] = sorted(schema["properties"].keys())
        schema["additionalProperties"] = False
        for prop_name, prop_schema in schema["properties"].items():
            if isinstance(prop_schema, dict):
                _make_all_required(prop_schema, schema_name=f"{schema_name}.{prop_name}")

    if "items" in schema and isinstance(schema["items"], dict):
        _make_all_required(schema["items"], schema_name=f"{schema_name}[]")

    for key in ("anyOf", "allOf"):
        for sub in schema.get(key, []):
            if isinstance(sub, dict):
                _make_all_required(sub, schema_name=schema_name)

    if "$defs" in schema:
        for def_name, def_schema in schema["$defs"].items():
            if isinstance(def_schema, dict):
                _make_all_required(def_schema, schema_name=def_name)

    return schema


def build_json_schema(schema: type[BaseModel], provider_name: str) -> dict[str, Any]:
    """Derive the JSON schema sent to the provider for a pydantic model."""
    json_schema = schema.model_json_schema()
    if provider_name.lower().startswith("openai"):
        log.debug("applying_openai_strict_schema", schema=schema.__name__)
        # Deep copy first to avoid mutating pydantic's cached schema
        json_schema = _make_all_required(copy.deepcopy(json_schema), schema_name=schema.__name__)
    return json_schema


def with_structured_output(
    model: BaseChatModel,
    schema: type[BaseModel],
    provider_name: str,
) -> Runnable[Any, Any]:
    """Wrap a model so it returns output conforming to ``schema``.

    Args:
        model: Base chat model to configure.
        schema: Pydantic model class describing the output.
        provider_name: Provider name; OpenAI gets strict-mode schemas.

    Returns:
        Runnable whose ``ainvoke`` yields ``{"raw", "parsed", "parsing_error"}``.
    """
    is_openai = provider_name.lower().startswith("openai")
    return model.with_structured_output(
        build_json_schema(schema, provider_name),
        method="json_schema",
        include_raw=True,
        strict=True if is_openai else None,
    )
