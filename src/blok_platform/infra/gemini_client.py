"""Gemini model factory and response schemas for Blok agents."""

import copy

import google.generativeai as genai
from pydantic import BaseModel

from blok_platform.app.config import get_settings

# Annotations pydantic emits for our output models that Gemini rejects
_DROPPED_KEYS = ("title", "default")


def _inline_defs(schema: dict) -> dict:
    """Inline ``$defs`` references and drop annotations Gemini rejects.

    Only schema nodes are cleaned; property names are kept as-is, so a
    field that happens to be called ``title`` survives.
    """
    schema = copy.deepcopy(schema)
    defs = schema.pop("$defs", {})

    def _clean(node: dict) -> dict:
        if len(node.get("allOf", ())) == 1:
            node = {**node.pop("allOf")[0], **node}
        if "$ref" in node:
            node = copy.deepcopy(defs[node["$ref"].rsplit("/", 1)[-1]])
        for key in _DROPPED_KEYS:
            node.pop(key, None)
        if "properties" in node:
            node["properties"] = {
                name: _clean(sub) for name, sub in node["properties"].items()
            }
        if isinstance(node.get("items"), dict):
            node["items"] = _clean(node["items"])
        return node

    return _clean(schema)


def response_schema_for(model: type[BaseModel]) -> dict:
    """Gemini-ready response schema for a pydantic output model."""
    return _inline_defs(model.model_json_schema())


def get_model(
    model_name: str | None = None,
    temperature: float = 0.7,
    json_mode: bool = False,
    response_schema: dict | None = None,
    system_instruction: str | None = None,
):
    """Return a configured Gemini GenerativeModel instance.

    Args:
        model_name: Gemini model identifier. Defaults to ``settings.gemini_model``.
        temperature: Generation temperature (0.0-2.0).
        json_mode: If True, constrain output to valid JSON.
        response_schema: Gemini-ready schema, see ``response_schema_for``.
        system_instruction: Optional system-level instruction.

    Returns:
        A ``google.generativeai.GenerativeModel`` ready for generation.
    """
    settings = get_settings()
    genai.configure(api_key=settings.gemini_api_key)

    generation_config = {"temperature": temperature}
    if json_mode:
        generation_config["response_mime_type"] = "application/json"
        if response_schema:
            generation_config["response_schema"] = response_schema

    return genai.GenerativeModel(
        model_name=model_name or settings.gemini_model,
        generation_config=generation_config,
        system_instruction=system_instruction,
    )
