"""Turn free-form model replies into validated pydantic models.

Every parser returns None (or an empty list) instead of raising, so callers
treat an unusable reply the same as a provider failure and fall back.
"""

import json
import logging
import re
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

_FENCE_RE = re.compile(r"^```[a-zA-Z]*\s*\n?(.*?)\n?```$", re.DOTALL)
_SPANS = {dict: re.compile(r"\{.*\}", re.DOTALL), list: re.compile(r"\[.*\]", re.DOTALL)}


def _unfence(text: str | None) -> str:
    content = (text or "").strip()
    fenced = _FENCE_RE.match(content)
    return fenced.group(1).strip() if fenced else content


def _decode(text: str | None, kind: type) -> Any:
    content = _unfence(text)
    candidates = [content]
    # Prose around the payload: fall back to the widest bracketed span
    span = _SPANS[kind].search(content)
    if span and span.group(0) != content:
        candidates.append(span.group(0))

    for candidate in candidates:
        try:
            data = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(data, kind):
            return data
    logger.warning("Model reply held no JSON %s", kind.__name__)
    return None


def parse_json_object(text: str | None) -> dict | None:
    return _decode(text, dict)


def parse_json_array(text: str | None) -> list | None:
    return _decode(text, list)


def validate_model(model_cls: type[M], data: dict | None) -> M | None:
    if data is None:
        return None
    try:
        return model_cls.model_validate(data)
    except ValidationError as exc:
        logger.warning("%s rejected model output (%s errors)", model_cls.__name__, exc.error_count())
        return None


def validate_model_list(model_cls: type[M], items: list | None) -> list[M]:
    """Keep the items that validate; skip the rest."""
    models = (validate_model(model_cls, item) for item in items or [] if isinstance(item, dict))
    return [model for model in models if model is not None]
