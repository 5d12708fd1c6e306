"""
Fragfolio Backend — JSON Extraction from LLM Text
===================================================

What:  Pulls a JSON document out of free-form model output.
Why:   Notes and attribute requests are answered in plain text, and tool
       calls occasionally degrade to text. Models wrap JSON in code fences,
       add prose around it, or get cut off at max_tokens.

Extraction order:
    1. ```json fenced block
    2. ``` fenced block
    3. outermost {...} or [...], whichever opens first
    4. the whole text
    Each candidate goes through repair_truncated_json() before parsing.
    If nothing parses, salvage_suggestions() regex-extracts suggestion fields.
"""

import json
import logging
import re
from typing import Any, Dict, List

logger = logging.getLogger(__name__)

_JSON_FENCE_RE = re.compile(r"```json\s*(.*?)\s*```", re.DOTALL)
_ANY_FENCE_RE = re.compile(r"```\s*(.*?)\s*```", re.DOTALL)
_OBJECT_RE = re.compile(r"\{.*\}", re.DOTALL)
_ARRAY_RE = re.compile(r"\[.*\]", re.DOTALL)

_SUGGESTIONS_OPEN_RE = re.compile(r'"suggestions":\s*\[')
_OPEN_STRING_RE = re.compile(r':\s*"[^"]*$')
_OPEN_LAST_OBJECT_RE = re.compile(r'"suggestions":\s*\[.*\{[^}]*$', re.DOTALL)
_CLOSED_ARRAY_RE = re.compile(r'"suggestions":\s*\[.*\]', re.DOTALL)


class JSONExtractionError(ValueError):
    """Model output contained no recoverable JSON."""


def repair_truncated_json(text: str) -> str:
    """
    Close a JSON document that was cut off mid-stream.

    Only the shapes the providers actually produce are handled: an object,
    optionally holding a "suggestions" array, or a bare array.
    """
    text = text.strip()

    if text.startswith("{") and not text.endswith("}"):
        text = text.rstrip(" \n\r\t,")
        if _SUGGESTIONS_OPEN_RE.search(text):
            if _OPEN_STRING_RE.search(text):
                text += '"}]}'
            elif _OPEN_LAST_OBJECT_RE.search(text):
                text = text.rstrip('"') + "}]}"
            elif not _CLOSED_ARRAY_RE.search(text):
                text += "]}"
            else:
                text += "}"
        else:
            text = text.rstrip('"') + "}"

    if text.startswith("[") and not text.endswith("]"):
        text = text.rstrip(" \n\r\t,") + "]"

    return text


def _candidates(content: str) -> List[str]:
    found = []
    for pattern in (_JSON_FENCE_RE, _ANY_FENCE_RE):
        match = pattern.search(content)
        if match:
            found.append(match.group(1))
    # outermost document first: whichever bracket opens earlier
    matches = [m for m in (_OBJECT_RE.search(content), _ARRAY_RE.search(content)) if m]
    found.extend(m.group(0) for m in sorted(matches, key=lambda m: m.start()))
    found.append(content)
    return found


def extract_json(content: str) -> Any:
    """
    Parse the first recoverable JSON document in content.

    Raises:
        JSONExtractionError: when no candidate parses, even after repair.
    """
    for candidate in _candidates(content or ""):
        try:
            return json.loads(repair_truncated_json(candidate))
        except json.JSONDecodeError:
            continue
    raise JSONExtractionError("No JSON document found in model output")


def salvage_suggestions(content: str) -> Dict[str, List[Dict[str, Any]]]:
    """
    Last resort for completion output: regex out suggestion fields and zip
    them by position. Entries missing text, text_en or confidence are dropped.
    """
    texts = re.findall(r'"text":\s*"([^"]+)"', content)
    texts_en = re.findall(r'"text_en":\s*"([^"]+)"', content)
    confidences = re.findall(r'"confidence":\s*([0-9.]+)', content)
    brands = re.findall(r'"brand_name":\s*"([^"]*)"', content)
    brands_en = re.findall(r'"brand_name_en":\s*"([^"]*)"', content)

    suggestions = []
    for i in range(min(len(texts), len(texts_en), len(confidences))):
        try:
            confidence = float(confidences[i])
        except ValueError:
            confidence = 0.0
        suggestion = {
            "text": texts[i],
            "text_en": texts_en[i],
            "confidence": confidence,
            "type": "fragrance",
            "source": "extracted",
        }
        if i < len(brands) and brands[i]:
            suggestion["brand_name"] = brands[i]
        if i < len(brands_en) and brands_en[i]:
            suggestion["brand_name_en"] = brands_en[i]
        suggestions.append(suggestion)

    if suggestions:
        logger.warning("Salvaged %d suggestions from unparseable model output", len(suggestions))
    return {"suggestions": suggestions}


def parse_model_json(content: str) -> Dict[str, Any]:
    """extract_json() for object-shaped answers, falling back to salvage."""
    try:
        data = extract_json(content)
    except JSONExtractionError:
        logger.warning("Model output JSON parsing failed, salvaging fields")
        return salvage_suggestions(content or "")
    if isinstance(data, list):
        return {"suggestions": data}
    return data
