import json
import re
from typing import Any, Dict, Optional

_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)


def parse_llm_json_response(raw_text: str) -> dict:
    """Parse JSON from a model response, handling markdown code fences.

    Raises:
        json.JSONDecodeError: If the text cannot be parsed as JSON
    """
    content = raw_text.strip()

    # Strip leading markdown fence (```json or ```)
    if content.startswith("```"):
        content = content.split("\n", 1)[1] if "\n" in content else content[3:]

    # Strip trailing fence
    if content.endswith("```"):
        content = content.rsplit("```", 1)[0]

    return json.loads(content.strip())


def try_parse_json_object(raw_text: str) -> Optional[Dict[str, Any]]:
    """Best-effort extraction of a JSON object, also from text with prose around it"""

    if not raw_text:
        return None

    try:
        parsed = parse_llm_json_response(raw_text)
    except json.JSONDecodeError:
        match = _JSON_OBJECT.search(raw_text)
        if match is None:
            return None
        try:
            parsed = json.loads(match.group(0))
        except json.JSONDecodeError:
            return None

    return parsed if isinstance(parsed, dict) else None
