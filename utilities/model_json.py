import json
import re

_FENCE = re.compile(r"^\s*```[a-zA-Z]*\s*(.*?)\s*```\s*$", re.DOTALL)


def strip_code_fences(text):
    """Return the body of a Markdown code fence, or the text itself if unfenced."""
    match = _FENCE.match(text)
    return (match.group(1) if match else text).strip()


def _first_object(text):
    """Slice out the first balanced ``{...}`` in text, or None."""
    start = text.find('{')
    if start == -1:
        return None
    depth = 0
    for end, ch in enumerate(text[start:], start):
        if ch == '{':
            depth += 1
        elif ch == '}':
            depth -= 1
            if depth == 0:
                return text[start:end + 1]
    return None


def extract_json(text):
    """Load the JSON the model returned, tolerating fences and surrounding prose.

    Raises:
        ValueError: when no JSON can be recovered.
    """
    if text is None:
        raise ValueError("No text to parse")
    cleaned = strip_code_fences(text)
    try:
        return json.loads(cleaned)
    except ValueError:
        block = _first_object(cleaned)
        if block is None:
            raise ValueError("No JSON object found in model output")
        return json.loads(block)


def parse_model_json(text, default=None):
    """Parse a model reply that should be a JSON object; ``default`` on any failure."""
    try:
        value = extract_json(text)
    except ValueError:
        return default
    return value if isinstance(value, dict) else default
