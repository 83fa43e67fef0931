"""
Translation utility functions for chunking and JSON extraction.
Provides batching of segments and recovery of JSON from model output.
"""

import json
import re
from typing import Any, Dict, List

from ai_translate.ai.exceptions import OutputMalformedError
from ai_translate.translation.segments import Segment, is_plain_object

FENCED_BLOCK_PATTERN = re.compile(r"```[A-Za-z0-9_-]*[ \t]*\r?\n([\s\S]*?)\r?\n[ \t]*```")


def chunk_segments(segments: List[Segment], max_segments: int, max_chars: int) -> List[List[Segment]]:
    """
    Split segments into batches bounded by item count and total text length.

    Greedy, left to right. A segment longer than max_chars still gets a batch
    of its own; segments are never split or dropped.

    Args:
        segments: Ordered segments
        max_segments: Maximum segments per batch
        max_chars: Maximum total characters per batch

    Returns:
        List of batches; concatenated they equal the input
    """
    chunks: List[List[Segment]] = []
    current: List[Segment] = []
    current_chars = 0

    for segment in segments:
        length = len(segment.text)
        would_overflow = (
            len(current) >= max_segments
            or (current and current_chars + length > max_chars)
        )

        if would_overflow:
            chunks.append(current)
            current = []
            current_chars = 0

        current.append(segment)
        current_chars += length

    # Add the last chunk if it has items
    if current:
        chunks.append(current)

    return chunks


def parse_json_from_model_output(raw: str) -> Any:
    """
    Parse JSON from model output with fallback strategies.

    Tries, in order:
    1. Direct parse
    2. Contents of a fenced code block (```json ... ``` or ``` ... ```)
    3. The text between the first '{' and the last '}'

    Raises:
        OutputMalformedError: if nothing parses
    """
    text = (raw or "").strip()
    if not text:
        raise OutputMalformedError("The AI backend returned no content")

    # Strategy 1: Direct parse
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass

    # Strategy 2: Fenced code block
    fenced = FENCED_BLOCK_PATTERN.search(text)
    if fenced:
        try:
            return json.loads(fenced.group(1))
        except json.JSONDecodeError:
            pass

    # Strategy 3: Outermost braces
    first_brace = text.find("{")
    last_brace = text.rfind("}")
    if first_brace >= 0 and last_brace > first_brace:
        try:
            return json.loads(text[first_brace:last_brace + 1])
        except json.JSONDecodeError:
            pass

    raise OutputMalformedError(
        "Could not parse JSON from the AI response",
        details={"response_preview": text[:200]},
    )


def extract_translations_by_id(parsed: Any) -> Dict[str, str]:
    """
    Read {"segments": [{"id", "text"}]} into an id -> text map.

    Entries whose id or text is not a string are skipped.

    Raises:
        OutputMalformedError: if the envelope itself is wrong
    """
    if not is_plain_object(parsed):
        raise OutputMalformedError("The AI response is not a JSON object")

    parsed_segments = parsed.get("segments")
    if not isinstance(parsed_segments, list):
        raise OutputMalformedError("The AI response JSON has no segments array")

    translations_by_id: Dict[str, str] = {}
    for item in parsed_segments:
        if not is_plain_object(item):
            continue
        segment_id = item.get("id")
        text = item.get("text")
        if not isinstance(segment_id, str) or not isinstance(text, str):
            continue
        translations_by_id[segment_id] = text

    return translations_by_id
