import json
import re
from typing import Any, Callable, Optional

import json_repair

from proposal_engine.utils.core.log import get_logger

"""
Script intended for validating and correcting JSON from LLM output.
"""


def _strip_code_fence(raw: str) -> str:
    """Drop a surrounding ```json ... ``` fence if the model added one."""
    m = re.match(r"^\s*```[a-zA-Z]*\s*\n?(.*?)\n?\s*```\s*$", raw, re.DOTALL)
    return m.group(1) if m else raw


def clean_malformed_json(raw: str) -> str:
    """
    Regex scrub run before the repair parser.

    The heuristics are idempotent - running twice is safe.
    """
    raw = _strip_code_fence(raw.strip())

    # fix '}, ], {' breaks in arrays
    raw = re.sub(r"\},\s*\],\s*\{", r"}, {", raw)

    # replace raw control characters (0x00-0x1F) with space
    return re.sub(r"(?<!\\)[\x00-\x08\x0B\x0C\x0E-\x1F]", " ", raw)


def _parse_strict(raw: str) -> Any:
    return json.loads(raw.strip())


def _parse_repaired(raw: str) -> Any:
    """
    json_repair fixes bare keys, single quotes, trailing commas, unescaped
    inner quotes and truncated output. It returns "" instead of raising when
    it finds nothing to repair, so anything but an object or array counts
    as a failure here.
    """
    value = json_repair.loads(clean_malformed_json(raw))
    if not isinstance(value, (dict, list)) or not value:
        raise ValueError("json_repair found no object or array")
    return value


def _parse_braced(raw: str) -> Any:
    start = raw.find("{")
    end = raw.rfind("}")
    if start == -1 or end == -1 or end <= start:
        raise ValueError("no brace-delimited object found")
    return json.loads(raw[start : end + 1])


PARSE_STRATEGIES: tuple[tuple[str, Callable[[str], Any]], ...] = (
    ("strict", _parse_strict),
    ("repair", _parse_repaired),
    ("braces", _parse_braced),
)


def extract_json(raw: str, *, label: Optional[str] = None) -> Any:
    """
    Parse model output with the ordered strategies in PARSE_STRATEGIES,
    returning the first success. When every strategy fails the original
    strict-parse error is raised.
    """
    logger = get_logger()
    primary_error: Exception | None = None

    for name, strategy in PARSE_STRATEGIES:
        try:
            value = strategy(raw)
        except ValueError as e:
            if primary_error is None:
                primary_error = e
                logger.warning(
                    f"Failed to parse JSON response ({label or 'json'}): {e}; "
                    f"head={raw[:200]!r}"
                )
            else:
                logger.debug(f"[extract_json] {name} strategy failed: {e}")
            continue
        if name != "strict":
            logger.debug(f"[extract_json] recovered via {name} strategy")
        return value

    raise primary_error
