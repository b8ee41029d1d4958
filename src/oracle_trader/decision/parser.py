"""
Decision parser - extracts a JSON decision object from inference text.

Strategies, tried in order:
1. direct  - the whole (stripped) text is a JSON object
2. bracket - first balanced {...} block that loads as an object
3. regex   - flat objects containing a "decision" key, after stripping
             // comments and trailing commas

Each strategy returns a ParseResult; no exception crosses a strategy
boundary.
"""

import json
import logging
import re
from typing import Iterator, List, Tuple

from oracle_trader.decision.models import ParseResult, Parsed, Unparseable

logger = logging.getLogger(__name__)

TRAILING_COMMA_RE = re.compile(r",\s*([}\]])")
DECISION_OBJECT_RE = re.compile(r"\{[^{}]*\"decision\"[^{}]*\}", re.DOTALL)


def _load_object(candidate: str, strategy: str) -> ParseResult:
    try:
        value = json.loads(candidate)
    except (json.JSONDecodeError, ValueError) as e:
        return Unparseable(reason=f"{strategy}: {e}")

    if not isinstance(value, dict):
        return Unparseable(reason=f"{strategy}: expected a JSON object, got {type(value).__name__}")

    return Parsed(payload=value, strategy=strategy)


def _balanced_blocks(text: str) -> Iterator[str]:
    """Yield every balanced {...} substring in order of its opening brace (single pass)."""
    opens: List[int] = []
    spans: List[Tuple[int, int]] = []
    in_string = False
    escaped = False

    for index, char in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue

        # Quotes only open strings inside a brace
        if char == '"' and opens:
            in_string = True
        elif char == "{":
            opens.append(index)
        elif char == "}" and opens:
            spans.append((opens.pop(), index + 1))

    for start, end in sorted(spans):
        yield text[start:end]


def strip_line_comments(text: str) -> str:
    """Remove // comments outside of JSON strings."""
    result: List[str] = []
    in_string = False
    escaped = False
    i = 0
    while i < len(text):
        char = text[i]
        if in_string:
            result.append(char)
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            i += 1
            continue

        if char == '"':
            in_string = True
        elif char == "/" and text.startswith("//", i):
            newline = text.find("\n", i)
            if newline == -1:
                break
            i = newline
            continue

        result.append(char)
        i += 1

    return "".join(result)


def parse_direct(text: str) -> ParseResult:
    return _load_object(text.strip(), "direct")


def parse_bracket(text: str) -> ParseResult:
    for block in _balanced_blocks(text):
        result = _load_object(block, "bracket")
        if isinstance(result, Parsed):
            return result
    return Unparseable(reason="bracket: no balanced JSON object")


def parse_regex(text: str) -> ParseResult:
    cleaned = TRAILING_COMMA_RE.sub(r"\1", strip_line_comments(text))
    for match in DECISION_OBJECT_RE.finditer(cleaned):
        result = _load_object(match.group(0), "regex")
        if isinstance(result, Parsed):
            return result
    return Unparseable(reason="regex: no object with a decision key")


STRATEGIES = (parse_direct, parse_bracket, parse_regex)


def parse_decision(text) -> ParseResult:
    """
    Extract a decision payload from inference output.

    Args:
        text: Raw response text

    Returns:
        Parsed(payload, strategy) or Unparseable(reason)
    """
    if not isinstance(text, str) or not text.strip():
        return Unparseable(reason="empty response")

    reasons = []
    for strategy in STRATEGIES:
        result = strategy(text)
        if isinstance(result, Parsed):
            if result.strategy != "direct":
                logger.debug(f"Decision extracted with {result.strategy} strategy")
            return result
        reasons.append(result.reason)

    logger.warning(f"Could not parse decision ({len(text)} chars): {'; '.join(reasons)}")
    return Unparseable(reason="; ".join(reasons))
