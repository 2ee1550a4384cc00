"""
Defensive JSON recovery for LLM responses

Models wrap JSON in prose and markdown fences and sometimes stop mid-object
when they hit max_tokens. recover_json tries three tiers in order:

1. direct parse of the whole text
2. fenced-block extraction (```json ... ```), repairing an unterminated fence
3. balanced-bracket scan for the first {...} or [...] fragment that parses
"""

import json
import logging
import re
from typing import Any, List, Optional, Tuple

from scoring.errors import JSONRecoveryError

logger = logging.getLogger(__name__)

FENCED_BLOCK = re.compile(r'```(?:json|JSON)?\s*(.*?)```', re.DOTALL)
OPEN_FENCE = re.compile(r'```(?:json|JSON)?\s*([\{\[].*)', re.DOTALL)

_CLOSERS = {'{': '}', '[': ']'}
_MAX_REPAIR_CANDIDATES = 50


def parse_direct(text: str) -> Optional[Any]:
    """Tier 1: the response is already pure JSON"""
    try:
        value = json.loads(text.strip())
    except (json.JSONDecodeError, AttributeError):
        return None
    return value if isinstance(value, (dict, list)) else None


def parse_fenced(text: str) -> Optional[Any]:
    """Tier 2: JSON inside a markdown code fence, possibly cut off before the closing fence"""
    for match in FENCED_BLOCK.finditer(text):
        value = parse_direct(match.group(1))
        if value is not None:
            return value

    match = OPEN_FENCE.search(text)
    if match and '```' not in match.group(1):
        value = repair_truncated(match.group(1))
        if value is not None:
            logger.info("Recovered JSON from truncated fenced block")
            return value
    return None


def parse_balanced(text: str) -> Optional[Any]:
    """Tier 3: first balanced {...} or [...] fragment anywhere in the text"""
    for start, char in enumerate(text):
        if char not in _CLOSERS:
            continue
        end = match_brackets(text, start)
        if end is None:
            continue
        value = parse_direct(text[start:end + 1])
        if value is not None:
            return value
    return None


def match_brackets(text: str, start: int) -> Optional[int]:
    """
    Return the index of the bracket closing the one at text[start], or None
    if the text ends first. Brackets inside strings are ignored.
    """
    end, _ = _scan_value(text, start)
    return end


def _scan_value(text: str, pos: int) -> Tuple[Optional[int], int]:
    """
    Recursive descent over one bracketed value starting at pos.
    Returns (closing index or None, position reached).
    """
    closer = _CLOSERS[text[pos]]
    i = pos + 1
    while i < len(text):
        char = text[i]
        if char == '"':
            i = _skip_string(text, i)
            if i is None:
                return None, len(text)
            continue
        if char in _CLOSERS:
            end, reached = _scan_value(text, i)
            if end is None:
                return None, reached
            i = end + 1
            continue
        if char == closer:
            return i, i
        if char in '}]':
            # mismatched closer: not a well-formed fragment
            return None, i
        i += 1
    return None, len(text)


def _skip_string(text: str, pos: int) -> Optional[int]:
    """Index just past the string literal opening at pos, None if unterminated"""
    i = pos + 1
    while i < len(text):
        if text[i] == '\\':
            i += 2
            continue
        if text[i] == '"':
            return i + 1
        i += 1
    return None


def _open_state(fragment: str) -> Tuple[List[str], bool, List[int]]:
    """Open brackets, whether we end inside a string, and top-level-ish comma offsets"""
    stack: List[str] = []
    commas: List[int] = []
    in_string = False
    escaped = False
    for i, char in enumerate(fragment):
        if in_string:
            if escaped:
                escaped = False
            elif char == '\\':
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char in _CLOSERS:
            stack.append(char)
        elif char in '}]' and stack:
            stack.pop()
        elif char == ',' and stack:
            commas.append(i)
    return stack, in_string, commas


def _close(fragment: str) -> str:
    stack, in_string, _ = _open_state(fragment)
    if in_string:
        fragment += '"'
    fragment = fragment.rstrip()
    while fragment.endswith(','):
        fragment = fragment[:-1].rstrip()
    if fragment.endswith(':'):
        fragment += ' null'
    return fragment + ''.join(_CLOSERS[c] for c in reversed(stack))


def repair_truncated(fragment: str) -> Optional[Any]:
    """
    Close a JSON value that was cut off mid-stream.

    First tries closing the fragment as-is; then backs off to each earlier
    comma so a half-written trailing member is dropped.
    """
    fragment = fragment.rstrip()
    value = parse_direct(_close(fragment))
    if value is not None:
        return value

    _, _, commas = _open_state(fragment)
    for offset in list(reversed(commas))[:_MAX_REPAIR_CANDIDATES]:
        value = parse_direct(_close(fragment[:offset]))
        if value is not None:
            return value
    return None


def recover_json(text: str) -> Any:
    """
    Parse an LLM response into a dict or list.

    Raises:
        JSONRecoveryError: when none of the three tiers yields JSON
    """
    if not text or not text.strip():
        raise JSONRecoveryError("Empty response")

    for tier, parser in (('direct', parse_direct), ('fenced', parse_fenced), ('balanced', parse_balanced)):
        value = parser(text)
        if value is not None:
            if tier != 'direct':
                logger.debug(f"JSON recovered via {tier} tier")
            return value

    # Last resort: an unfenced response that was truncated
    start = min((i for i in (text.find('{'), text.find('[')) if i >= 0), default=-1)
    if start >= 0:
        value = repair_truncated(text[start:])
        if value is not None:
            logger.info("Recovered JSON from truncated unfenced response")
            return value

    raise JSONRecoveryError(f"Could not recover JSON from response: {text[:200]!r}")
