"""
Line/column positions for validation issues.

Documents are pretty-printed with two-space indentation (the form sent to the
external validator) while recording where every key and array element starts.
Issues returned by the external server only carry FHIRPath-like locations, so
their positions are estimated by searching the printed text for the last path
segment.
"""
import copy
import json
import re
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..models.outcome import COLUMN_EXTENSION_URL, LINE_EXTENSION_URL, position_extensions

Position = Tuple[int, int]
PositionMap = Dict[Tuple[str, ...], Position]

INDENT = "  "
DEFAULT_POSITION: Position = (1, 1)

# FHIRPath prefixes and index brackets the validator adds to issue locations
_LOCATION_NOISE = (
    re.compile(r"^Parameters\.parameter\[\d+\]\.resource\."),
    re.compile(r"^TestScript\."),
    re.compile(r"\[\d+\]"),
)


def _container(value: Any) -> Optional[Tuple[str, str, List[Tuple[str, Any, bool]]]]:
    """Opener, closer and (segment, item, keyed) entries of a non-empty container."""
    if isinstance(value, dict) and value:
        return "{", "}", [(str(key), item, True) for key, item in value.items()]
    if isinstance(value, (list, tuple)) and value:
        return "[", "]", [(str(index), item, False) for index, item in enumerate(value)]
    return None


def render_document(document: Any) -> Tuple[str, PositionMap]:
    """
    Pretty-print a document exactly like json.dumps(indent=2) and map each
    path to its 1-based (line, column). Nesting is tracked on an explicit
    stack, so depth is bounded by memory rather than the recursion limit.
    """
    lines: List[str] = [""]
    positions: PositionMap = {(): DEFAULT_POSITION}
    # Open containers: [entries, next index, path, depth, closer]
    stack: List[list] = []

    def start(value: Any, path: Tuple[str, ...], depth: int) -> None:
        container = _container(value)
        if container is None:
            lines[-1] += json.dumps(value)
            return
        opener, closer, entries = container
        lines[-1] += opener
        stack.append([entries, 0, path, depth, closer])

    start(document, (), 0)
    while stack:
        frame = stack[-1]
        entries, index, path, depth, closer = frame
        if index == len(entries):
            stack.pop()
            lines.append(INDENT * depth + closer)
            continue

        frame[1] = index + 1
        if index:
            lines[-1] += ","
        segment, item, keyed = entries[index]
        padding = INDENT * (depth + 1)
        child = path + (segment,)
        lines.append(padding)
        positions[child] = (len(lines), len(padding) + 1)
        if keyed:
            lines[-1] += json.dumps(segment) + ": "
        start(item, child, depth + 1)

    return "\n".join(lines), positions


def locate(positions: PositionMap, location: Sequence[str]) -> Position:
    """Position of the deepest existing ancestor of location (the field itself if present)."""
    path = tuple(str(segment) for segment in location)
    while path:
        if path in positions:
            return positions[path]
        path = path[:-1]
    return positions.get((), DEFAULT_POSITION)


def extract_position(issue: Dict) -> Optional[Position]:
    """Read the operationoutcome-issue-line/-col extensions of an issue, if any."""
    line = column = None
    for extension in issue.get("extension") or ():
        if not isinstance(extension, dict):
            continue
        value = extension.get("valueInteger")
        if not isinstance(value, int) or isinstance(value, bool):
            continue
        if extension.get("url") == LINE_EXTENSION_URL:
            line = value
        elif extension.get("url") == COLUMN_EXTENSION_URL:
            column = value
    if line is None and column is None:
        return None
    return line or 1, column or 1


def clean_location(location: str) -> str:
    """Reduce a FHIRPath location to the JSON key it points at."""
    for pattern in _LOCATION_NOISE:
        location = pattern.sub("", location)
    return location.rsplit(".", 1)[-1].strip()


def _last_location(issue: Dict) -> Optional[str]:
    for key in ("location", "expression"):
        entries = issue.get(key)
        if isinstance(entries, list) and entries and isinstance(entries[-1], str):
            return entries[-1]
    return None


def estimate_position(text: str, location: Optional[str]) -> Position:
    """First line of text containing the location's key, or (1, 1)."""
    if not location:
        return DEFAULT_POSITION
    key = clean_location(location)
    if not key:
        return DEFAULT_POSITION
    needle = json.dumps(key)
    for number, line in enumerate(text.splitlines(), start=1):
        column = line.find(needle)
        if column >= 0:
            return number, column + 1
    return DEFAULT_POSITION


def enrich_outcome(outcome: Dict, text: str) -> Dict:
    """
    Return a copy of an OperationOutcome whose issues all carry line/col extensions.

    Positions reported by the server win when they point past (1, 1);
    otherwise the position is estimated from the printed document.
    """
    enriched = copy.deepcopy(outcome)
    issues = enriched.get("issue")
    if not isinstance(issues, list):
        return enriched

    for issue in issues:
        if not isinstance(issue, dict):
            continue
        position = extract_position(issue)
        if position is None or position <= DEFAULT_POSITION:
            position = estimate_position(text, _last_location(issue))
        others = [
            extension for extension in issue.get("extension") or ()
            if not (isinstance(extension, dict)
                    and extension.get("url") in (LINE_EXTENSION_URL, COLUMN_EXTENSION_URL))
        ]
        issue["extension"] = others + position_extensions(*position)
    return enriched
