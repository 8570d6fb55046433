"""Best-effort score reader for legacy answer payloads.

The authoritative score is ``response.score``, written at submission time.
This reader only runs when that column is empty, mining whatever the historical
``answers`` blob recorded. It never raises.

Precedence, first match wins:

1. ``answers.score``, ``answers.meta.score``, ``answers.summary.score``
2. the first of ``items`` / ``questions`` / ``responses`` that is a list:
   the sum of element ``score`` fields when any element has one
3. otherwise the count of elements flagged ``correct`` or ``isCorrect``.
   This is a raw count, not a percentage.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional

from classroom.common.utils import safe_json_loads, to_finite_number

_DIRECT_PATHS = (("score",), ("meta", "score"), ("summary", "score"))
_ARRAY_FIELDS = ("items", "questions", "responses")


def _dig(blob: Mapping[str, Any], path: tuple) -> Any:
    node: Any = blob
    for key in path:
        if not isinstance(node, Mapping):
            return None
        node = node.get(key)
    return node


def _whole(value: float) -> float | int:
    return int(value) if value.is_integer() else value


def extract_score(answers: Any) -> Optional[float | int]:
    if isinstance(answers, (str, bytes)):
        answers = safe_json_loads(answers)
    if not isinstance(answers, Mapping):
        return None

    for path in _DIRECT_PATHS:
        number = to_finite_number(_dig(answers, path))
        if number is not None:
            return _whole(number)

    elements = None
    for field in _ARRAY_FIELDS:
        candidate = answers.get(field)
        if isinstance(candidate, list):
            elements = [e for e in candidate if isinstance(e, Mapping)]
            break
    if elements is None:
        return None

    scored = [to_finite_number(e.get("score")) for e in elements if "score" in e]
    scored = [s for s in scored if s is not None]
    if scored:
        return _whole(float(sum(scored)))

    flagged = [e for e in elements if "correct" in e or "isCorrect" in e]
    if flagged:
        return sum(1 for e in flagged if e.get("correct") is True or e.get("isCorrect") is True)
    return None


__all__ = ["extract_score"]
