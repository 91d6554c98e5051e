"""
Change detection for application submissions.

An application's hash covers its identity snapshot and its ordered answers.
Resubmitting identical content produces the same hash, which lets the
submission path skip the write (and therefore the next sheet sync).
"""

import hashlib
import json
from typing import Any, Dict, Iterable, List

# Serialization order of the hashed fields. Changing it changes every hash.
HASHED_FIELDS = (
    "name",
    "email",
    "phone",
    "registrationNumber",
    "college",
    "year",
    "department",
)


def _text(value: Any) -> str:
    if value is None:
        return ""
    if hasattr(value, "value"):  # Enum members
        value = value.value
    return str(value).strip()


def _answers(answers: Iterable[Any]) -> List[List[str]]:
    normalized = []
    for answer in answers or []:
        if hasattr(answer, "model_dump"):
            answer = answer.model_dump()
        text = answer.get("answerText")
        # answers are stored verbatim, so whitespace edits count as changes
        normalized.append([_text(answer.get("questionId")), "" if text is None else str(text)])
    return normalized


def canonical_application(payload: Dict[str, Any]) -> str:
    """Serialize the hashed content of an application deterministically."""
    content = [[field, _text(payload.get(field))] for field in HASHED_FIELDS]
    # emails are stored lower-cased, so hash them that way too
    content[1][1] = content[1][1].lower()
    content.append(["answers", _answers(payload.get("answers"))])
    return json.dumps(content, ensure_ascii=False, separators=(",", ":"))


def compute_application_hash(payload: Dict[str, Any]) -> str:
    """Compute MD5 hash of an application's content for change detection."""
    return hashlib.md5(canonical_application(payload).encode("utf-8")).hexdigest()
