"""
Reference extraction from reply text.

The FAQ prompt asks the model to finish with a line such as
``References: PolicyA.pdf, PolicyB.pdf``.  When no search results were
recorded for the turn, that trailing line is the only source of
references; a ``References:`` line followed by more text does not count.
"""

import re
from typing import List

_REFERENCES_RE = re.compile(r"^\s*references:\s*(.+)$", re.IGNORECASE)
_SPLIT_RE = re.compile(r"[,;]")


def extract_references(text: str) -> List[str]:
    """Names listed on the final non-blank line if it is a ``References:`` line."""
    lines = [line for line in (text or "").splitlines() if line.strip()]
    if not lines:
        return []
    match = _REFERENCES_RE.match(lines[-1])
    if match is None:
        return []
    refs: List[str] = []
    for part in _SPLIT_RE.split(match.group(1)):
        name = part.strip()
        if name and name not in refs:
            refs.append(name)
    return refs
