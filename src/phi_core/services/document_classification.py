"""Upload-time classification of evidence for medical-provider visibility.

Some categories (police reports, body/dash camera footage, photographs,
health insurance cards) are never privileged clinical narrative, so they are
flagged visible to medical providers when uploaded. The flag is stored on the
row and is not re-evaluated on read.

The keyword match is case-insensitive substring matching on the free-text
evidence type, kept as-is until product confirms a closed category list.
"""

from typing import Dict, FrozenSet, Optional, Tuple

# Case-insensitive substrings of the evidence type
AUTO_APPROVED_KEYWORDS: Tuple[str, ...] = (
    "police",
    "body cam",
    "body camera",
    "bodycam",
    "dash cam",
    "dash camera",
    "dashcam",
    "photo",
    "picture",
    "insurance card",
    "health insurance",
)

AUTO_APPROVED_CATEGORY_CODES: FrozenSet[str] = frozenset(
    {"pre-1", "pre-2", "pre-3", "pre-4", "pre-5"}
)

# Known evidence type names and their category codes
EVIDENCE_CATEGORY_CODES: Dict[str, str] = {
    "police report": "pre-1",
    "accident report": "pre-1",
    "body camera": "pre-2",
    "body cam footage": "pre-2",
    "dash camera": "pre-3",
    "dash cam footage": "pre-3",
    "photos": "pre-4",
    "pictures": "pre-4",
    "accident photos": "pre-4",
    "health insurance": "pre-5",
    "insurance card": "pre-5",
}


def category_code_for(evidence_type: Optional[str]) -> Optional[str]:
    """Look up the category code of a known evidence type name."""
    if not evidence_type:
        return None
    return EVIDENCE_CATEGORY_CODES.get(evidence_type.strip().lower())


def is_auto_approved_for_provider(
    evidence_type: Optional[str], category_code: Optional[str] = None
) -> bool:
    """Whether an upload is visible to medical providers regardless of scope."""
    if category_code and category_code.lower() in AUTO_APPROVED_CATEGORY_CODES:
        return True
    if not evidence_type:
        return False
    lowered = evidence_type.lower()
    return any(keyword in lowered for keyword in AUTO_APPROVED_KEYWORDS)
