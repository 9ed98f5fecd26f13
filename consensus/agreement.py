"""Agreement detection and the consensus threshold."""

import math
from collections.abc import Callable

# text -> "does this turn express agreement?"; must be pure.
Classifier = Callable[[str], bool]

AGREEMENT_PHRASES: tuple[str, ...] = (
    "i agree",
    "that works",
    "good approach",
    "let's go with",
    "i think we're aligned",
    "that covers it",
    "nothing to add",
    "well said",
    "exactly right",
    "perfect",
    "i'm on board",
    "sounds good",
    "that makes sense",
    "i concur",
)

# Panels larger than two need a strong supermajority, not a simple majority.
PANEL_AGREEMENT_RATIO = 0.75


def detect_agreement(text: str) -> bool:
    """Return True if the text contains any agreement phrase (case-insensitive)."""
    lowered = text.lower()
    return any(phrase in lowered for phrase in AGREEMENT_PHRASES)


def agreement_threshold(participant_count: int) -> int:
    """Number of agreeing participants needed to end the debate early."""
    if participant_count < 2:
        raise ValueError(f"A debate needs at least 2 participants, got {participant_count}")
    if participant_count == 2:
        return 2
    return math.ceil(PANEL_AGREEMENT_RATIO * participant_count)
