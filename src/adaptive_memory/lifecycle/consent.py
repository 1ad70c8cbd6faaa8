"""Classify user replies to the maintenance notice."""

from __future__ import annotations

import re
from enum import Enum


class ConsentDecision(str, Enum):
    CONSENT = "consent"
    DECLINE = "decline"
    AMBIGUOUS = "ambiguous"


_AFFIRMATIVE_RE = re.compile(r"\b(yes|yep|yeah|please|go ahead|do it|proceed|ok|okay)\b")
_ACTION_RE = re.compile(r"\b(optimi[sz]e|compact|prune|clean up|reduce|shrink)\b")
_TARGET_RE = re.compile(r"\b(memory|memories|memory files|core memory files)\b")
_LOSSLESS_RE = re.compile(r"\b(without losing|lossless|keep all|do not lose)\b")

_NEGATION_RE = re.compile(r"\b(no|not now|later|skip|cancel|don't|do not)\b")
_DECLINE_TOPIC_RE = re.compile(r"\b(optimi[sz]e|compact|prune|memory)\b")
_NEGATED_ACTION_RE = re.compile(
    r"\b(don't|do not|never|no need to)\s+(\w+\s+)?(optimi[sz]e|compact|prune|clean up|reduce|shrink)\b"
)
_REFUSAL = r"(no|nope|not now|not yet|later|skip|cancel)"
_BARE_REFUSAL_RE = re.compile(
    rf"^\s*{_REFUSAL}(\s*[,.!]*\s*({_REFUSAL}|thanks|thank you))*\s*[.!]*\s*$"
)


def is_explicit_consent(message: str | None) -> bool:
    text = str(message or "").lower()
    if not text:
        return False
    action = bool(_ACTION_RE.search(text))
    target = bool(_TARGET_RE.search(text))
    if _NEGATED_ACTION_RE.search(text):
        return False
    if action and target and _AFFIRMATIVE_RE.search(text):
        return True
    return action and target and bool(_LOSSLESS_RE.search(text))


def is_explicit_decline(message: str | None) -> bool:
    text = str(message or "").lower()
    if not text:
        return False
    if _BARE_REFUSAL_RE.match(text):
        return True
    return bool(_NEGATION_RE.search(text)) and bool(_DECLINE_TOPIC_RE.search(text))


def classify_reply(message: str | None) -> ConsentDecision:
    """Map a reply to consent, decline or ambiguous.

    Consent is checked first: "yes, optimize memory, do not lose anything"
    carries a negation word but is still an unambiguous approval.
    """
    if is_explicit_consent(message):
        return ConsentDecision.CONSENT
    if is_explicit_decline(message):
        return ConsentDecision.DECLINE
    return ConsentDecision.AMBIGUOUS
