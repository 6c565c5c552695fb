"""
Content policy for customer-supplied design text.

Keyword lists are kept in one place so they are easy to extend. Matching is
on whole words (with an optional plural ``s``) so "catalog" does not trip
the "cat" rule.
"""

import re
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

from loguru import logger

from .errors import DesignPolicyError
from .models import ResolvedPlacement


LIVING_KEYWORDS = [
    "person", "people", "man", "woman", "kid", "baby", "face", "portrait",
    "dog", "cat", "animal", "lion", "wolf", "tiger", "bear", "bird", "fish",
    "horse", "elephant", "monkey", "human", "child", "children", "boy", "girl",
    "selfie",
]

RELIGIOUS_KEYWORDS = [
    "jesus", "allah", "muhammad", "quran", "bible", "cross", "church", "mosque",
    "temple", "saint", "hadith", "christ", "god", "prayer", "religious",
    "buddha", "hindu", "shiva", "krishna", "torah", "synagogue", "monk", "nun",
    "pope", "imam", "pastor", "priest", "holy", "sacred", "divine",
]

OFFENSIVE_KEYWORDS = [
    "fuck", "shit", "bitch", "slur", "nazi", "hate", "kill", "murder",
    "racist", "sexist", "n-word", "f-word", "assault", "violence", "terror",
    "terrorist",
]

EMPTY_REASON = "Please describe your design so our team knows what to create."
LIVING_REASON = ("Custom prints cannot include people, animals, or other living beings. "
                 "Please adjust your design description.")
RELIGIOUS_REASON = ("We don't print religious content for any faith or belief. "
                    "Please choose a non-religious design.")
OFFENSIVE_REASON = "We can't print offensive or hateful content. Please rephrase your design idea."


def _keyword_pattern(keywords: Iterable[str]) -> re.Pattern:
    alternatives = '|'.join(re.escape(k) for k in sorted(keywords, key=len, reverse=True))
    return re.compile(rf'\b(?:{alternatives})s?\b')


POLICY_RULES = (
    (_keyword_pattern(LIVING_KEYWORDS), LIVING_REASON),
    (_keyword_pattern(RELIGIOUS_KEYWORDS), RELIGIOUS_REASON),
    (_keyword_pattern(OFFENSIVE_KEYWORDS), OFFENSIVE_REASON),
)


@dataclass(frozen=True)
class DesignValidationResult:
    valid: bool
    reason: Optional[str] = None


def validate_design_description(description: Optional[str]) -> DesignValidationResult:
    """Check a design description or design text against the content policy."""
    text = (description or '').lower().strip()
    if not text:
        return DesignValidationResult(False, EMPTY_REASON)

    for pattern, reason in POLICY_RULES:
        match = pattern.search(text)
        if match:
            logger.debug(f"Design text rejected on keyword '{match.group(0)}'")
            return DesignValidationResult(False, reason)

    return DesignValidationResult(True)


def enforce_design_policy(placements: Sequence[ResolvedPlacement]) -> None:
    """Raise DesignPolicyError for the first text placement that violates the policy."""
    for placement in placements:
        if not placement.is_text or not (placement.design_text or '').strip():
            # Empty text slots are allowed in a multi-placement design
            continue
        result = validate_design_description(placement.design_text)
        if not result.valid:
            raise DesignPolicyError(result.reason, placement_id=placement.id)
