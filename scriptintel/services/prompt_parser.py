"""
Prompt Intent Parser - explicit categories, prompt mode and narrative intent.

Deterministic: a category is detected only when one of its catalog terms
(spaced id, label, or label part) appears as a whole word in the folded prompt.
"""

import re
from functools import lru_cache
from typing import Dict, Optional, Pattern, Tuple

from .category_catalog import category_match_terms
from .models import DIMENSIONS, CategorySelection, NarrativeIntent, ParsedPrompt, PromptMode
from .text_features import normalize_for_matching

MIN_TERM_LENGTH = 3
MAX_SUBJECT_HINT_LENGTH = 80

HUMOR_INTENT_RE = re.compile(
    r"\b(humor\w*|engracad\w*|comedia|comic\w*|piada\w*|zoeira|meme\w*|divertid\w*|"
    r"rir|risada\w*|sarcas\w*|ironi\w*|kkk+)\b"
)
ENGAGEMENT_INTENT_RE = re.compile(
    r"\b(engaj\w*|coment\w*|viraliz\w*|viral|alcance|interac\w*|compartilh\w*|"
    r"salvament\w*|seguidores|interagir|debate)\b"
)
SUBJECT_HINT_RE = re.compile(
    r"\b(?:sobre|a respeito de|falando de|tema|assunto)\s*:?\s+"
    r"(.+?)"
    r"(?=\s+(?:com|em tom|no tom|usando|para o|para a|pra|de forma|focado|focando)\b|[,.;!?\n]|$)",
    re.IGNORECASE,
)


@lru_cache(maxsize=None)
def _term_pattern(term: str) -> Pattern[str]:
    return re.compile(rf"(?<![0-9a-z]){re.escape(term)}(?![0-9a-z])")


def _match_dimension(dimension: str, normalized_prompt: str) -> Optional[Tuple[str, str]]:
    best: Optional[Tuple[int, int, str, str]] = None
    for category_id, term in category_match_terms(dimension):
        if len(term) < MIN_TERM_LENGTH:
            continue
        match = _term_pattern(term).search(normalized_prompt)
        if not match:
            continue
        # earliest match wins; the longer term breaks ties
        candidate = (match.start(), -len(term), category_id, term)
        if best is None or candidate[:2] < best[:2]:
            best = candidate
    if best is None:
        return None
    return best[2], best[3]


def detect_explicit_categories(prompt: str) -> Tuple[CategorySelection, Dict[str, str]]:
    """
    Detect categories named in the prompt.

    Returns:
        (selection, matched terms per dimension)
    """
    normalized = normalize_for_matching(prompt)
    values: Dict[str, str] = {}
    matched: Dict[str, str] = {}
    if normalized:
        for dimension in DIMENSIONS:
            hit = _match_dimension(dimension, normalized)
            if hit:
                values[dimension], matched[dimension] = hit
    return CategorySelection(**values), matched


def get_prompt_mode(explicit: CategorySelection) -> PromptMode:
    filled = len(explicit.filled_dimensions())
    if filled == 0:
        return PromptMode.OPEN
    if filled == len(DIMENSIONS):
        return PromptMode.FULL
    return PromptMode.PARTIAL


def extract_subject_hint(prompt: str) -> Optional[str]:
    match = SUBJECT_HINT_RE.search(prompt or "")
    if not match:
        return None
    hint = re.sub(r"\s+", " ", match.group(1)).strip(" \"'“”")
    if len(hint) < 2:
        return None
    return hint[:MAX_SUBJECT_HINT_LENGTH].strip()


def extract_narrative_intent(prompt: str) -> NarrativeIntent:
    normalized = normalize_for_matching(prompt)
    return NarrativeIntent(
        wants_humor=bool(HUMOR_INTENT_RE.search(normalized)),
        wants_engagement=bool(ENGAGEMENT_INTENT_RE.search(normalized)),
        subject_hint=extract_subject_hint(prompt),
    )


def parse_prompt(prompt: str) -> ParsedPrompt:
    """
    Classify a free-text script request.

    Args:
        prompt: Raw request text

    Returns:
        ParsedPrompt with explicit categories, mode and narrative intent
    """
    explicit, matched = detect_explicit_categories(prompt)
    return ParsedPrompt(
        explicit_categories=explicit,
        prompt_mode=get_prompt_mode(explicit),
        intent=extract_narrative_intent(prompt),
        matched_terms=matched,
    )
