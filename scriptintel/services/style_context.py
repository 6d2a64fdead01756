"""
Style Context & Similarity Scoring.

Turns a persisted style profile into prompt guidelines and scores how close
a draft is to the creator's style.
"""

from typing import List, Optional

from .dna_profile import describe_cta_patterns, emoji_guideline, sentence_length_guideline
from .models import CreatorStyleProfile, StyleContext
from .text_features import extract_script_style_features, tokenize

MIN_STYLE_SAMPLE = 6

SENTENCE_WEIGHT = 0.35
EMOJI_WEIGHT = 0.20
CTA_WEIGHT = 0.25
HOOK_WEIGHT = 0.20

SENTENCE_BAND_WORDS = 12.0
EMOJI_BAND = 0.12
NEUTRAL_SIGNAL = 0.5
HOOK_PARTIAL_BASE = 0.35
HOOK_PARTIAL_OVERLAP = 0.45


def build_style_context(profile: Optional[CreatorStyleProfile]) -> Optional[StyleContext]:
    """
    Prompt-ready view of a style profile.

    Returns:
        StyleContext, or None when there is no usable profile
    """
    if profile is None or profile.style_signals is None:
        return None

    signals = profile.style_signals
    guidelines: List[str] = []
    if profile.sample_size > 0:
        guidelines.append(sentence_length_guideline(signals.avg_sentence_length))
        guidelines.append(emoji_guideline(signals.emoji_density))
        if signals.avg_paragraphs:
            guidelines.append(f"Estruture em cerca de {max(1, round(signals.avg_paragraphs))} blocos de fala.")
        cadence = signals.narrative_cadence
        if cadence.opening and cadence.closing:
            guidelines.append(
                f"Abertura com cerca de {int(cadence.opening)} caracteres e fechamento com cerca de "
                f"{int(cadence.closing)} caracteres."
            )
    if signals.hook_patterns:
        quoted = ", ".join(f'"{hook}"' for hook in signals.hook_patterns[:3])
        guidelines.append(f"Ganchos que o criador costuma usar: {quoted}.")
    if signals.cta_patterns:
        guidelines.append(f"CTA preferido do criador: {describe_cta_patterns(signals.cta_patterns[:3])}.")
    if signals.humor_markers:
        guidelines.append(f"Marcadores de humor frequentes: {', '.join(signals.humor_markers[:5])}.")
    if signals.question_rate >= 0.2:
        guidelines.append("Use perguntas diretas ao público ao longo do roteiro.")

    return StyleContext(
        has_enough_evidence=profile.sample_size >= MIN_STYLE_SAMPLE,
        sample_size=profile.sample_size,
        profile_version=profile.profile_version,
        writing_guidelines=guidelines,
        style_signals_used={
            "avg_sentence_length": signals.avg_sentence_length,
            "emoji_density": signals.emoji_density,
            "avg_paragraphs": signals.avg_paragraphs,
            "hook_patterns": signals.hook_patterns[:3],
            "cta_patterns": signals.cta_patterns[:3],
            "humor_markers": signals.humor_markers[:5],
            "recurring_expressions": signals.recurring_expressions[:8],
        },
        style_examples=profile.style_examples[:3],
        avg_sentence_length=signals.avg_sentence_length,
        emoji_density=signals.emoji_density,
        cta_patterns=list(signals.cta_patterns),
        hook_patterns=list(signals.hook_patterns),
    )


def _hook_score(hook: Optional[str], profile_hooks: List[str]) -> float:
    if not profile_hooks:
        return NEUTRAL_SIGNAL
    if hook and hook in profile_hooks:
        return 1.0
    if not hook:
        return HOOK_PARTIAL_BASE
    hook_tokens = set(tokenize(hook))
    best = 0.0
    for candidate in profile_hooks:
        candidate_tokens = set(tokenize(candidate))
        union = hook_tokens | candidate_tokens
        if union:
            best = max(best, len(hook_tokens & candidate_tokens) / len(union))
    return HOOK_PARTIAL_BASE + HOOK_PARTIAL_OVERLAP * best


def compute_style_similarity_score(content: str, style_context: Optional[StyleContext]) -> Optional[float]:
    """
    Blend of sentence length, emoji density, CTA and hook closeness.

    Returns:
        Score in [0, 1], or None when there is no style context or no content.
        None means "unknown", not zero.
    """
    if style_context is None or not content or not content.strip():
        return None
    features = extract_script_style_features(content)
    if not features.normalized_content:
        return None

    sentence = max(0.0, 1 - abs(features.avg_sentence_length - style_context.avg_sentence_length) / SENTENCE_BAND_WORDS)
    emoji = max(0.0, 1 - abs(features.emoji_density - style_context.emoji_density) / EMOJI_BAND)
    if style_context.cta_patterns:
        cta = 1.0 if set(features.cta_patterns) & set(style_context.cta_patterns) else 0.0
    else:
        cta = NEUTRAL_SIGNAL
    hook = _hook_score(features.hook_pattern, style_context.hook_patterns)

    score = SENTENCE_WEIGHT * sentence + EMOJI_WEIGHT * emoji + CTA_WEIGHT * cta + HOOK_WEIGHT * hook
    return round(max(0.0, min(1.0, score)), 4)
