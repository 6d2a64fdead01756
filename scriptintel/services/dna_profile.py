"""
Creator DNA Profile Builder.

Aggregates linguistic signals across a set of historical captions into a
lightweight writing profile. Built per request and never persisted.
"""

from collections import Counter
from typing import List, Sequence, Union

from .models import CaptionEvidence, CreatorDnaProfile
from .text_features import (
    count_emojis,
    detect_cta_categories,
    extract_opening_prefix,
    recurring_tokens,
    split_sentences,
    tokenize,
)

MIN_DNA_SAMPLE = 6
MAX_OPENING_PATTERNS = 4
MAX_CTA_PATTERNS = 4
MAX_RECURRING_EXPRESSIONS = 8

DEFAULT_GUIDELINE = "Use tom conversacional em português do Brasil, com CTA claro ao final."

CTA_DESCRIPTIONS = {
    "comentario": "pedir comentário",
    "salvar": "pedir para salvar",
    "compartilhar": "pedir compartilhamento",
    "curtir": "pedir curtida",
    "seguir": "convidar para seguir",
    "clique_link": "direcionar para o link",
}


def sentence_length_guideline(average_words: float) -> str:
    if average_words <= 10:
        return "Use frases curtas e diretas, com ritmo acelerado."
    if average_words <= 16:
        return "Mantenha frases de tamanho médio, claras e conversacionais."
    return "Mantenha frases um pouco mais longas, com explicação fluida."


def emoji_guideline(density: float) -> str:
    if density >= 0.08:
        return "Use emojis com frequência para reforçar emoção e ritmo."
    if density > 0:
        return "Use poucos emojis, apenas para destaque pontual."
    return "Evite emojis; o criador escreve sem eles."


def describe_cta_patterns(labels: Sequence[str]) -> str:
    return ", ".join(CTA_DESCRIPTIONS.get(label, label) for label in labels)


def _caption_text(caption: Union[CaptionEvidence, str]) -> str:
    if isinstance(caption, CaptionEvidence):
        return caption.caption_text or ""
    return caption or ""


def build_creator_dna_profile_from_captions(
    captions: Sequence[Union[CaptionEvidence, str]],
) -> CreatorDnaProfile:
    """
    Build a DNA profile from captions.

    Args:
        captions: CaptionEvidence items or raw caption strings

    Returns:
        CreatorDnaProfile; always carries at least one writing guideline
    """
    texts = [text.strip() for text in (_caption_text(c) for c in captions) if text and text.strip()]
    sample_size = len(texts)

    total_words = 0
    total_sentences = 0
    total_emojis = 0
    openings: Counter = Counter()
    ctas: Counter = Counter()
    for text in texts:
        words = tokenize(text)
        total_words += len(words)
        total_sentences += len(split_sentences(text))
        total_emojis += count_emojis(text)
        opening = extract_opening_prefix(text)
        if opening:
            openings[opening] += 1
        for label in detect_cta_categories(text):
            ctas[label] += 1

    average_sentence_length = (total_words / total_sentences) if total_sentences else 0.0
    emoji_density = (total_emojis / total_words) if total_words else 0.0
    opening_patterns = [pattern for pattern, _ in openings.most_common(MAX_OPENING_PATTERNS)]
    cta_patterns = [label for label, _ in ctas.most_common(MAX_CTA_PATTERNS)]
    recurring = recurring_tokens("\n".join(texts), limit=MAX_RECURRING_EXPRESSIONS)

    has_enough_evidence = sample_size >= MIN_DNA_SAMPLE

    guidelines: List[str] = []
    if total_sentences:
        guidelines.append(sentence_length_guideline(average_sentence_length))
        guidelines.append(emoji_guideline(emoji_density))
    if opening_patterns:
        quoted = ", ".join(f'"{pattern}"' for pattern in opening_patterns)
        guidelines.append(f"Aberturas frequentes do criador: {quoted}.")
    if cta_patterns:
        guidelines.append(f"CTA recorrente do criador: {describe_cta_patterns(cta_patterns)}.")
    if recurring:
        guidelines.append(f"Vocábulos recorrentes: {', '.join(recurring)}.")
    if not has_enough_evidence or not guidelines:
        guidelines.append(DEFAULT_GUIDELINE)

    return CreatorDnaProfile(
        sample_size=sample_size,
        has_enough_evidence=has_enough_evidence,
        average_sentence_length=round(average_sentence_length, 2),
        emoji_density=round(emoji_density, 4),
        opening_patterns=opening_patterns,
        cta_patterns=cta_patterns,
        recurring_expressions=recurring,
        writing_guidelines=guidelines,
    )
