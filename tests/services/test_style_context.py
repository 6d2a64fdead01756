"""
Tests for style context building and style similarity scoring.
"""

import pytest

from scriptintel.services.models import CreatorStyleProfile, StyleContext, StyleSignals
from scriptintel.services.style_context import build_style_context, compute_style_similarity_score

DRAFT = "Você sabia que dormir mal destrói sua produtividade inteira? Comenta aqui."
DRAFT_HOOK = "voce sabia que dormir mal destroi sua"


def _profile(sample_size=8, **signals):
    return CreatorStyleProfile(
        profile_version="scripts_style_profile_v1",
        sample_size=sample_size,
        style_signals=StyleSignals(**signals),
        style_examples=["um", "dois", "tres", "quatro"],
    )


class TestBuildStyleContext:

    def test_no_profile(self):
        assert build_style_context(None) is None
        assert build_style_context(CreatorStyleProfile(profile_version="scripts_style_profile_v1")) is None

    def test_guidelines_from_signals(self):
        context = build_style_context(_profile(
            avg_sentence_length=8.0,
            avg_paragraphs=3.4,
            cta_patterns=["comentario", "salvar"],
            hook_patterns=[DRAFT_HOOK],
            question_rate=0.3,
        ))

        assert context.has_enough_evidence is True
        assert context.sample_size == 8
        assert "Use frases curtas e diretas, com ritmo acelerado." in context.writing_guidelines
        assert "Estruture em cerca de 3 blocos de fala." in context.writing_guidelines
        assert "CTA preferido do criador: pedir comentário, pedir para salvar." in context.writing_guidelines
        assert "Use perguntas diretas ao público ao longo do roteiro." in context.writing_guidelines
        assert context.style_examples == ["um", "dois", "tres"]
        assert context.style_signals_used["cta_patterns"] == ["comentario", "salvar"]

    def test_small_sample_is_not_enough(self):
        context = build_style_context(_profile(sample_size=3))
        assert context.has_enough_evidence is False


class TestStyleSimilarity:

    def test_unknown_without_context_or_content(self):
        assert compute_style_similarity_score(DRAFT, None) is None
        assert compute_style_similarity_score("   ", StyleContext()) is None

    def test_matching_style_scores_one(self):
        context = StyleContext(
            avg_sentence_length=5.5,
            emoji_density=0.0,
            cta_patterns=["comentario"],
            hook_patterns=[DRAFT_HOOK],
        )
        assert compute_style_similarity_score(DRAFT, context) == 1.0

    def test_distant_style_scores_low(self):
        context = StyleContext(
            avg_sentence_length=17.5,
            emoji_density=0.12,
            cta_patterns=["salvar"],
            hook_patterns=["nada a ver com isso aqui mesmo"],
        )
        assert compute_style_similarity_score(DRAFT, context) == pytest.approx(0.07)

    def test_missing_patterns_are_neutral(self):
        context = StyleContext(avg_sentence_length=5.5, emoji_density=0.0)
        assert compute_style_similarity_score(DRAFT, context) == pytest.approx(0.775)
