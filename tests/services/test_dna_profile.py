"""
Tests for the creator DNA profile builder.
"""

from scriptintel.services.dna_profile import (
    DEFAULT_GUIDELINE,
    MIN_DNA_SAMPLE,
    build_creator_dna_profile_from_captions,
)
from scriptintel.services.models import CaptionEvidence

CAPTION = "Bom dia, gente! Hoje tem dica nova. Comenta aqui 😂"


class TestDnaProfile:

    def test_empty_sample_gets_default_guideline(self):
        profile = build_creator_dna_profile_from_captions([])

        assert profile.sample_size == 0
        assert profile.has_enough_evidence is False
        assert profile.writing_guidelines == [DEFAULT_GUIDELINE]

    def test_profile_from_consistent_captions(self):
        captions = [CaptionEvidence(id=str(n), caption_text=CAPTION) for n in range(MIN_DNA_SAMPLE)]
        profile = build_creator_dna_profile_from_captions(captions)

        assert profile.sample_size == MIN_DNA_SAMPLE
        assert profile.has_enough_evidence is True
        assert profile.opening_patterns == ["bom dia gente hoje"]
        assert profile.cta_patterns == ["comentario"]
        assert profile.average_sentence_length == 3.0
        assert "gente" in profile.recurring_expressions
        assert "Use frases curtas e diretas, com ritmo acelerado." in profile.writing_guidelines
        assert "Use emojis com frequência para reforçar emoção e ritmo." in profile.writing_guidelines
        assert DEFAULT_GUIDELINE not in profile.writing_guidelines

    def test_small_sample_keeps_default_guideline(self):
        profile = build_creator_dna_profile_from_captions([CAPTION, "  ", ""])

        assert profile.sample_size == 1
        assert profile.has_enough_evidence is False
        assert profile.writing_guidelines[-1] == DEFAULT_GUIDELINE
