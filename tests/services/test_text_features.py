"""
Tests for the text feature extractor.
"""

from scriptintel.services.script_format import TechnicalScene, render_technical_script
from scriptintel.services.text_features import (
    build_style_example,
    count_emojis,
    detect_cta_categories,
    detect_humor_markers,
    extract_hook_pattern,
    extract_script_style_features,
    normalize_for_matching,
    normalize_script_content,
    recurring_tokens,
    split_paragraphs,
    split_sentences,
    tokenize,
)


class TestBasics:

    def test_normalize_folds_diacritics_and_whitespace(self):
        assert normalize_for_matching("  Olá   MUNDO\n") == "ola mundo"

    def test_tokenize(self):
        assert tokenize("Você já viu?") == ["voce", "ja", "viu"]

    def test_split_paragraphs(self):
        assert split_paragraphs("a\n\n b\n\n\n c") == ["a", "b", "c"]

    def test_split_sentences(self):
        assert split_sentences("Oi. Tudo bem? Sim!") == ["Oi.", "Tudo bem?", "Sim!"]

    def test_count_emojis(self):
        assert count_emojis("Oi 😂🤣 ❤️") == 3
        assert count_emojis("") == 0


class TestSignals:

    def test_cta_categories(self):
        assert detect_cta_categories("Comenta aqui e salva esse vídeo!") == ["comentario", "salvar"]
        assert detect_cta_categories("Obrigado por assistir") == []

    def test_humor_markers(self):
        assert detect_humor_markers("Isso é uma piada kkkkkk 😂") == ["piada", "kkkk", "😂"]

    def test_recurring_tokens(self):
        text = "rotina rotina manhã manhã manhã café"
        assert recurring_tokens(text) == ["manha", "rotina"]

    def test_hook_pattern(self):
        text = "Você sabia que dormir mal destrói sua produtividade inteira? Veja."
        assert extract_hook_pattern(text) == "voce sabia que dormir mal destroi sua"
        assert extract_hook_pattern("Oi. Tudo bem?") is None


class TestScriptContent:

    def test_technical_script_keeps_speech(self):
        content = render_technical_script([
            TechnicalScene("GANCHO", "00-03s", "Close", "Olha", "Erro", "Você erra isso todo dia.", "Urgente"),
            TechnicalScene("CTA", "03-10s", "Close", "Aponta", "Comenta", "Comenta aqui embaixo.", "Sorriso"),
        ])
        assert normalize_script_content(content) == "Você erra isso todo dia.\n\nComenta aqui embaixo."

    def test_free_form_loses_markdown(self):
        assert normalize_script_content("**Olá**  mundo\n\n\n\nFim") == "Olá mundo\n\nFim"

    def test_style_example_strips_identity(self):
        assert build_style_example("Fala @joao.silva! #dicas Bora") == "Fala criador! Bora"
        assert build_style_example("a" * 300, limit=10) == "a" * 10 + "…"


class TestStyleFeatures:

    def test_empty_content(self):
        features = extract_script_style_features("")
        assert features.word_count == 0
        assert features.hook_pattern is None

    def test_free_form_features(self):
        features = extract_script_style_features("Você sabia disso? Eu não sabia!\n\nComenta aqui.")

        assert features.paragraph_count == 2
        assert features.sentence_count == 3
        assert features.question_rate == 1 / 3
        assert features.exclamation_rate == 1 / 3
        assert features.cta_patterns == ["comentario"]
        assert features.cadence_opening == 31.0
        assert features.cadence_closing == 13.0
        assert features.cadence_middle == 22.0
