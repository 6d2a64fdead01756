"""
Text Feature Extractor - structural and linguistic signals from raw text.

Pure functions used by the DNA profile builder, the style profile trainer and
the similarity scorer. Matching is diacritics-insensitive (pt-BR text is
folded to plain lowercase ASCII letters before any pattern is applied).
"""

import re
import unicodedata
from collections import Counter
from dataclasses import dataclass, field
from typing import List, Optional

from .script_format import is_technical_script, parse_technical_scenes

STOPWORDS = frozenset("""
a ao aos aquela aquelas aquele aqueles aquilo as ate com como da das de dela delas dele
deles depois do dos e ela elas ele eles em entre era eram essa essas esse esses esta
estas este estes eu foi foram ha isso isto ja la lhe lhes mais mas me mesmo meu meus
minha minhas muito na nas nem no nos nossa nossas nosso nossos num numa o os ou para
pela pelas pelo pelos por pra qual quando que quem se sem ser seu seus sua suas so
tambem te tem tinha tu tua tuas um uma umas uns voce voces vai vou ta to pro pros
esta estao aqui ali entao ainda sobre cada todo toda todos todas tudo nada coisa
""".split())

CTA_PATTERNS = {
    "comentario": re.compile(r"\b(comenta|comente|comentem|comentar|comentario|comentarios)\b"),
    "salvar": re.compile(r"\b(salva|salve|salvem|salvar)\b"),
    "compartilhar": re.compile(
        r"\b(compartilha|compartilhe|compartilhem|compartilhar|manda (esse|essa|pra|para)|envia (esse|essa|pra|para))\b"
    ),
    "curtir": re.compile(r"\b(curte|curta|curtam|curtir|deixa (o|seu) like|da (um|o) like)\b"),
    "seguir": re.compile(r"\b(me segue|me siga|siga|sigam|segue a gente|segue o perfil|seguir o perfil)\b"),
    "clique_link": re.compile(r"\b(clica|clique|link na bio|link da bio|acessa o link|acesse o link)\b"),
}

HUMOR_MARKERS = (
    "humor", "comedia", "engracado", "piada", "risada", "rir", "zoeira",
    "meme", "kkkk", "haha", "😂", "🤣",
)

_EMOJI_CLASS = (
    "\U0001F300-\U0001FAFF"
    "\U0001F1E6-\U0001F1FF"
    "\u2600-\u27BF"
    "\u2B00-\u2BFF"
    "\u231A\u231B\u23E9-\u23FA\u203C\u2049\u2122\u2139\u3030\u303D"
)
# ZWJ sequences and variation selectors count as a single emoji
EMOJI_RE = re.compile(f"[{_EMOJI_CLASS}]\uFE0F?(?:\u200D[{_EMOJI_CLASS}]\uFE0F?)*")

_TOKEN_RE = re.compile(r"[^\W_]+(?:'[^\W_]+)?")
_SENTENCE_SPLIT_RE = re.compile(r"(?<=[.!?…])\s+|\n+")
_PARAGRAPH_SPLIT_RE = re.compile(r"\n[ \t]*\n+")
_MENTION_RE = re.compile(r"(?<![\w@])@[\w.]+")
_HASHTAG_RE = re.compile(r"(?<![\w#])#[\w]+")


def strip_diacritics(text: str) -> str:
    decomposed = unicodedata.normalize("NFD", text or "")
    return "".join(ch for ch in decomposed if unicodedata.category(ch) != "Mn")


def normalize_for_matching(text: str) -> str:
    """Lowercase, strip diacritics and collapse whitespace."""
    return re.sub(r"\s+", " ", strip_diacritics(text).lower()).strip()


def tokenize(text: str) -> List[str]:
    """Folded word tokens (letters and digits)."""
    return _TOKEN_RE.findall(normalize_for_matching(text))


def split_paragraphs(text: str) -> List[str]:
    return [p.strip() for p in _PARAGRAPH_SPLIT_RE.split(text or "") if p.strip()]


def split_sentences(text: str) -> List[str]:
    return [s.strip() for s in _SENTENCE_SPLIT_RE.split(text or "") if s.strip() and tokenize(s)]


def count_emojis(text: str) -> int:
    return len(EMOJI_RE.findall(text or ""))


def average_sentence_length(text: str) -> float:
    sentences = split_sentences(text)
    if not sentences:
        return 0.0
    return sum(len(tokenize(s)) for s in sentences) / len(sentences)


def detect_cta_categories(text: str) -> List[str]:
    folded = normalize_for_matching(text)
    return [label for label, pattern in CTA_PATTERNS.items() if pattern.search(folded)]


def has_call_to_action(text: str) -> bool:
    return bool(detect_cta_categories(text))


def detect_humor_markers(text: str) -> List[str]:
    folded = normalize_for_matching(text)
    tokens = set(_TOKEN_RE.findall(folded))
    found = []
    for marker in HUMOR_MARKERS:
        if marker.isalpha():
            # laughter is often stretched ("kkkkkk", "hahaha")
            if marker in ("kkkk", "haha"):
                if any(token.startswith(marker) for token in tokens):
                    found.append(marker)
            elif marker in tokens:
                found.append(marker)
        elif marker in (text or ""):
            found.append(marker)
    return found


def recurring_tokens(text: str, limit: int = 20, min_length: int = 4, min_count: int = 2) -> List[str]:
    """Content words repeated at least ``min_count`` times, most frequent first."""
    counts = Counter(
        token for token in tokenize(text)
        if len(token) >= min_length and token not in STOPWORDS and not token.isdigit()
    )
    ranked = sorted(
        (item for item in counts.items() if item[1] >= min_count),
        key=lambda item: (-item[1], item[0]),
    )
    return [token for token, _ in ranked[:limit]]


def extract_hook_pattern(text: str, min_tokens: int = 6, size: int = 7) -> Optional[str]:
    """First words of the first sentence, when it is long enough to be a hook."""
    sentences = split_sentences(text)
    if not sentences:
        return None
    tokens = tokenize(sentences[0])
    if len(tokens) < min_tokens:
        return None
    return " ".join(tokens[:size])


def extract_opening_prefix(text: str, size: int = 4) -> Optional[str]:
    """First words of the first non-empty line."""
    for line in (text or "").splitlines():
        tokens = tokenize(line)
        if tokens:
            return " ".join(tokens[:size])
    return None


def normalize_script_content(content: str) -> str:
    """
    Reduce a script to the text a viewer hears or reads.

    Technical scripts keep only their spoken lines (one paragraph per scene);
    free-form scripts lose markdown emphasis and redundant whitespace.
    """
    if not content:
        return ""
    if is_technical_script(content):
        lines = [scene.speech.strip() for scene in parse_technical_scenes(content) if scene.speech.strip()]
        return "\n\n".join(lines)

    text = content.replace("\r\n", "\n")
    text = re.sub(r"[*_`]{1,3}", "", text)
    text = "\n".join(re.sub(r"[ \t]+", " ", line).strip() for line in text.split("\n"))
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def build_style_example(content: str, limit: int = 220) -> str:
    """Short, identity-free excerpt used as a style example."""
    text = _MENTION_RE.sub("criador", content or "")
    text = _HASHTAG_RE.sub("", text)
    text = re.sub(r"\s+", " ", text).strip()
    if len(text) <= limit:
        return text
    return text[:limit].rstrip() + "…"


@dataclass
class ScriptStyleFeatures:
    normalized_content: str = ""
    word_count: int = 0
    paragraph_count: int = 0
    sentence_count: int = 0
    avg_sentence_length: float = 0.0
    emoji_count: int = 0
    emoji_density: float = 0.0
    question_rate: float = 0.0
    exclamation_rate: float = 0.0
    hook_pattern: Optional[str] = None
    cta_patterns: List[str] = field(default_factory=list)
    humor_markers: List[str] = field(default_factory=list)
    recurring_tokens: List[str] = field(default_factory=list)
    cadence_opening: float = 0.0
    cadence_middle: float = 0.0
    cadence_closing: float = 0.0


def extract_script_style_features(content: str) -> ScriptStyleFeatures:
    """
    Extract style signals from a script (technical or free-form).

    Args:
        content: Raw script content

    Returns:
        ScriptStyleFeatures; all-zero when the normalized content is empty
    """
    normalized = normalize_script_content(content)
    if not normalized:
        return ScriptStyleFeatures()

    words = tokenize(normalized)
    paragraphs = split_paragraphs(normalized)
    sentences = split_sentences(normalized)
    emoji_count = count_emojis(normalized)

    lengths = [len(p) for p in paragraphs] or [len(normalized)]
    if len(lengths) == 1:
        opening = middle = closing = float(lengths[0])
    else:
        opening, closing = float(lengths[0]), float(lengths[-1])
        inner = lengths[1:-1] or lengths
        middle = sum(inner) / len(inner)

    sentence_count = len(sentences)
    return ScriptStyleFeatures(
        normalized_content=normalized,
        word_count=len(words),
        paragraph_count=len(paragraphs),
        sentence_count=sentence_count,
        avg_sentence_length=(len(words) / sentence_count) if sentence_count else 0.0,
        emoji_count=emoji_count,
        emoji_density=(emoji_count / len(words)) if words else 0.0,
        question_rate=(sum(1 for s in sentences if s.endswith("?")) / sentence_count) if sentence_count else 0.0,
        exclamation_rate=(sum(1 for s in sentences if s.endswith("!")) / sentence_count) if sentence_count else 0.0,
        hook_pattern=extract_hook_pattern(normalized),
        cta_patterns=detect_cta_categories(normalized),
        humor_markers=detect_humor_markers(normalized),
        recurring_tokens=recurring_tokens(normalized),
        cadence_opening=opening,
        cadence_middle=middle,
        cadence_closing=closing,
    )
