"""
Scoped Adjustment Engine.

Two steps:
1. detect_adjust_scope() classifies an adjustment request into a mode and
   an optional target (scene N, paragraph N, first/last paragraph).
2. resolve_scoped_segment() finds that target's exact [start, end) slice in
   the current script; merge_scoped_segment() splices a replacement back in
   without touching anything outside the slice.
"""

import logging
import re
from typing import List, Optional

from .models import AdjustMode, ScopeTarget, ScriptAdjustScope, ScriptSegment, TargetType
from .script_format import LOOSE_SCENE_HEADING_RE, SCRIPT_END_TAG, WRAPPER_TAG_RE
from .text_features import normalize_for_matching

logger = logging.getLogger(__name__)

ORDINALS = {
    "primeira": 1, "primeiro": 1, "segunda": 2, "segundo": 2, "terceira": 3, "terceiro": 3,
    "quarta": 4, "quarto": 4, "quinta": 5, "quinto": 5, "sexta": 6, "sexto": 6,
    "setima": 7, "setimo": 7, "oitava": 8, "oitavo": 8, "nona": 9, "nono": 9,
    "decima": 10, "decimo": 10,
}
NUMBER_WORDS = {
    "dois": 2, "duas": 2, "tres": 3, "quatro": 4, "cinco": 5,
    "seis": 6, "sete": 7, "oito": 8, "nove": 9, "dez": 10,
}
_ORDINAL_ALT = "|".join(sorted(ORDINALS, key=len, reverse=True))
_NUMBER_ALT = "|".join(sorted(NUMBER_WORDS, key=len, reverse=True))

NEW_SCRIPT_RE = re.compile(
    r"\b(novo|outro) (roteiro|script)\b"
    r"|\b(roteiro|script) (novo|diferente|totalmente diferente)\b"
    r"|\b(crie|criar|gere|gerar|faca|fazer|escreva|escrever) (um |uma )?(novo|nova|outro|outra) (roteiro|script|video)\b"
)
REWRITE_FULL_RE = re.compile(
    r"\b(reescrev\w*|refaz\w*|refaca|refazer|reformul\w*) (tudo|todo|inteir\w*|completo|do zero)\b"
    r"|\b(reescrev\w*|refaz\w*|refaca|refazer|reformul\w*) o (roteiro|texto)( inteiro| todo| completo)?\b"
    r"|\bdo zero\b|\btudo de novo\b|\bmude tudo\b|\boutra abordagem\b"
    r"|\b(roteiro|texto) (inteiro|todo|completo)\b"
)
SCENE_NUMBER_RE = re.compile(rf"\bcena\s*(?:n[o.]?\s*|numero\s*|#\s*)?(\d{{1,3}}|{_NUMBER_ALT})\b")
SCENE_ORDINAL_RE = re.compile(rf"\b({_ORDINAL_ALT}) cena\b")
LAST_SCENE_RE = re.compile(r"\bultima cena\b|\bcena final\b|\b(o|no|do|a|na|da) (cta|chamada final)\b")
HOOK_TARGET_RE = re.compile(r"\b(o|no|do) gancho\b")
PARAGRAPH_NUMBER_RE = re.compile(rf"\bparagrafo\s*(?:n[o.]?\s*|numero\s*|#\s*)?(\d{{1,3}}|{_NUMBER_ALT})\b")
PARAGRAPH_ORDINAL_RE = re.compile(rf"\b({_ORDINAL_ALT}) paragrafo\b")
LAST_PARAGRAPH_RE = re.compile(r"\bultimo paragrafo\b|\bparagrafo final\b")

# paragraph boundaries: non-blank run ending before a blank line or end of text
_PARAGRAPH_RE = re.compile(r"\S(?:.*?\S)?(?=[ \t]*\r?\n[ \t]*\r?\n|\s*\Z)", re.DOTALL)


class ScriptScopeNotFoundError(Exception):
    """Raised when an adjustment targets a scene/paragraph that doesn't exist."""

    code = "SCOPE_NOT_FOUND"
    status_code = 422

    def __init__(self, target: ScopeTarget):
        self.target = target
        self.description = describe_target(target)
        super().__init__(f"Não encontrei {self.description.lower()} no roteiro atual.")

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "status": self.status_code,
            "message": str(self),
            "target": self.target.model_dump(mode="json"),
            "description": self.description,
        }


def describe_target(target: ScopeTarget) -> str:
    """Human-readable (pt-BR) name of a target, e.g. "Cena 4"."""
    if target.type == TargetType.SCENE:
        return f"Cena {target.index}" if target.index else "Última cena"
    if target.type == TargetType.PARAGRAPH:
        return f"Parágrafo {target.index}"
    if target.type == TargetType.FIRST_PARAGRAPH:
        return "Primeiro parágrafo"
    if target.type == TargetType.LAST_PARAGRAPH:
        return "Último parágrafo"
    return "Roteiro completo"


def _to_index(token: str) -> Optional[int]:
    if token.isdigit():
        value = int(token)
        return value if value >= 1 else None
    return NUMBER_WORDS.get(token) or ORDINALS.get(token)


def detect_target(prompt: str) -> ScopeTarget:
    folded = normalize_for_matching(prompt)

    match = SCENE_NUMBER_RE.search(folded) or SCENE_ORDINAL_RE.search(folded)
    if match and _to_index(match.group(1)):
        return ScopeTarget(type=TargetType.SCENE, index=_to_index(match.group(1)))
    if LAST_SCENE_RE.search(folded):
        return ScopeTarget(type=TargetType.SCENE)
    if HOOK_TARGET_RE.search(folded):
        return ScopeTarget(type=TargetType.SCENE, index=1)

    if LAST_PARAGRAPH_RE.search(folded):
        return ScopeTarget(type=TargetType.LAST_PARAGRAPH)
    match = PARAGRAPH_ORDINAL_RE.search(folded)
    if match:
        index = ORDINALS[match.group(1)]
        if index == 1:
            return ScopeTarget(type=TargetType.FIRST_PARAGRAPH)
        return ScopeTarget(type=TargetType.PARAGRAPH, index=index)
    match = PARAGRAPH_NUMBER_RE.search(folded)
    if match and _to_index(match.group(1)):
        return ScopeTarget(type=TargetType.PARAGRAPH, index=_to_index(match.group(1)))
    return ScopeTarget()


def detect_adjust_scope(prompt: str) -> ScriptAdjustScope:
    """
    Classify an adjustment request.

    Order: explicit new-script phrasing wins; otherwise a detected target
    forces a patch even when rewrite verbs are present; otherwise rewrite
    phrasing means a full rewrite; otherwise an untargeted patch.
    """
    raw = prompt or ""
    folded = normalize_for_matching(raw)

    if NEW_SCRIPT_RE.search(folded):
        return ScriptAdjustScope(mode=AdjustMode.NEW_SCRIPT, raw_prompt=raw)

    target = detect_target(raw)
    if target.type != TargetType.NONE:
        return ScriptAdjustScope(mode=AdjustMode.PATCH, target=target, is_partial_edit=True, raw_prompt=raw)

    if REWRITE_FULL_RE.search(folded):
        return ScriptAdjustScope(mode=AdjustMode.REWRITE_FULL, raw_prompt=raw)
    return ScriptAdjustScope(mode=AdjustMode.PATCH, raw_prompt=raw)


# ============================================================================
# Segmentation
# ============================================================================

def list_scene_segments(content: str) -> List[ScriptSegment]:
    """Scene slices from each heading line to its last non-blank line."""
    content = content or ""
    matches = list(LOOSE_SCENE_HEADING_RE.finditer(content))
    end_tag_at = content.find(SCRIPT_END_TAG)
    segments = []
    for position, match in enumerate(matches):
        if 0 <= end_tag_at < match.start():
            break
        boundary = matches[position + 1].start() if position + 1 < len(matches) else len(content)
        if match.start() < end_tag_at < boundary:
            boundary = end_tag_at
        start = match.start()
        end = start + len(content[start:boundary].rstrip())
        segments.append(ScriptSegment(
            kind="scene",
            index=int(match.group(1)),
            start=start,
            end=end,
            text=content[start:end],
            heading=match.group(0),
        ))
    return segments


def list_paragraph_segments(content: str) -> List[ScriptSegment]:
    """Blank-line-delimited paragraphs, skipping wrapper-tag-only blocks."""
    content = content or ""
    segments = []
    for match in _PARAGRAPH_RE.finditer(content):
        text = match.group(0)
        if WRAPPER_TAG_RE.fullmatch(text):
            continue
        first_line = text.splitlines()[0]
        heading = first_line if LOOSE_SCENE_HEADING_RE.fullmatch(first_line) else None
        segments.append(ScriptSegment(
            kind="paragraph",
            index=len(segments) + 1,
            start=match.start(),
            end=match.end(),
            text=text,
            heading=heading,
        ))
    return segments


def resolve_scoped_segment(content: str, target: ScopeTarget) -> Optional[ScriptSegment]:
    """
    Locate the target inside content.

    Returns None when the scene/paragraph doesn't exist; never a partial or
    neighbouring segment.
    """
    if target.type == TargetType.NONE:
        return None

    if target.type == TargetType.SCENE:
        scenes = list_scene_segments(content)
        if not scenes:
            return None
        if target.index is None:
            return scenes[-1]
        numbered = [s for s in scenes if s.index == target.index]
        if numbered:
            return numbered[0]
        # headings without sequential numbers fall back to position
        if len({s.index for s in scenes}) != len(scenes) and target.index <= len(scenes):
            return scenes[target.index - 1]
        return None

    paragraphs = list_paragraph_segments(content)
    if not paragraphs:
        return None
    if target.type == TargetType.FIRST_PARAGRAPH:
        return paragraphs[0]
    if target.type == TargetType.LAST_PARAGRAPH:
        return paragraphs[-1]
    if target.index and target.index <= len(paragraphs):
        return paragraphs[target.index - 1]
    return None


def require_scoped_segment(content: str, target: ScopeTarget) -> ScriptSegment:
    segment = resolve_scoped_segment(content, target)
    if segment is None:
        logger.warning(f"Adjustment target not found: {describe_target(target)}")
        raise ScriptScopeNotFoundError(target)
    return segment


def merge_scoped_segment(content: str, segment: ScriptSegment, replacement: str) -> str:
    """
    Splice replacement into content[segment.start:segment.end].

    The original heading line is re-attached when the replacement omits it.
    Merging a segment's own text reproduces content unchanged.
    """
    text = (replacement or "").rstrip().lstrip("\n")
    if segment.heading:
        first_line = text.split("\n", 1)[0]
        if not LOOSE_SCENE_HEADING_RE.fullmatch(first_line):
            text = f"{segment.heading}\n{text}" if text else segment.heading
    return content[:segment.start] + text + content[segment.end:]
