"""
Script Contract Engine.

Normalizes any script text (model output or a legacy free-form script) into
the canonical technical script, scores its quality and, when it falls below
ScriptQualityPolicy, runs one bounded polish pass that swaps only the weak
fields for synthesized defaults.

Every synthesized field is recorded in a ContractReport so callers can tell
creator/model text apart from template filler.
"""

import logging
import re
import unicodedata
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set, Tuple

from ..core.config import ScriptQualityPolicy
from .models import ContractReport, ScriptDraft, TechnicalScriptQualityScore
from .prompt_parser import extract_subject_hint
from .script_format import (
    SCENE_FIELDS,
    SCRIPT_END_TAG,
    SCRIPT_START_TAG,
    TechnicalScene,
    is_technical_script,
    parse_technical_scenes,
    render_technical_script,
    split_table_row,
)
from .text_features import normalize_for_matching, split_paragraphs, split_sentences, strip_diacritics, tokenize

logger = logging.getLogger(__name__)

TITLE_MAX_LENGTH = 80
CONTENT_MAX_LENGTH = 12000
DEFAULT_TOPIC = "seu conteúdo"
MAX_TOPIC_WORDS = 5

HOOK = "GANCHO"
CONTEXT = "CONTEXTO"
DEMONSTRATION = "DEMONSTRAÇÃO"
PROOF = "PROVA"
REINFORCEMENT = "REFORÇO"
CTA = "CTA"

SCENE_PLANS = {
    4: (HOOK, CONTEXT, DEMONSTRATION, CTA),
    5: (HOOK, CONTEXT, DEMONSTRATION, PROOF, CTA),
    6: (HOOK, CONTEXT, DEMONSTRATION, PROOF, REINFORCEMENT, CTA),
}
TIMELINES = {
    4: ("00-03s", "03-10s", "10-22s", "22-30s"),
    5: ("00-03s", "03-10s", "10-20s", "20-27s", "27-33s"),
    6: ("00-03s", "03-09s", "09-18s", "18-25s", "25-31s", "31-36s"),
}

HEADING_ALIASES = {
    "gancho": HOOK, "hook": HOOK, "abertura": HOOK, "intro": HOOK, "introducao": HOOK,
    "contexto": CONTEXT, "problema": CONTEXT, "dor": CONTEXT, "situacao": CONTEXT, "cenario": CONTEXT,
    "demonstracao": DEMONSTRATION, "demo": DEMONSTRATION, "solucao": DEMONSTRATION,
    "passo a passo": DEMONSTRATION, "desenvolvimento": DEMONSTRATION, "dica": DEMONSTRATION,
    "dicas": DEMONSTRATION, "metodo": DEMONSTRATION, "explicacao": DEMONSTRATION,
    "prova": PROOF, "prova social": PROOF, "resultado": PROOF, "exemplo": PROOF, "antes e depois": PROOF,
    "reforco": REINFORCEMENT, "resumo": REINFORCEMENT, "recapitulacao": REINFORCEMENT, "virada": REINFORCEMENT,
    "cta": CTA, "chamada": CTA, "chamada para acao": CTA, "call to action": CTA,
    "fechamento": CTA, "encerramento": CTA, "final": CTA,
}
# non-last scenes that carry a CTA heading are renamed to the first free one of these
CTA_REPLACEMENTS = (PROOF, REINFORCEMENT, DEMONSTRATION, CONTEXT)

OBJECTIVE_PATTERNS = (
    ("convert", re.compile(
        r"\b(vend\w*|compr\w*|cliente\w*|ofert\w*|lancamento|produto\w*|servico\w*|mentoria|curso\w*|"
        r"desconto\w*|promo\w*|inscri\w*|link)\b"
    )),
    ("authority", re.compile(
        r"\b(autoridade|especialista\w*|posicionamento|referencia|credibilidade|expert\w*|bastidores)\b"
    )),
    ("engage", re.compile(
        r"\b(engaj\w*|coment\w*|viral\w*|alcance|seguidores|humor\w*|engracad\w*|trend\w*|polemic\w*|debate)\b"
    )),
)
DEFAULT_OBJECTIVE = "educate"

TOPIC_FILLER = frozenset("""
roteiro roteiros reel reels video videos crie criar gere gerar faca fazer escreva escrever quero
preciso me um uma de do da dos das para pra com tom sobre novo nova curto curta script scripts
por favor ai um pouco mais formato estilo tema
""".split())

INSTRUCTIONAL_SPEECH_RE = re.compile(
    r"^\s*[\-\*\[\(]*\s*(mostre|mostrar|explique|explicar|faca|fazer|finalize|finalizar|apresente|"
    r"apresentar|fale|falar|diga|dizer|comece|comecar|termine|terminar|inclua|incluir|descreva|"
    r"descrever|demonstre|demonstrar|peca|pedir|convide|convidar|grave|gravar|cite|citar|introduza|"
    r"destaque|destacar|insira|inserir|adicione|adicionar)\b"
)
META_SPEECH_RE = re.compile(r"\b(cta|call to action|chamada para acao|placeholder)\b|^\W*$")
PLACEHOLDER_RE = re.compile(r"^\s*(\.{2,}|…|-+|n/?a|tbd|xxx|\[.*\])\s*$", re.IGNORECASE)

ADDRESS_RE = re.compile(r"\b(voce|voces|seu|sua|seus|suas|te|tu|contigo|agora|hoje)\b")
SPOKEN_ADDRESS_RE = re.compile(r"\b(voce|voces|eu|a gente|seu|sua|te|nos|meu|minha|vem|olha)\b")
HOOK_KEYWORD_RE = re.compile(
    r"\b(erro\w*|errando|problema\w*|perde\w*|trava\w*|segredo\w*|pare|para tudo|ninguem|nunca|"
    r"resultado\w*|ganh\w*|melhor\w*|rapido|simples|facil|dobr\w*|evite|cuidado|verdade|descobr\w*|"
    r"muda\w*|economiz\w*|lucr\w*)\b"
)
CTA_LITERAL_RE = re.compile(
    r"\b(coment[ae]\w*|salv[ae]\w*|compartilh\w*|direct|dm|me chama|me segue|segue|siga|link|clica|"
    r"clique|manda (esse|essa|para|pra)|inscreve\w*)\b"
)
NUMERIC_CUE_RE = re.compile(
    r"\d|\b(um|uma|dois|duas|tres|quatro|cinco|seis|sete|oito|nove|dez|primeir\w*|segund\w*|terceir\w*)\b"
)
POSITIONAL_CUE_RE = re.compile(
    r"\b(close|plano|camera|lente|tela|esquerda|direita|frente|lado|cima|baixo|passo\w*|antes|depois|"
    r"centro|quadro|zoom|corte|mesa|mao\w*|dedos)\b"
)

LEGACY_LABEL_RE = re.compile(
    r"^\s*[\[\(\*#]*\s*(?:cena\s*\d+\s*[:\-–]\s*)?"
    r"(gancho|hook|abertura|introducao|contexto|problema|desenvolvimento|demonstracao|solucao|"
    r"passo a passo|prova|resultado|reforco|resumo|cta|chamada para acao|chamada|fechamento|encerramento)"
    r"\s*[\]\)\*]*\s*[:\-–]\s*"
)
LEGACY_SCENE_LINE_RE = re.compile(r"^\s*[\[\(\*#]*\s*cena\s*\d+\s*[\]\)\*]*\s*[:\-–]?\s*")
_TIME_RANGE_RE = re.compile(r"^(\d{1,2})\s*-\s*(\d{1,2})s$")


# ============================================================================
# Inference helpers
# ============================================================================

def infer_script_objective(prompt: str) -> str:
    """convert, authority, engage or educate, from prompt keywords."""
    folded = normalize_for_matching(prompt)
    for objective, pattern in OBJECTIVE_PATTERNS:
        if pattern.search(folded):
            return objective
    return DEFAULT_OBJECTIVE


def infer_script_topic(prompt: str) -> str:
    hint = extract_subject_hint(prompt or "")
    source = hint or prompt or ""
    words = [w for w in re.findall(r"[^\W_][\w/\-]*", source) if hint or normalize_for_matching(w) not in TOPIC_FILLER]
    if not words:
        return DEFAULT_TOPIC
    return " ".join(words[:MAX_TOPIC_WORDS])


def normalize_heading(raw: Optional[str]) -> Optional[str]:
    """Map a free-form heading to a canonical one, or None."""
    folded = normalize_for_matching(raw or "").strip(" :-")
    if not folded:
        return None
    if folded in HEADING_ALIASES:
        return HEADING_ALIASES[folded]
    for alias in sorted(HEADING_ALIASES, key=len, reverse=True):
        if re.match(rf"{re.escape(alias)}\b", folded):
            return HEADING_ALIASES[alias]
    return None


def clamp_text(value: str, limit: int) -> str:
    text = (value or "").strip()
    if len(text) <= limit:
        return text
    cut = text[:limit]
    space = cut.rfind(" ")
    return (cut[:space] if space > limit * 0.6 else cut).rstrip(" ,;:-")


def is_instructional_line(text: str) -> bool:
    """Speech that tells the creator what to do instead of being said on camera."""
    folded = normalize_for_matching(text)
    if not folded:
        return True
    return bool(INSTRUCTIONAL_SPEECH_RE.search(folded) or META_SPEECH_RE.search(folded))


def _is_placeholder(text: str) -> bool:
    return not (text or "").strip() or bool(PLACEHOLDER_RE.match(text))


# ============================================================================
# Scene synthesis
# ============================================================================

def _short_topic(topic: str) -> str:
    return " ".join((topic or DEFAULT_TOPIC).split()[:MAX_TOPIC_WORDS])


def _cta_scene(topic: str, objective: str) -> Tuple[str, str]:
    if objective == "convert":
        return (
            "Comenta QUERO",
            f"Se você quer aplicar isso em {topic} com o meu passo a passo, comenta QUERO agora que eu te mando o link.",
        )
    if objective == "authority":
        return (
            "Segue para a parte 2",
            f"Se isso fez sentido para você, me segue agora e salva este vídeo para revisar antes de começar em {topic}.",
        )
    if objective == "engage":
        return (
            "Comenta aqui embaixo",
            f"E você, já passou por isso em {topic}? Comenta aqui embaixo agora e manda esse vídeo para quem precisa ver.",
        )
    return (
        "Salva pra depois",
        f"Salva este vídeo agora para não esquecer e comenta qual passo você vai testar primeiro em {topic}.",
    )


def synthesize_scene(heading: str, position: int, total: int, topic: str, objective: str) -> TechnicalScene:
    """
    Default scene for a heading.

    Args:
        heading: Canonical heading
        position: 0-based scene position
        total: Scene count (4-6) used for the timeline
        topic: Short topic inferred from the prompt
        objective: convert, authority, engage or educate
    """
    topic = _short_topic(topic)
    timeline = TIMELINES.get(max(4, min(6, total)), TIMELINES[6])
    time_code = timeline[min(position, len(timeline) - 1)]

    if heading == HOOK:
        return TechnicalScene(
            heading=HOOK, time_code=time_code,
            framing="Close no rosto, câmera na altura dos olhos",
            action="Entra em quadro andando até a câmera e para a 1 passo da lente",
            on_screen_text=f"O erro nº 1 em {topic}",
            speech=f"Se você ainda trava em {topic}, para tudo agora: tem um erro simples que está te fazendo perder resultado.",
            direction="Tom urgente e próximo, olhar fixo na lente, pausa curta antes de 'para tudo'",
        )
    if heading == CONTEXT:
        return TechnicalScene(
            heading=CONTEXT, time_code=time_code,
            framing="Plano médio com leve movimento lateral",
            action="Caminha pelo ambiente e aponta para 2 exemplos que aparecem na tela ao lado",
            on_screen_text="Por que isso acontece?",
            speech=f"A maioria das pessoas tenta resolver {topic} no improviso, e é por isso que você sente que faz tudo certo e nada muda.",
            direction="Ritmo conversacional, expressão de quem entende a dor, mãos abertas",
        )
    if heading == PROOF:
        return TechnicalScene(
            heading=PROOF, time_code=time_code,
            framing="Plano fechado com o resultado em destaque na tela",
            action="Aponta para o antes e depois na lateral da tela e se aproxima 1 passo da câmera",
            on_screen_text="Antes x Depois",
            speech=f"Quando eu apliquei isso em {topic}, o resultado apareceu em 2 semanas, e você consegue repetir o mesmo caminho.",
            direction="Tom de prova real, sorriso contido, pausa de 1 segundo no resultado",
        )
    if heading == REINFORCEMENT:
        return TechnicalScene(
            heading=REINFORCEMENT, time_code=time_code,
            framing="Plano médio frontal",
            action="Recapitula com 3 gestos rápidos, um para cada ponto, mantendo contato visual",
            on_screen_text="Resumo em 3 pontos",
            speech=f"Então lembra: objetivo claro, método repetido e medição semanal; é isso que muda o jogo em {topic} para você.",
            direction="Energia crescente, ritmo mais rápido, tom de fechamento",
        )
    if heading == CTA:
        on_screen, speech = _cta_scene(topic, objective)
        return TechnicalScene(
            heading=CTA, time_code=time_code,
            framing="Close frontal com câmera estável",
            action="Aponta para a legenda e para o botão de salvar na tela e termina com aceno de 1 segundo",
            on_screen_text=on_screen,
            speech=speech,
            direction="Sorriso aberto, tom convidativo e direto, pausa final olhando para a lente",
        )
    return TechnicalScene(
        heading=DEMONSTRATION, time_code=time_code,
        framing="Close nas mãos alternando com plano médio",
        action="Conta nos dedos o passo 1 e o passo 2, com corte seco a cada etapa e texto acompanhando",
        on_screen_text="Passo 1 → Passo 2",
        speech=f"É simples: primeiro você define um único objetivo para {topic}, depois repete o mesmo método por 7 dias e mede o que mudou.",
        direction="Didático e confiante, ênfase nos números, gesto contando nos dedos",
    )


def build_default_scenes(topic: str, objective: str, scene_count: int = 4) -> List[TechnicalScene]:
    count = max(ScriptQualityPolicy.MIN_SCENES, min(ScriptQualityPolicy.MAX_SCENES, scene_count))
    plan = SCENE_PLANS[count]
    return [synthesize_scene(heading, i, count, topic, objective) for i, heading in enumerate(plan)]


# ============================================================================
# Parsing & reconciliation
# ============================================================================

@dataclass
class _SceneDraft:
    scene: TechnicalScene
    synthesized: Set[str] = field(default_factory=set)

    def copy(self) -> "_SceneDraft":
        return _SceneDraft(self.scene.copy(), set(self.synthesized))


def _compact(text: str) -> str:
    text = re.sub(r"[*_`]{1,3}", "", text or "")
    text = re.sub(r"^\s*[-•]\s+", "", text, flags=re.MULTILINE)
    return re.sub(r"\s+", " ", text).strip().strip('"“”')


def _fold_line(line: str) -> Tuple[str, str]:
    """(NFC line, folded line of the same length) for offset-safe matching."""
    nfc = unicodedata.normalize("NFC", line)
    folded = strip_diacritics(nfc).lower()
    return nfc, folded


def _legacy_sections(text: str) -> List[Tuple[Optional[str], str]]:
    sections: List[Tuple[Optional[str], List[str]]] = []
    labelled = False
    for raw_line in text.splitlines():
        line, folded = _fold_line(raw_line)
        match = LEGACY_LABEL_RE.match(folded) or LEGACY_SCENE_LINE_RE.match(folded)
        if match:
            labelled = True
            heading = normalize_heading(match.group(1)) if match.re is LEGACY_LABEL_RE else None
            body = line[match.end():] if len(line) == len(folded) else folded[match.end():]
            sections.append((heading, [body]))
        elif sections:
            sections[-1][1].append(line)
        else:
            sections.append((None, [line]))

    if not labelled:
        return []
    result = []
    for heading, lines in sections:
        body = _compact("\n".join(lines))
        if body or heading:
            result.append((heading, body))
    return result


def _table_rows(text: str) -> List[List[str]]:
    rows = []
    for line in text.splitlines():
        if not line.strip().startswith("|"):
            continue
        cells = split_table_row(line)
        if len(cells) < 5 or normalize_for_matching(cells[0]) in ("tempo", "time"):
            continue
        if all(re.fullmatch(r":?-{3,}:?", cell.replace(" ", "")) for cell in cells if cell):
            continue
        rows.append(cells)
    return rows


def _merge_scene_pair(first: _SceneDraft, second: _SceneDraft) -> _SceneDraft:
    a, b = first.scene, second.scene
    merged = a.copy()
    for name in SCENE_FIELDS:
        left, right = getattr(a, name).strip(), getattr(b, name).strip()
        if not left:
            setattr(merged, name, right)
        elif right and name in ("speech", "action"):
            setattr(merged, name, f"{left} {right}")
        elif right and name == "on_screen_text":
            setattr(merged, name, f"{left} / {right}")
    start, end = _TIME_RANGE_RE.match(a.time_code.strip()), _TIME_RANGE_RE.match(b.time_code.strip())
    if start and end:
        merged.time_code = f"{start.group(1)}-{end.group(2)}s"
    return _SceneDraft(merged, first.synthesized & second.synthesized)


def _parse_drafts(content: str) -> Tuple[List[_SceneDraft], bool]:
    """Scenes found in content, and whether a legacy conversion was needed."""
    content = (content or "")[:CONTENT_MAX_LENGTH * 2]
    if is_technical_script(content):
        scenes = parse_technical_scenes(content)
        if scenes:
            return [_SceneDraft(scene) for scene in scenes], False

    text = content.replace(SCRIPT_START_TAG, "").replace(SCRIPT_END_TAG, "").strip()
    if not text:
        return [], False

    rows = _table_rows(text)
    if rows:
        return [_SceneDraft(TechnicalScene(**dict(zip(SCENE_FIELDS, (row + [""] * 6)[:6])))) for row in rows], True

    sections = _legacy_sections(text)
    if sections:
        drafts = [_SceneDraft(TechnicalScene(heading=heading or "", speech=body)) for heading, body in sections]
    else:
        chunks = split_paragraphs(text)
        if len(chunks) < 2:
            chunks = split_sentences(text)
        drafts = [_SceneDraft(TechnicalScene(speech=_compact(chunk))) for chunk in chunks if _compact(chunk)]

    if drafts and len(drafts) < ScriptQualityPolicy.MAX_SCENES:
        last = drafts[-1].scene
        if normalize_heading(last.heading) != CTA and not CTA_LITERAL_RE.search(normalize_for_matching(last.speech)):
            # keep the creator's closing line; the CTA becomes its own scene
            drafts.append(_SceneDraft(TechnicalScene(heading=CTA), set()))
    return drafts, True


def _reconcile(drafts: List[_SceneDraft], topic: str, objective: str) -> List[_SceneDraft]:
    drafts = [d.copy() for d in drafts]

    while len(drafts) > ScriptQualityPolicy.MAX_SCENES:
        # fold the surplus into the scene before the closing one
        surplus = drafts.pop(-2)
        drafts[-2] = _merge_scene_pair(drafts[-2], surplus)

    if not drafts:
        return [_SceneDraft(scene, set(SCENE_FIELDS)) for scene in build_default_scenes(topic, objective)]

    while len(drafts) < ScriptQualityPolicy.MIN_SCENES:
        used = {normalize_heading(d.scene.heading) for d in drafts}
        last = drafts[-1].scene
        closes_with_cta = CTA in used or bool(CTA_LITERAL_RE.search(normalize_for_matching(last.speech)))
        if closes_with_cta:
            heading = next((h for h in (CONTEXT, DEMONSTRATION, PROOF, REINFORCEMENT, HOOK) if h not in used), DEMONSTRATION)
            drafts.insert(len(drafts) - 1, _SceneDraft(TechnicalScene(heading=heading)))
        else:
            drafts.append(_SceneDraft(TechnicalScene(heading=CTA)))

    total = len(drafts)
    plan = SCENE_PLANS[total]
    headings = [normalize_heading(d.scene.heading) or plan[i] for i, d in enumerate(drafts)]
    headings[-1] = CTA
    for i in range(total - 1):
        if headings[i] == CTA:
            headings[i] = next((h for h in CTA_REPLACEMENTS if h not in headings), DEMONSTRATION)

    for i, draft in enumerate(drafts):
        draft.scene.heading = headings[i]
        defaults = synthesize_scene(headings[i], i, total, topic, objective)
        for name in SCENE_FIELDS:
            if _is_placeholder(getattr(draft.scene, name)):
                setattr(draft.scene, name, getattr(defaults, name))
                draft.synthesized.add(name)
    return drafts


# ============================================================================
# Quality scoring
# ============================================================================

def score_hook_strength(scene: Optional[TechnicalScene]) -> float:
    if scene is None or not scene.speech.strip():
        return 0.0
    folded = normalize_for_matching(scene.speech)
    words = len(tokenize(folded))
    score = 0.0
    if 8 <= words <= 26:
        score += 0.4
    elif 5 <= words <= 34:
        score += 0.2
    if ADDRESS_RE.search(folded):
        score += 0.3
    if HOOK_KEYWORD_RE.search(folded):
        score += 0.3
    if is_instructional_line(scene.speech):
        score *= 0.4
    return min(1.0, score)


def _scene_specificity(scene: TechnicalScene) -> float:
    cues = normalize_for_matching(" ".join([scene.action, scene.on_screen_text, scene.speech]))
    score = 0.0
    if NUMERIC_CUE_RE.search(cues) or POSITIONAL_CUE_RE.search(cues):
        score += 0.5
    if len(scene.action.strip()) >= 24:
        score += 0.5
    return score


def _scene_speakability(scene: TechnicalScene) -> float:
    if not scene.speech.strip() or is_instructional_line(scene.speech):
        return 0.0
    folded = normalize_for_matching(scene.speech)
    words = len(tokenize(folded))
    if 8 <= words <= 34:
        score = 0.6
    elif words >= 4:
        score = 0.3
    else:
        score = 0.1
    if SPOKEN_ADDRESS_RE.search(folded):
        score += 0.4
    return min(1.0, score)


def score_cta_strength(scene: Optional[TechnicalScene]) -> float:
    if scene is None or not scene.speech.strip():
        return 0.0
    folded = normalize_for_matching(scene.speech)
    literal = bool(CTA_LITERAL_RE.search(folded))
    score = 0.6 if literal else 0.0
    if ADDRESS_RE.search(folded):
        score += 0.2
    if len(tokenize(folded)) >= 6:
        score += 0.2
    if not literal:
        score = min(score, 0.4)
    if is_instructional_line(scene.speech):
        score = min(score, 0.3)
    return min(1.0, score)


def _diversity(scenes: List[TechnicalScene]) -> float:
    lines = [normalize_for_matching(s.speech) for s in scenes if s.speech.strip()]
    if not lines:
        return 0.0
    unique_ratio = len(set(lines)) / len(lines)
    tokens = [token for line in lines for token in tokenize(line)]
    vocabulary = (len(set(tokens)) / len(tokens)) if tokens else 0.0
    return 0.6 * unique_ratio + 0.4 * min(1.0, vocabulary / 0.6)


def score_scenes(scenes: List[TechnicalScene]) -> TechnicalScriptQualityScore:
    count = len(scenes)
    if not count:
        return TechnicalScriptQualityScore(scene_count=0)

    hook = score_hook_strength(scenes[0])
    specificity = sum(_scene_specificity(s) for s in scenes) / count
    speakability = sum(_scene_speakability(s) for s in scenes) / count
    cta = score_cta_strength(scenes[-1])
    diversity = _diversity(scenes)

    perceived = 0.25 * hook + 0.2 * specificity + 0.2 * speakability + 0.2 * cta + 0.15 * diversity
    if count < ScriptQualityPolicy.MIN_SCENES:
        perceived *= count / ScriptQualityPolicy.MIN_SCENES

    def clamp(value: float) -> float:
        return round(max(0.0, min(1.0, value)), 4)

    return TechnicalScriptQualityScore(
        perceived_quality=clamp(perceived),
        hook_strength=clamp(hook),
        specificity_score=clamp(specificity),
        speakability_score=clamp(speakability),
        cta_strength=clamp(cta),
        diversity_score=clamp(diversity),
        scene_count=count,
    )


def evaluate_technical_script_quality(content: str) -> TechnicalScriptQualityScore:
    """Score a technical script as written (no normalization)."""
    return score_scenes(parse_technical_scenes(content) if is_technical_script(content) else [])


def needs_polish(quality: TechnicalScriptQualityScore) -> bool:
    policy = ScriptQualityPolicy
    return (
        quality.perceived_quality < policy.MIN_PERCEIVED_QUALITY
        or quality.hook_strength < policy.MIN_HOOK_STRENGTH
        or quality.specificity_score < policy.MIN_SPECIFICITY
        or quality.speakability_score < policy.MIN_SPEAKABILITY
        or quality.cta_strength < policy.MIN_CTA_STRENGTH
        or quality.scene_count < policy.MIN_SCENES
    )


# ============================================================================
# Polish & enforcement
# ============================================================================

def _polish(drafts: List[_SceneDraft], topic: str, objective: str) -> List[_SceneDraft]:
    polished = [d.copy() for d in drafts]
    total = len(polished)

    def replace(draft: _SceneDraft, name: str, defaults: TechnicalScene) -> None:
        setattr(draft.scene, name, getattr(defaults, name))
        draft.synthesized.add(name)

    for i, draft in enumerate(polished):
        scene = draft.scene
        defaults = synthesize_scene(scene.heading, i, total, topic, objective)
        if is_instructional_line(scene.speech) or len(tokenize(scene.speech)) < 4:
            replace(draft, "speech", defaults)
        if _is_placeholder(scene.on_screen_text) or len(scene.on_screen_text.strip()) < 3:
            replace(draft, "on_screen_text", defaults)
        if _is_placeholder(scene.direction) or len(tokenize(scene.direction)) < 3:
            replace(draft, "direction", defaults)
        if _is_placeholder(scene.framing):
            replace(draft, "framing", defaults)
        if len(scene.action.strip()) < 24:
            replace(draft, "action", defaults)

    first, last = polished[0], polished[-1]
    if score_hook_strength(first.scene) < ScriptQualityPolicy.MIN_HOOK_STRENGTH:
        replace(first, "speech", synthesize_scene(HOOK, 0, total, topic, objective))
    if score_cta_strength(last.scene) < ScriptQualityPolicy.MIN_CTA_STRENGTH:
        replace(last, "speech", synthesize_scene(CTA, total - 1, total, topic, objective))
    return polished


@dataclass
class ContractOutcome:
    draft: ScriptDraft
    quality: TechnicalScriptQualityScore
    report: ContractReport


def _build_report(drafts: List[_SceneDraft], report: ContractReport) -> ContractReport:
    report.synthesized_fields = {
        i: [name for name in SCENE_FIELDS if name in d.synthesized]
        for i, d in enumerate(drafts, start=1) if d.synthesized
    }
    report.synthesized_scenes = [
        i for i, d in enumerate(drafts, start=1) if set(SCENE_FIELDS) <= d.synthesized
    ]
    return report


def default_title(topic: str) -> str:
    return clamp_text(f"Roteiro: {topic}", TITLE_MAX_LENGTH)


def enforce_technical_script_contract(draft: ScriptDraft, fallback_prompt: str = "") -> ContractOutcome:
    """
    Normalize a draft into the canonical technical script.

    Args:
        draft: Model output or existing script (technical or free-form)
        fallback_prompt: Request text used to infer topic/objective for
            synthesized scenes

    Returns:
        ContractOutcome with 4-6 complete scenes (last one CTA), the final
        quality score and a report of every synthesized field
    """
    seed = fallback_prompt or draft.title or ""
    topic = infer_script_topic(seed)
    objective = infer_script_objective(f"{fallback_prompt} {draft.title}")

    parsed, legacy = _parse_drafts(draft.content)
    drafts = _reconcile(parsed, topic, objective)
    quality = score_scenes([d.scene for d in drafts])
    report = ContractReport(legacy_converted=legacy)

    if needs_polish(quality):
        report.quality_before_polish = quality
        polished = _polish(drafts, topic, objective)
        polished_quality = score_scenes([d.scene for d in polished])
        if polished_quality.perceived_quality > quality.perceived_quality:
            drafts, quality = polished, polished_quality
            report.polish_applied = True
        elif quality.perceived_quality < ScriptQualityPolicy.REGENERATE_BELOW:
            defaults = build_default_scenes(topic, objective, len(drafts))
            drafts = [_SceneDraft(scene, set(SCENE_FIELDS)) for scene in defaults]
            quality = score_scenes(defaults)
            report.regenerated_from_defaults = True
            logger.warning(f"Script regenerated from defaults (perceived quality {report.quality_before_polish.perceived_quality})")

    content = render_technical_script([d.scene for d in drafts])
    title = clamp_text(draft.title, TITLE_MAX_LENGTH) or default_title(topic)
    return ContractOutcome(
        draft=ScriptDraft(title=title, content=content[:CONTENT_MAX_LENGTH]),
        quality=quality,
        report=_build_report(drafts, report),
    )


def convert_legacy_script_to_technical(content: str, prompt: str = "") -> str:
    """
    Convert a free-form script to canonical form without polishing.

    Canonical content is re-rendered as-is (apart from heading/shape repairs).
    """
    topic = infer_script_topic(prompt)
    objective = infer_script_objective(prompt)
    parsed, _ = _parse_drafts(content)
    return render_technical_script([d.scene for d in _reconcile(parsed, topic, objective)])
