"""
Model tier routing for script generation.

Pure generation defaults to the premium tier and adjustments to the base
tier. An adjustment is promoted to premium by explicit premium phrasing or
by a prompt complexity score at or above the configured threshold. A
premium selection always carries the base model as its fallback.
"""

import logging
import re

from ..core.config import Config
from .models import ModelSelection, ModelTier
from .text_features import normalize_for_matching, split_sentences

logger = logging.getLogger(__name__)

OPERATION_GENERATE = "generate"
OPERATION_ADJUST = "adjust"

PREMIUM_INTENT_RE = re.compile(
    r"\b(premium|storytelling|cinematografic\w*|alta qualidade|nivel profissional|"
    r"versao (mais )?(elaborada|sofisticada|completa|caprichada)|super detalhad\w*|muito detalhad\w*|"
    r"capricha\w*|melhor versao possivel)\b"
)
CONSTRAINT_TERMS_RE = re.compile(
    r"\b(tom de voz|persona|publico\w*|objetivo|estrutura|restric\w*|obrigatori\w*|sem usar|evite|"
    r"nao use|inclua|mantenha|limite|segundos|gancho|cta|cenas?|referencia\w*|storytelling|"
    r"detalhad\w*|formato|roteiro completo)\b"
)
BULLET_RE = re.compile(r"^\s*(?:[-*•]|\d+[.)])\s+", re.MULTILINE)

MAX_CONSTRAINT_POINTS = 3


def has_premium_intent(prompt: str) -> bool:
    return bool(PREMIUM_INTENT_RE.search(normalize_for_matching(prompt)))


def compute_prompt_complexity(prompt: str) -> int:
    """
    Score prompt complexity.

    One point each for length >= 280 and >= 600 chars, up to three points
    for distinct constraint keywords, one for 4+ sentences, one for 3+
    non-empty lines and one for 2+ bullet items.
    """
    text = prompt or ""
    folded = normalize_for_matching(text)
    score = 0
    if len(text) >= 280:
        score += 1
    if len(text) >= 600:
        score += 1
    constraints = {m.group(0) for m in CONSTRAINT_TERMS_RE.finditer(folded)}
    score += min(MAX_CONSTRAINT_POINTS, len(constraints))
    if len(split_sentences(text)) >= 4:
        score += 1
    if len([line for line in text.splitlines() if line.strip()]) >= 3:
        score += 1
    if len(BULLET_RE.findall(text)) >= 2:
        score += 1
    return score


def select_script_model_for_prompt(prompt: str, operation: str = OPERATION_GENERATE) -> ModelSelection:
    """
    Pick the model for a generation/adjustment call.

    Args:
        prompt: The creator's request text
        operation: "generate" or "adjust"

    Returns:
        ModelSelection with the chosen model, tier, routing reason and the
        base-tier fallback for premium calls
    """
    base_model = Config.get_base_model()
    premium_model = Config.get_premium_model()
    complexity = compute_prompt_complexity(prompt)

    def premium(reason: str) -> ModelSelection:
        return ModelSelection(
            model=premium_model,
            tier=ModelTier.PREMIUM,
            reason=reason,
            complexity_score=complexity,
            fallback_model=base_model if base_model != premium_model else None,
        )

    def base(reason: str) -> ModelSelection:
        return ModelSelection(model=base_model, tier=ModelTier.BASE, reason=reason, complexity_score=complexity)

    if not Config.is_hybrid_enabled():
        return base("hybrid_disabled")

    routing = Config.is_operation_routing_enabled()
    if routing and operation == OPERATION_GENERATE:
        return premium("operation_generate_default")
    if has_premium_intent(prompt):
        return premium("explicit_intent")
    if complexity >= Config.get_hybrid_score_threshold():
        return premium("complexity_score")
    return base("operation_adjust_default" if routing else "default")
