"""
Category Catalog - closed, versioned catalog of the five script dimensions.

Every category has a stable id and a pt-BR label. Proposal, format and tone
are flat; context and references are grouped with nested subcategories.
Free-text values are resolved to ids here and nowhere else, so raw synonyms
never reach storage or comparisons.

Usage:
    from scriptintel.services.category_catalog import normalize_category_id

    normalize_category_id("context", "Carreira/Trabalho")  # -> "career_work"
"""

from dataclasses import dataclass, field
from functools import lru_cache
from typing import Dict, List, Optional, Tuple

from .text_features import normalize_for_matching as fold_text

CATALOG_VERSION = "script_categories_v1"

# Business rule: scripts are always produced for the short-video format.
SHORT_VIDEO_FORMAT = "reel"

DEFAULT_CATEGORIES: Dict[str, str] = {
    "proposal": "tips",
    "context": "general",
    "format": SHORT_VIDEO_FORMAT,
    "tone": "educational",
    "references": "pop_culture",
}

HUMOR_DEFAULTS: Dict[str, str] = {
    "tone": "humorous",
    "proposal": "humor_scene",
}


@dataclass(frozen=True)
class Category:
    id: str
    label: str
    children: Tuple["Category", ...] = field(default_factory=tuple)


def _c(id: str, label: str, *children: Category) -> Category:
    return Category(id=id, label=label, children=tuple(children))


FORMAT_CATEGORIES = (
    _c("reel", "Reel"),
    _c("photo", "Foto"),
    _c("carousel", "Carrossel"),
    _c("story", "Story"),
    _c("live", "Live"),
    _c("long_video", "Vídeo Longo"),
)

PROPOSAL_CATEGORIES = (
    _c("announcement", "Anúncio"),
    _c("behind_the_scenes", "Bastidores"),
    _c("call_to_action", "Chamada"),
    _c("clip", "Clipe"),
    _c("comparison", "Comparação"),
    _c("giveaway", "Sorteio/Giveaway"),
    _c("humor_scene", "Humor/Cena"),
    _c("lifestyle", "LifeStyle"),
    _c("message_motivational", "Mensagem/Motivacional"),
    _c("news", "Notícia"),
    _c("participation", "Participação"),
    _c("positioning_authority", "Posicionamento/Autoridade"),
    _c("publi_divulgation", "Publi/Divulgação"),
    _c("q&a", "Perguntas e Respostas"),
    _c("react", "React"),
    _c("review", "Review"),
    _c("tips", "Dicas"),
    _c("trend", "Trend"),
    _c("unboxing", "Unboxing"),
)

CONTEXT_CATEGORIES = (
    _c(
        "lifestyle_and_wellbeing", "Estilo de Vida e Bem-Estar",
        _c("fashion_style", "Moda/Estilo"),
        _c("beauty_personal_care", "Beleza/Cuidados Pessoais"),
        _c("fitness_sports", "Fitness/Esporte"),
        _c("food_culinary", "Alimentação/Culinária"),
        _c("health_wellness", "Saúde/Bem-Estar"),
    ),
    _c(
        "personal_and_professional", "Pessoal e Profissional",
        _c("relationships_family", "Relacionamentos/Família"),
        _c("parenting", "Parentalidade"),
        _c("career_work", "Carreira/Trabalho"),
        _c("finance", "Finanças"),
        _c("personal_development", "Desenvolvimento Pessoal"),
        _c("education", "Educação/Estudos"),
    ),
    _c(
        "hobbies_and_interests", "Hobbies e Interesses",
        _c("travel_tourism", "Viagem/Turismo"),
        _c("home_decor_diy", "Casa/Decor/DIY"),
        _c("technology_digital", "Tecnologia/Digital"),
        _c("art_culture", "Arte/Cultura"),
        _c("gaming", "Games/Jogos"),
        _c("automotive", "Automotivo"),
        _c("pets", "Animais de Estimação"),
        _c("nature_animals", "Natureza/Animais Selvagens"),
    ),
    _c(
        "science_and_knowledge", "Ciência e Conhecimento",
        _c("science_communication", "Divulgação Científica"),
        _c("history", "História"),
        _c("curiosities", "Curiosidades"),
    ),
    _c(
        "social_and_events", "Social e Eventos",
        _c("events_celebrations", "Eventos/Celebrações"),
        _c("social_causes_religion", "Social/Causas/Religião"),
    ),
    _c("general", "Geral"),
)

TONE_CATEGORIES = (
    _c("humorous", "Humorístico"),
    _c("inspirational", "Inspirador/Motivacional"),
    _c("educational", "Educacional/Informativo"),
    _c("critical", "Crítico/Analítico"),
    _c("promotional", "Promocional/Comercial"),
    _c("neutral", "Neutro/Descritivo"),
)

REFERENCE_CATEGORIES = (
    _c(
        "pop_culture", "Cultura Pop",
        _c("pop_culture_movies_series", "Filmes e Séries"),
        _c("pop_culture_books", "Livros"),
        _c("pop_culture_games", "Games"),
        _c("pop_culture_music", "Música"),
        _c("pop_culture_internet", "Cultura da Internet"),
    ),
    _c(
        "people_and_groups", "Pessoas e Grupos",
        _c("regional_stereotypes", "Estereótipos Regionais"),
        _c("professions", "Profissões"),
    ),
    _c(
        "geography", "Geografia",
        _c("city", "Cidade"),
        _c("country", "País"),
    ),
)

CATALOG: Dict[str, Tuple[Category, ...]] = {
    "proposal": PROPOSAL_CATEGORIES,
    "context": CONTEXT_CATEGORIES,
    "format": FORMAT_CATEGORIES,
    "tone": TONE_CATEGORIES,
    "references": REFERENCE_CATEGORIES,
}


def _fold_key(value: str) -> str:
    return fold_text(value.replace("_", " "))


def flatten_categories(dimension: str) -> List[Category]:
    """All categories of a dimension, parents before their children."""
    flat: List[Category] = []

    def walk(nodes: Tuple[Category, ...]) -> None:
        for node in nodes:
            flat.append(node)
            walk(node.children)

    walk(CATALOG.get(dimension, ()))
    return flat


@lru_cache(maxsize=None)
def _lookup(dimension: str) -> Dict[str, Category]:
    index: Dict[str, Category] = {}
    for category in flatten_categories(dimension):
        index.setdefault(_fold_key(category.id), category)
        index.setdefault(_fold_key(category.label), category)
    return index


def get_category_by_id(dimension: str, category_id: str) -> Optional[Category]:
    for category in flatten_categories(dimension):
        if category.id == category_id:
            return category
    return None


def normalize_category_id(dimension: str, value: Optional[str]) -> Optional[str]:
    """
    Resolve an id, label or underscore/space variant to a canonical id.

    Args:
        dimension: One of the five dimensions
        value: Raw stored or user value

    Returns:
        Canonical id, or None when the value is not in the catalog
    """
    if not value or not isinstance(value, str):
        return None
    category = _lookup(dimension).get(_fold_key(value))
    return category.id if category else None


def category_label(dimension: str, category_id: Optional[str]) -> str:
    if not category_id:
        return ""
    category = get_category_by_id(dimension, category_id)
    return category.label if category else category_id


def category_query_values(dimension: str, category_id: str) -> List[str]:
    """Values a stored row may use for this category: id, label, spaced id."""
    values = [category_id]
    category = get_category_by_id(dimension, category_id)
    if category and category.label not in values:
        values.append(category.label)
    spaced = category_id.replace("_", " ")
    if spaced not in values:
        values.append(spaced)
    return values


def category_match_terms(dimension: str) -> List[Tuple[str, str]]:
    """
    (category_id, folded term) pairs used to detect categories in free text.

    Terms are the spaced id, the full label and each ``/``-separated part of
    the label. Catalog keywords are deliberately not terms.
    """
    pairs: List[Tuple[str, str]] = []
    seen = set()
    for category in flatten_categories(dimension):
        candidates = [category.id.replace("_", " "), category.label]
        if "/" in category.label:
            candidates.extend(part for part in category.label.split("/"))
        for candidate in candidates:
            term = fold_text(candidate)
            if term and (category.id, term) not in seen:
                seen.add((category.id, term))
                pairs.append((category.id, term))
    return pairs
