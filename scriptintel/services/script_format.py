"""
Canonical technical script grammar.

A technical script is wrapped in ``[ROTEIRO_TECNICO_V1]`` ... ``[/ROTEIRO_TECNICO_V1]``
and holds ordered scenes. Each scene is a ``[CENA N: HEADING]`` line followed by
a fixed six-column header row, a separator row and exactly one data row:

    [CENA 1: GANCHO]
    | Tempo | Enquadramento | Ação/Movimento | Texto na Tela | Fala (literal) | Direção de Performance |
    | :--- | :--- | :--- | :--- | :--- | :--- |
    | 00-03s | Close no rosto | ... | ... | ... | ... |

Scene blocks are separated by one blank line, so each scene is also a
paragraph when a script is split on blank lines.
"""

import re
from dataclasses import dataclass, fields as dataclass_fields
from typing import List, Optional

SCRIPT_START_TAG = "[ROTEIRO_TECNICO_V1]"
SCRIPT_END_TAG = "[/ROTEIRO_TECNICO_V1]"
TABLE_HEADER = (
    "| Tempo | Enquadramento | Ação/Movimento | Texto na Tela "
    "| Fala (literal) | Direção de Performance |"
)
TABLE_SEPARATOR = "| :--- | :--- | :--- | :--- | :--- | :--- |"

SCENE_FIELDS = ("time_code", "framing", "action", "on_screen_text", "speech", "direction")

# Strict heading used by the parser.
SCENE_HEADING_RE = re.compile(
    r"^[ \t]*\[[ \t]*(?:CENA|SCENE)[ \t]*#?[ \t]*(\d{1,3})[ \t]*(?::[ \t]*([^\]\n]*?))?[ \t]*\][ \t]*$",
    re.IGNORECASE | re.MULTILINE,
)

# Loose heading used to segment scripts that are only partially canonical,
# e.g. "CENA 2 - Contexto" or "[Cena 2]".
LOOSE_SCENE_HEADING_RE = re.compile(
    r"^[ \t]*\[?[ \t]*(?:CENA|SCENE)[ \t]*#?[ \t]*(\d{1,3})\b[^\n]*$",
    re.IGNORECASE | re.MULTILINE,
)

WRAPPER_TAG_RE = re.compile(r"^[ \t]*\[/?ROTEIRO_TECNICO_V1\][ \t]*$", re.IGNORECASE | re.MULTILINE)

_SEPARATOR_CELL_RE = re.compile(r"^:?-{3,}:?$")


@dataclass
class TechnicalScene:
    """One shootable beat of a technical script."""
    heading: str = ""
    time_code: str = ""
    framing: str = ""
    action: str = ""
    on_screen_text: str = ""
    speech: str = ""
    direction: str = ""

    def row(self) -> List[str]:
        return [getattr(self, name) for name in SCENE_FIELDS]

    def missing_fields(self) -> List[str]:
        return [name for name in SCENE_FIELDS if not getattr(self, name).strip()]

    def copy(self) -> "TechnicalScene":
        return TechnicalScene(**{f.name: getattr(self, f.name) for f in dataclass_fields(self)})


def split_table_row(line: str) -> List[str]:
    stripped = line.strip()
    if stripped.startswith("|"):
        stripped = stripped[1:]
    if stripped.endswith("|"):
        stripped = stripped[:-1]
    return [cell.strip() for cell in stripped.split("|")]


def _is_header_row(cells: List[str]) -> bool:
    return bool(cells) and cells[0].strip().lower() in ("tempo", "time")


def _is_separator_row(cells: List[str]) -> bool:
    return bool(cells) and all(_SEPARATOR_CELL_RE.match(cell.replace(" ", "")) for cell in cells if cell)


def _scene_from_cells(heading: str, cells: List[str]) -> TechnicalScene:
    if len(cells) > len(SCENE_FIELDS):
        cells = cells[:5] + [" / ".join(c for c in cells[5:] if c)]
    padded = cells + [""] * (len(SCENE_FIELDS) - len(cells))
    return TechnicalScene(heading=heading, **dict(zip(SCENE_FIELDS, padded)))


def has_technical_markers(content: str) -> bool:
    return bool(content) and SCRIPT_START_TAG in content


def is_technical_script(content: str) -> bool:
    """True when content uses the wrapper and at least one scene heading."""
    return has_technical_markers(content) and SCENE_HEADING_RE.search(content) is not None


def parse_technical_scenes(content: str) -> List[TechnicalScene]:
    """
    Parse scenes from technical script text.

    Scenes without a data row are returned with empty fields so callers can
    decide what to synthesize. Text outside scene blocks is ignored.
    """
    if not content:
        return []

    body = content
    end_at = body.find(SCRIPT_END_TAG)
    if end_at >= 0:
        body = body[:end_at]

    matches = list(SCENE_HEADING_RE.finditer(body))
    scenes: List[TechnicalScene] = []
    for position, match in enumerate(matches):
        block_end = matches[position + 1].start() if position + 1 < len(matches) else len(body)
        block = body[match.end():block_end]
        heading = (match.group(2) or "").strip()
        data_cells: Optional[List[str]] = None
        for line in block.splitlines():
            if not line.strip().startswith("|"):
                continue
            cells = split_table_row(line)
            if _is_header_row(cells) or _is_separator_row(cells):
                continue
            data_cells = cells
            break
        scenes.append(_scene_from_cells(heading, data_cells or []))
    return scenes


def _clean_cell(value: str) -> str:
    return re.sub(r"\s+", " ", (value or "").replace("|", "/")).strip()


def render_scene_block(scene: TechnicalScene, number: int) -> str:
    cells = " | ".join(_clean_cell(value) for value in scene.row())
    heading = _clean_cell(scene.heading).upper() or "CENA"
    return "\n".join([
        f"[CENA {number}: {heading}]",
        TABLE_HEADER,
        TABLE_SEPARATOR,
        f"| {cells} |",
    ])


def render_technical_script(scenes: List[TechnicalScene]) -> str:
    blocks = [render_scene_block(scene, number) for number, scene in enumerate(scenes, start=1)]
    return "\n\n".join([SCRIPT_START_TAG, *blocks, SCRIPT_END_TAG])


def extract_speech_lines(content: str) -> List[str]:
    """Literal spoken lines of a technical script, in scene order."""
    return [scene.speech for scene in parse_technical_scenes(content) if scene.speech.strip()]
