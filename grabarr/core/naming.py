"""Naming templates: parsed once into tokens, rendered per file."""
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Dict, List, Optional, Union
import re

TOKEN_PATTERN = re.compile(r"\{([^{}]+)\}")

KNOWN_FIELDS = {
    "movie title",
    "release year",
    "series title",
    "season",
    "episode",
    "episode title",
    "quality",
    "source",
    "codec",
    "audio",
    "edition",
    "release group",
}

INVALID_CHARS = re.compile(r'[<>:"/\\|?*]')
_WHITESPACE = re.compile(r"\s+")
_DOTS = re.compile(r"\.{2,}")
_DASHES = re.compile(r"-{2,}")
_REPEATED_SEPARATORS = re.compile(r"\s+-(?:\s+-)+(?=\s|$)")
_EMPTY_BRACKETS = re.compile(r"\(\s*\)|\[\s*\]")
_DANGLING = " -._"


@dataclass(frozen=True)
class Literal:
    text: str


@dataclass(frozen=True)
class Field:
    name: str  # canonical lowercase name
    case: str = "as-is"  # as-is, lower, upper
    pad: int = 0

    def render(self, value: Any) -> str:
        if value is None:
            return ""
        if isinstance(value, int) and not isinstance(value, bool):
            text = str(value).zfill(self.pad) if self.pad else str(value)
        else:
            text = str(value)
        if self.case == "lower":
            text = text.lower()
        elif self.case == "upper":
            text = text.upper()
        return sanitize_value(text)


Part = Union[Literal, Field]


def sanitize_value(value: str) -> str:
    """Valeur insérée dans un nom: sans caractères interdits (y compris '/')."""
    return _WHITESPACE.sub(" ", INVALID_CHARS.sub("", value)).strip()


def clean_segment(segment: str) -> str:
    """Nettoie un segment de chemin rendu."""
    segment = INVALID_CHARS.sub("", segment)
    segment = _WHITESPACE.sub(" ", segment)
    segment = _DOTS.sub(".", segment)
    segment = _DASHES.sub("-", segment)
    segment = _EMPTY_BRACKETS.sub("", segment)
    segment = _WHITESPACE.sub(" ", segment)
    segment = _REPEATED_SEPARATORS.sub(" -", segment)
    return segment.strip(_DANGLING)


def _parse_field(raw: str) -> Optional[Field]:
    name, _, fmt = raw.partition(":")
    canonical = name.strip().lower()
    if canonical not in KNOWN_FIELDS:
        return None
    if fmt and set(fmt) != {"0"}:
        return None

    if name == name.lower():
        case = "lower"
    elif name == name.upper():
        case = "upper"
    else:
        case = "as-is"
    return Field(name=canonical, case=case, pad=len(fmt))


@dataclass(frozen=True)
class NamingTemplate:
    source: str
    parts: tuple

    @property
    def has_folders(self) -> bool:
        return any(isinstance(p, Literal) and "/" in p.text for p in self.parts)

    @property
    def fields(self) -> List[str]:
        return [p.name for p in self.parts if isinstance(p, Field)]

    def render(self, values: Dict[str, Any]) -> str:
        """Render to a relative path ('/' separated), each segment cleaned."""
        rendered = []
        for part in self.parts:
            if isinstance(part, Literal):
                rendered.append(part.text)
            else:
                rendered.append(part.render(values.get(part.name)))
        text = "".join(rendered).replace("\\", "/")
        segments = [clean_segment(s) for s in text.split("/")]
        return "/".join(s for s in segments if s)


@lru_cache(maxsize=64)
def parse_template(template: str) -> NamingTemplate:
    """Parse un format de nommage en liste de tokens (champs inconnus = texte)."""
    parts: List[Part] = []
    position = 0
    for match in TOKEN_PATTERN.finditer(template):
        if match.start() > position:
            parts.append(Literal(template[position:match.start()]))
        field = _parse_field(match.group(1))
        parts.append(field if field else Literal(match.group(0)))
        position = match.end()
    if position < len(template):
        parts.append(Literal(template[position:]))
    return NamingTemplate(source=template, parts=tuple(parts))


def render_template(template: str, values: Dict[str, Any]) -> str:
    return parse_template(template).render(values)
