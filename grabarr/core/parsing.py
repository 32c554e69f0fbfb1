"""Extraction de métadonnées depuis les noms de fichiers et de releases."""
import re
from pathlib import PurePath
from typing import Optional, Tuple, List

from grabarr.core.models import Quality, QualityMetadata

VIDEO_EXTENSIONS = frozenset({
    ".mp4", ".mkv", ".avi", ".mov", ".wmv", ".flv", ".webm", ".m4v",
    ".mpg", ".mpeg", ".m2ts", ".ts", ".vob", ".divx", ".xvid",
})

# Non-content folders found inside release directories
SKIPPED_FOLDERS = frozenset({"sample", "subs", "subtitles", "extras", "featurettes"})

KNOWN_RELEASE_GROUPS = [
    "YIFY", "YTS", "RARBG", "SPARKS", "ROVERS", "EVO", "PSA", "FGT",
    "MeGusta", "FLAME", "GALAXY", "GECKOS",
]

# (value, keywords) pairs, first match wins
QUALITY_KEYWORDS: List[Tuple[Quality, Tuple[str, ...]]] = [
    (Quality.UHD_2160P, ("2160p", "4k", "uhd")),
    (Quality.FHD_1080P, ("1080p",)),
    (Quality.HD_720P, ("720p",)),
    (Quality.SD_480P, ("480p",)),
    (Quality.SD_360P, ("360p",)),
]

SOURCE_KEYWORDS = [
    ("BluRay", ("bluray", "bdrip", "brrip")),
    ("WEB-DL", ("web-dl", "webdl")),
    ("WEBRip", ("webrip",)),
    ("HDTV", ("hdtv",)),
    ("DVDRip", ("dvdrip",)),
    ("DVD", ("dvd",)),
]

CODEC_KEYWORDS = [
    ("x265", ("x265", "hevc", "h.265", "h265")),
    ("x264", ("x264", "h.264", "h264")),
    ("XviD", ("xvid",)),
    ("DivX", ("divx",)),
]

AUDIO_KEYWORDS = [
    ("DTS-HD", ("dts-hd", "dts.hd")),
    ("DTS", ("dts",)),
    ("AC3", ("dd5.1", "dd51", "ac3")),
    ("AAC", ("aac",)),
    ("MP3", ("mp3",)),
    ("TrueHD", ("truehd",)),
    ("Atmos", ("atmos",)),
]

EDITION_KEYWORDS = [
    ("Extended", ("extended",)),
    ("Directors Cut", ("directors.cut", "director's.cut", "directors cut", "director's cut")),
    ("Unrated", ("unrated",)),
    ("Theatrical", ("theatrical",)),
    ("Ultimate", ("ultimate",)),
    ("Remastered", ("remastered",)),
]

# Trailing "-XYZ" tokens that belong to the source, not a release group
_NOT_GROUPS = {"dl", "rip", "hd", "tv"}

_SEASON_EPISODE_PATTERNS = [
    re.compile(r"\bS(\d{1,2})[ ._-]?E(\d{1,3})(?!\d)", re.IGNORECASE),
    re.compile(r"(?<![\dA-Za-z])(\d{1,2})x(\d{1,3})(?!\d)", re.IGNORECASE),
    re.compile(r"Season[ ._-]*(\d{1,2})[ ._-]*Episode[ ._-]*(\d{1,3})", re.IGNORECASE),
]

_GROUP_SUFFIX = re.compile(r"-([A-Za-z0-9]+)$")
_SEPARATORS = re.compile(r"[._]+")
_SPACES = re.compile(r"\s+")


def is_video_file(name: str) -> bool:
    return PurePath(name).suffix.lower() in VIDEO_EXTENSIONS


def strip_video_extension(name: str) -> str:
    """Retire l'extension seulement si c'est une extension vidéo connue."""
    path = PurePath(name)
    if path.suffix.lower() in VIDEO_EXTENSIONS:
        return name[: -len(path.suffix)]
    return name


def _first_match(lower_name: str, vocabulary) -> str:
    for value, keywords in vocabulary:
        if any(keyword in lower_name for keyword in keywords):
            return value
    return ""


def detect_quality(name: str) -> Quality:
    lower_name = name.lower()
    for quality, keywords in QUALITY_KEYWORDS:
        if any(keyword in lower_name for keyword in keywords):
            return quality
    return Quality.UNKNOWN


def extract_release_group(name: str) -> str:
    """Groupe de release: suffixe -GROUP, sinon un groupe connu."""
    base = strip_video_extension(name)
    match = _GROUP_SUFFIX.search(base)
    if match and match.group(1).lower() not in _NOT_GROUPS:
        return match.group(1)

    tokens = {token.lower() for token in re.split(r"[\s._\-\[\]()]+", base) if token}
    for group in KNOWN_RELEASE_GROUPS:
        if group.lower() in tokens:
            return group
    return ""


def extract_quality_metadata(filename: str) -> QualityMetadata:
    """Extrait qualité, source, codec, audio, édition et groupe d'un nom de fichier."""
    lower_name = filename.lower()
    return QualityMetadata(
        quality=detect_quality(filename),
        source=_first_match(lower_name, SOURCE_KEYWORDS),
        codec=_first_match(lower_name, CODEC_KEYWORDS),
        audio=_first_match(lower_name, AUDIO_KEYWORDS),
        edition=_first_match(lower_name, EDITION_KEYWORDS),
        release_group=extract_release_group(filename),
    )


def _season_episode_match(filename: str) -> Optional[re.Match]:
    for pattern in _SEASON_EPISODE_PATTERNS:
        match = pattern.search(filename)
        if match:
            return match
    return None


def extract_season_episode(filename: str) -> Tuple[Optional[int], Optional[int]]:
    """Retourne (saison, épisode) ou (None, None)."""
    match = _season_episode_match(filename)
    if not match:
        return None, None
    return int(match.group(1)), int(match.group(2))


def extract_series_title_guess(filename: str) -> str:
    """Devine le titre de la série (texte avant le marqueur saison/épisode)."""
    base = strip_video_extension(PurePath(filename).name)
    match = _season_episode_match(base)
    if match:
        head = base[: match.start()]
    else:
        digits = re.search(r"\d+", base)
        head = base[: digits.start()] if digits else base

    head = _SEPARATORS.sub(" ", head)
    head = _SPACES.sub(" ", head)
    return head.strip(" -([")


def normalize_title(title: Optional[str]) -> str:
    """Minuscules, sans caractères non alphanumériques."""
    if not title:
        return ""
    return re.sub(r"[\W_]+", "", title.lower())


def episode_key(season: int, episode: int) -> str:
    return f"{season}-{episode}"


def parse_episode_key(key: str) -> Optional[Tuple[int, int]]:
    try:
        season, episode = key.split("-", 1)
        return int(season), int(episode)
    except (ValueError, AttributeError):
        return None
