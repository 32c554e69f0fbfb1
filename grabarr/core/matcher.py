"""Matching entre fichiers sur disque et médias surveillés."""
from typing import Callable, Iterable, List, Optional, TypeVar
import re

from grabarr.core.parsing import normalize_title, strip_video_extension

T = TypeVar("T")

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def _words(text: str) -> List[str]:
    return [w for w in _NON_ALNUM.split(text.lower()) if w]


class TitleMatcher:
    """Matcher de titres (normalisation + inclusion)."""

    @staticmethod
    def fuzzy_match_title(
        candidate: str,
        known: Iterable[T],
        key: Callable[[T], str] = lambda item: item,
    ) -> Optional[T]:
        """Exact normalized match first, then containment in either direction.

        The first qualifying item in input order wins.
        """
        normalized = normalize_title(candidate)
        if not normalized:
            return None

        items = list(known)
        keyed = [(item, normalize_title(key(item))) for item in items]

        for item, title in keyed:
            if title and title == normalized:
                return item

        for item, title in keyed:
            if title and (title in normalized or normalized in title):
                return item

        return None

    @staticmethod
    def title_matches_filename(title: str, filename: str) -> bool:
        """Vérifie qu'un nom de fichier correspond au titre (gère les suites: "Shrek 2")."""
        title_words = _words(title)
        if not title_words:
            return False
        file_words = _words(strip_video_extension(filename))

        # Sequel: the number must follow the base title directly
        if title_words[-1].isdigit():
            size = len(title_words)
            for start in range(len(file_words) - size + 1):
                if file_words[start:start + size] == title_words:
                    return True
            return False

        file_word_set = set(file_words)
        for word in title_words:
            if len(word) < 2:
                continue
            if word not in file_word_set:
                return False
        return True

    @staticmethod
    def path_mentions_title(title: str, relative_path: str) -> bool:
        """Le titre apparaît dans le nom du fichier ou dans un dossier parent."""
        normalized = normalize_title(title)
        if not normalized:
            return False
        parts = re.split(r"[\\/]", relative_path)
        for part in parts:
            if normalized in normalize_title(strip_video_extension(part)):
                return True
        return TitleMatcher.title_matches_filename(title, " ".join(parts))


fuzzy_match_title = TitleMatcher.fuzzy_match_title
title_matches_filename = TitleMatcher.title_matches_filename
