"""Moteur de sélection des releases candidates."""
from typing import List, Optional, Tuple
import logging

from grabarr.core.models import QualityPolicy, SearchCandidate

logger = logging.getLogger(__name__)

# Prowlarr's own default indexer priority
DEFAULT_INDEXER_PRIORITY = 25

HD_KEYWORDS = ("720p", "1080p", "2160p", "4k")
UHD_KEYWORDS = ("2160p", "4k", "uhd")


def matches_policy(title: str, policy: QualityPolicy) -> bool:
    """Vérifie si un titre de release respecte la politique de qualité."""
    lower_title = (title or "").lower()
    if policy == QualityPolicy.ANY:
        return True
    if policy == QualityPolicy.HD_720P:
        return "720p" in lower_title
    if policy == QualityPolicy.HD_1080P:
        return "1080p" in lower_title
    if policy == QualityPolicy.HD_720P_1080P:
        return "720p" in lower_title or "1080p" in lower_title
    if policy == QualityPolicy.SD:
        return not any(keyword in lower_title for keyword in HD_KEYWORDS)
    if policy == QualityPolicy.ULTRA_HD:
        return any(keyword in lower_title for keyword in UHD_KEYWORDS)
    return True


def filter_by_quality(candidates: List[SearchCandidate], policy) -> List[SearchCandidate]:
    if not isinstance(policy, QualityPolicy):
        policy = QualityPolicy.parse(policy)
    return [c for c in candidates if matches_policy(c.title, policy)]


def ranking_key(candidate: SearchCandidate) -> Tuple[int, int]:
    """Seeders descending, then indexer priority ascending."""
    seeders = candidate.seeders or 0
    priority = candidate.indexer_priority if candidate.indexer_priority is not None else DEFAULT_INDEXER_PRIORITY
    return -seeders, priority


def select_best(candidates: List[SearchCandidate], policy) -> Optional[SearchCandidate]:
    """Retourne le meilleur candidat pour la politique, ou None."""
    filtered = filter_by_quality(candidates, policy)
    if not filtered:
        logger.debug(f"No candidate out of {len(candidates)} matches quality policy {policy}")
        return None
    # min() keeps the first of equal keys, so remaining ties go to input order
    return min(filtered, key=ranking_key)
