"""Primitives fichiers partagées par le watcher et le renommage."""
from pathlib import Path
from typing import List, Optional, Tuple
import asyncio
import logging
import shutil

from grabarr.core.errors import CollisionError
from grabarr.core.parsing import SKIPPED_FOLDERS, is_video_file

logger = logging.getLogger(__name__)


def is_hidden(name: str) -> bool:
    # also covers macOS "._" resource files
    return name.startswith(".")


def iter_video_files(root: str, max_depth: Optional[int] = None) -> List[Path]:
    """Liste récursive et triée des fichiers vidéo, hors dossiers non-contenu."""
    base = Path(root)
    results: List[Path] = []

    def walk(directory: Path, depth: int) -> None:
        try:
            entries = sorted(directory.iterdir(), key=lambda p: p.name)
        except OSError as e:
            logger.warning(f"Cannot read directory {directory}: {e}")
            return
        for entry in entries:
            if is_hidden(entry.name):
                continue
            if entry.is_dir():
                if entry.name.lower() in SKIPPED_FOLDERS:
                    continue
                if max_depth is None or depth < max_depth:
                    walk(entry, depth + 1)
            elif entry.is_file() and is_video_file(entry.name):
                results.append(entry)

    walk(base, 0)
    return results


def _file_signature(path: str) -> Optional[Tuple[int, int]]:
    try:
        stats = Path(path).stat()
    except OSError:
        return None
    return stats.st_size, stats.st_mtime_ns


async def is_file_stable(path: str, wait_seconds: float = 2.0) -> bool:
    """Deux stat() séparés de wait_seconds: même taille non nulle et même mtime = fichier terminé."""
    first = await asyncio.to_thread(_file_signature, path)
    if first is None:
        return False
    await asyncio.sleep(wait_seconds)
    second = await asyncio.to_thread(_file_signature, path)
    return second is not None and second == first and second[0] > 0


def move_file_safely(source: str, destination: str) -> str:
    """Déplace un fichier sans jamais écraser la destination."""
    src = Path(source)
    dst = Path(destination)
    if not src.exists():
        raise FileNotFoundError(f"Source file not found: {source}")
    if dst.exists():
        raise CollisionError(str(dst))
    dst.parent.mkdir(parents=True, exist_ok=True)
    shutil.move(str(src), str(dst))
    logger.info(f"Moved {src} -> {dst}")
    return str(dst)


async def move_file_safely_async(source: str, destination: str) -> str:
    return await asyncio.to_thread(move_file_safely, source, destination)
