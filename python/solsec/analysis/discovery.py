"""Locating program sources and fuzz harnesses on disk."""

from fnmatch import fnmatch
from pathlib import Path
from typing import Iterable, List, Optional, Sequence
import logging
import os

from .source_model import LANGUAGE_BY_SUFFIX, ScanUnit

logger = logging.getLogger(__name__)


SKIP_DIRS = {"target", "node_modules", ".git", ".anchor", "test-ledger", "__pycache__"}


def _ignored(relative: str, ignore_paths: Sequence[str]) -> bool:
    return any(fnmatch(relative, pattern) or relative.startswith(pattern.rstrip("/") + "/")
               for pattern in ignore_paths)


def iter_source_files(root: Path, ignore_paths: Sequence[str] = ()) -> List[Path]:
    """All analyzable source files under ``root``, sorted."""
    root = Path(root)
    if root.is_file():
        return [root] if root.suffix.lower() in LANGUAGE_BY_SUFFIX else []

    found = []
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(
            d for d in dirnames if d not in SKIP_DIRS and not d.startswith(".")
        )
        for name in sorted(filenames):
            path = Path(dirpath) / name
            if path.suffix.lower() not in LANGUAGE_BY_SUFFIX:
                continue
            relative = path.relative_to(root).as_posix()
            if _ignored(relative, ignore_paths):
                logger.debug(f"Ignoring {relative}")
                continue
            found.append(path)
    return found


def discover_units(root: Path, ignore_paths: Sequence[str] = ()) -> List[ScanUnit]:
    """
    Load every source file under ``root`` as a ScanUnit.

    Args:
        root: Project directory or single source file
        ignore_paths: Glob patterns relative to ``root``

    Returns:
        Units with paths relative to ``root``
    """
    root = Path(root)
    base = root.parent if root.is_file() else root
    units = [ScanUnit.from_file(path, base) for path in iter_source_files(root, ignore_paths)]
    logger.info(f"Discovered {len(units)} source units under {root}")
    return units


def discover_fuzz_harnesses(root: Path, names: Optional[Iterable[str]] = None) -> List[Path]:
    """
    Find executable fuzz harnesses.

    ``root`` may be a harness itself. Otherwise executables named ``fuzz_*``
    are collected from the usual build output directories.
    """
    root = Path(root)
    if root.is_file():
        return [root] if os.access(root, os.X_OK) else []

    wanted = set(names or ())
    candidates = []
    for sub in ("fuzz/target/release", "fuzz/target/debug", "target/release", "target/debug", "fuzz/bin", "."):
        directory = root / sub
        if not directory.is_dir():
            continue
        for path in sorted(directory.iterdir()):
            if not path.is_file() or not os.access(path, os.X_OK):
                continue
            if wanted and path.name not in wanted:
                continue
            if not wanted and not path.name.startswith("fuzz_"):
                continue
            if path.name not in {c.name for c in candidates}:
                candidates.append(path)
    return candidates
