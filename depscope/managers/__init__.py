import logging
import os
from typing import Dict, List, Optional

from depscope.core.model import ManifestFile
from .base import ManifestError, PackageManager
from .dart import PubManager
from .java import MavenManager
from .javascript import NodeManager
from .php import ComposerManager
from .python import PythonManager
from .ruby import RubyManager

MANAGERS = [
    NodeManager(),
    PythonManager(),
    MavenManager(),
    RubyManager(),
    ComposerManager(),
    PubManager(),
]

IGNORED_DIRS = {".git", ".hg", ".svn", "node_modules", ".venv", "venv", "vendor", "__pycache__", ".dart_tool", "build"}


def manager_for_family(family: str) -> Optional[PackageManager]:
    for manager in MANAGERS:
        if manager.family == family:
            return manager
    return None


def manager_for_filename(filename: str) -> Optional[PackageManager]:
    basename = os.path.basename(filename)
    for manager in MANAGERS:
        if manager.detect([basename]):
            return manager
    return None


def collect_manifests(root: str = ".") -> Dict[str, List[ManifestFile]]:
    """Walks `root` and groups the manifest files found by manager family."""
    grouped: Dict[str, List[ManifestFile]] = {}

    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(d for d in dirnames if d not in IGNORED_DIRS)

        for filename in sorted(filenames):
            manager = manager_for_filename(filename)
            if not manager:
                continue

            full_path = os.path.join(dirpath, filename)
            rel_path = os.path.relpath(full_path, root).replace(os.sep, "/")
            try:
                with open(full_path, "r", encoding="utf-8") as f:
                    content = f.read()
            except (OSError, UnicodeDecodeError) as e:
                logging.warning(f"Error reading {rel_path}: {e}")
                continue

            grouped.setdefault(manager.family, []).append(ManifestFile(rel_path, content))

    if not grouped:
        raise FileNotFoundError(f"No manifest files found in {os.path.abspath(root)}")

    counts = ", ".join(f"{family}: {len(files)}" for family, files in grouped.items())
    logging.info(f"Found manifests ({counts})")
    return grouped


__all__ = [
    "MANAGERS",
    "ManifestError",
    "PackageManager",
    "collect_manifests",
    "manager_for_family",
    "manager_for_filename",
]
