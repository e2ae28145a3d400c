"""Resolve which source files under a root folder go into the document."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import FrozenSet, Iterable, List, Optional, Tuple, Union

from script_collector.docx_writer import DocumentEntry

DEFAULT_EXTENSIONS = (".cs",)


class SelectionError(Exception):
    pass


@dataclass(frozen=True)
class SelectionOptions:
    extensions: Tuple[str, ...] = DEFAULT_EXTENSIONS
    include_all_subfolders: bool = True
    subfolders: FrozenSet[str] = frozenset()
    excluded_folder_names: FrozenSet[str] = frozenset()
    chosen_files: Optional[FrozenSet[str]] = None


def normalize_path(path: Union[str, Path, None]) -> str:
    if path is None or not str(path).strip():
        return ""
    full = os.path.abspath(os.path.expanduser(str(path).strip()))
    return full.replace("\\", "/").rstrip("/") or "/"


def to_relative(root: Path, path: Path) -> str:
    return path.relative_to(root).as_posix()


def _check_root(root: Union[str, Path]) -> Path:
    normalized = normalize_path(root)
    if not normalized or not Path(normalized).is_dir():
        raise SelectionError(f"Root folder does not exist: {root}")
    return Path(normalized)


def list_subfolders(root: Union[str, Path]) -> List[str]:
    normalized = normalize_path(root)
    if not normalized or not Path(normalized).is_dir():
        return []
    return sorted((p.name for p in Path(normalized).iterdir() if p.is_dir()), key=str.lower)


def _matches_extension(name: str, extensions: Iterable[str]) -> bool:
    lower = name.lower()
    return any(lower.endswith(ext.lower()) for ext in extensions)


def list_candidates(root: Union[str, Path], options: SelectionOptions) -> List[str]:
    """All files under ``root`` that pass the folder and extension filters.

    Paths are relative to ``root``, ``/``-separated and sorted case-insensitively.
    With ``include_all_subfolders`` off only files inside an allowed top-level
    subfolder are kept, so files lying directly in ``root`` drop out.
    """
    root_path = _check_root(root)
    excluded = {name.lower() for name in options.excluded_folder_names}
    allowed = set(options.subfolders)

    found: List[str] = []
    for dirpath, dirnames, filenames in os.walk(root_path):
        at_root = Path(dirpath) == root_path
        dirnames[:] = sorted(d for d in dirnames if d.lower() not in excluded)
        if at_root and not options.include_all_subfolders:
            dirnames[:] = [d for d in dirnames if d in allowed]
            continue
        for filename in sorted(filenames):
            if _matches_extension(filename, options.extensions):
                found.append(to_relative(root_path, Path(dirpath) / filename))

    return sorted(found, key=lambda rel: (rel.lower(), rel))


def resolve(root: Union[str, Path], options: SelectionOptions) -> List[str]:
    candidates = list_candidates(root, options)
    if options.chosen_files is None:
        return candidates

    chosen = {p.replace("\\", "/").strip("/").lower() for p in options.chosen_files}
    return [rel for rel in candidates if rel.lower() in chosen]


def read_entries(root: Union[str, Path], paths: Iterable[str]) -> List[DocumentEntry]:
    root_path = _check_root(root)
    entries: List[DocumentEntry] = []
    for rel in paths:
        path = root_path / rel
        with path.open("r", encoding="utf-8-sig", newline="") as f:
            entries.append(DocumentEntry(identifier=path.name, content=f.read()))
    return entries
