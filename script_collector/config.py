from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from script_collector.selection import DEFAULT_EXTENSIONS, SelectionOptions

DEFAULT_OUTPUT_FILE_NAME = "ScriptsBundle.docx"
DOCX_SUFFIX = ".docx"


@dataclass
class CollectorSettings:
    root_folder: Path
    output_folder: Path
    output_file_name: str = DEFAULT_OUTPUT_FILE_NAME
    selection: SelectionOptions = field(default_factory=SelectionOptions)
    log_file: Optional[Path] = None
    retry_delay_sec: float = 1.0

    @property
    def destination(self) -> Path:
        return self.output_folder / self.output_file_name


def read_conf(path: Path) -> Dict[str, str]:
    conf: Dict[str, str] = {}
    for line in path.read_text(encoding="utf-8").splitlines():
        s = line.strip()
        if not s or s.startswith("#") or "=" not in s:
            continue
        k, v = s.split("=", 1)
        conf[k.strip()] = v.strip()
    return conf


def parse_bool(value: str, default: bool = False) -> bool:
    s = str(value or "").strip().lower()
    if not s:
        return default
    return s in {"1", "true", "yes", "y"}


def parse_tokens(raw: str) -> List[str]:
    return [v.strip() for v in re.split(r"[;,]", raw or "") if v.strip()]


def parse_extensions(raw: str) -> List[str]:
    exts = []
    for token in parse_tokens(raw):
        ext = token.lower()
        exts.append(ext if ext.startswith(".") else f".{ext}")
    return exts


def ensure_docx_name(name: str) -> str:
    name = (name or "").strip() or DEFAULT_OUTPUT_FILE_NAME
    return name if name.lower().endswith(DOCX_SUFFIX) else name + DOCX_SUFFIX


def _resolve_dir(value: str, base: Path) -> Path:
    p = Path(value).expanduser()
    return (p if p.is_absolute() else base / p).resolve()


def settings_from_conf(conf: Dict[str, str], base_dir: Path) -> CollectorSettings:
    """Build settings from parsed config values.

    Relative folders are taken relative to ``base_dir`` (the config file's folder).
    """
    root = _resolve_dir(conf.get("ROOT_FOLDER", "") or ".", base_dir)
    output = _resolve_dir(conf["OUTPUT_FOLDER"], base_dir) if conf.get("OUTPUT_FOLDER") else root

    scripts = parse_tokens(conf.get("SCRIPTS", ""))
    selection = SelectionOptions(
        extensions=tuple(parse_extensions(conf.get("EXTENSIONS", ""))) or DEFAULT_EXTENSIONS,
        include_all_subfolders=parse_bool(conf.get("INCLUDE_ALL_SUBFOLDERS", ""), default=True),
        subfolders=frozenset(parse_tokens(conf.get("SUBFOLDERS", ""))),
        excluded_folder_names=frozenset(parse_tokens(conf.get("EXCLUDE_FOLDER_NAMES", ""))),
        chosen_files=frozenset(scripts) if scripts else None,
    )

    log_file = conf.get("LOG_FILE", "")
    return CollectorSettings(
        root_folder=root,
        output_folder=output,
        output_file_name=ensure_docx_name(conf.get("OUTPUT_FILE_NAME", "")),
        selection=selection,
        log_file=_resolve_dir(log_file, base_dir) if log_file else None,
        retry_delay_sec=float(conf.get("RETRY_DELAY_SEC", "1") or 1),
    )


def load_settings(config_path: Optional[Path] = None) -> CollectorSettings:
    if config_path is None:
        return settings_from_conf({}, Path.cwd())
    config_path = Path(config_path).resolve()
    return settings_from_conf(read_conf(config_path), config_path.parent)
