#!/usr/bin/env python3
"""Collect source files from a folder tree into a single Word document.

Scans a root folder, filters the files by extension, top-level subfolder,
excluded folder names and an optional explicit list, then writes every file's
text into a minimal .docx (one header paragraph per file, one paragraph per line).
"""

from __future__ import annotations

import argparse
import dataclasses
import logging
import time
from pathlib import Path
from typing import List, Optional

from script_collector.config import CollectorSettings, ensure_docx_name, load_settings, parse_extensions
from script_collector.docx_writer import DocxWriteError, build_docx_bytes, write_package
from script_collector.selection import SelectionError, list_subfolders, read_entries, resolve


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="collect-scripts",
        description="Bundle source files from a folder tree into a Word document.",
    )
    parser.add_argument("--config", help="KEY = value configuration file")
    parser.add_argument("--root", help="folder to scan (ROOT_FOLDER)")
    parser.add_argument("--output-dir", help="folder for the document (OUTPUT_FOLDER)")
    parser.add_argument("--output-name", help="document file name, .docx is appended when missing")
    parser.add_argument("--ext", action="append", default=[], help="file extension to include, repeatable")
    parser.add_argument(
        "--subfolder",
        action="append",
        default=[],
        help="only scan this top-level subfolder, repeatable",
    )
    parser.add_argument("--exclude-folder", action="append", default=[], help="skip folders with this name, repeatable")
    parser.add_argument("--script", action="append", default=[], help="relative path of a file to include, repeatable")
    parser.add_argument("--list", action="store_true", help="print the subfolders and matching files, then exit")
    parser.add_argument("--log-file", help="also write the log to this file")
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser


def apply_overrides(settings: CollectorSettings, args: argparse.Namespace) -> CollectorSettings:
    selection = settings.selection
    if args.ext:
        selection = dataclasses.replace(selection, extensions=tuple(parse_extensions(";".join(args.ext))))
    if args.subfolder:
        selection = dataclasses.replace(selection, include_all_subfolders=False, subfolders=frozenset(args.subfolder))
    if args.exclude_folder:
        selection = dataclasses.replace(
            selection,
            excluded_folder_names=selection.excluded_folder_names | frozenset(args.exclude_folder),
        )
    if args.script:
        selection = dataclasses.replace(selection, chosen_files=frozenset(args.script))

    changes = {"selection": selection}
    if args.root:
        changes["root_folder"] = Path(args.root).expanduser().resolve()
        if not args.output_dir and settings.output_folder == settings.root_folder:
            changes["output_folder"] = changes["root_folder"]
    if args.output_dir:
        changes["output_folder"] = Path(args.output_dir).expanduser().resolve()
    if args.output_name:
        changes["output_file_name"] = ensure_docx_name(args.output_name)
    if args.log_file:
        changes["log_file"] = Path(args.log_file).expanduser().resolve()
    return dataclasses.replace(settings, **changes)


def setup_logging(log_file: Optional[Path], verbose: bool) -> logging.Logger:
    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(message)s",
        handlers=handlers,
    )
    return logging.getLogger("script_collector")


def clear_destination(path: Path, retry_delay: float, logger: logging.Logger) -> bool:
    if not path.exists():
        return True
    try:
        path.unlink()
        return True
    except OSError as exc:
        logger.warning("%s is in use (%s), close it elsewhere; retrying in %.1fs", path, exc, retry_delay)

    time.sleep(retry_delay)
    try:
        path.unlink(missing_ok=True)
    except OSError as exc:
        logger.error("Cannot replace %s: %s", path, exc)
        return False
    return True


def print_listing(settings: CollectorSettings, files: List[str]) -> None:
    print(f"Root folder: {settings.root_folder}")
    print("Subfolders:")
    for name in list_subfolders(settings.root_folder):
        print(f"  {name}")
    print(f"Matching files ({len(files)}):")
    for rel in files:
        print(f"  {rel}")


def collect(settings: CollectorSettings, logger: logging.Logger) -> int:
    try:
        files = resolve(settings.root_folder, settings.selection)
    except SelectionError as exc:
        logger.error("%s", exc)
        return 1

    if not files:
        logger.error("No scripts matched your selection under %s", settings.root_folder)
        return 1
    logger.debug("Resolved %d files: %s", len(files), files)

    try:
        entries = read_entries(settings.root_folder, files)
    except (OSError, UnicodeDecodeError) as exc:
        logger.error("Cannot read source file: %s", exc)
        return 1

    try:
        data = build_docx_bytes(entries)
    except DocxWriteError as exc:
        logger.error("%s", exc)
        return 1

    destination = settings.destination
    if not clear_destination(destination, settings.retry_delay_sec, logger):
        return 1

    try:
        write_package(data, destination)
    except DocxWriteError as exc:
        logger.error("%s", exc)
        return 1

    logger.info("Collected %d scripts -> '%s'", len(entries), destination)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        settings = load_settings(Path(args.config) if args.config else None)
    except OSError as exc:
        parser.error(f"cannot read config: {exc}")
    except ValueError as exc:
        parser.error(f"invalid config value: {exc}")
    settings = apply_overrides(settings, args)
    logger = setup_logging(settings.log_file, args.verbose)

    if args.list:
        try:
            files = resolve(settings.root_folder, settings.selection)
        except SelectionError as exc:
            logger.error("%s", exc)
            return 1
        print_listing(settings, files)
        return 0

    return collect(settings, logger)


if __name__ == "__main__":
    raise SystemExit(main())
