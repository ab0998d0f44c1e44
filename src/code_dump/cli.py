"""
code_dump: dump the current git repository into one LLM-readable document.

Overview
--------
Lists tracked and untracked-but-not-ignored files with `git ls-files`,
filters them through extension, basename and size rules, and writes a single
document to the user's download directory:

1) **Markdown (`--format md`)**: title, timestamp, fenced processing rules,
   table of contents, then one fenced, language-tagged block per file.

2) **Plain text (`--format txt`)**: the same content without fences or
   language tags.

Usage
-----
Run from anywhere inside a git working tree:
    - Default (200 KB cap, ~/Downloads/completeCodebase.md):
        code-dump

    - Larger cap, custom name, plain text:
        code-dump --maxKB=500 --fileName mydump --format txt

    - Log to a file:
        code-dump --log-file dump.log
"""

from __future__ import annotations

import argparse
import math
import re
import signal
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from code_dump import __version__
from code_dump.config import (
    DEFAULT_FILE_STEM,
    FORMAT_EXTENSIONS,
    RULE_DELIMITER,
    OutputFormat,
    RuleSet,
    build_rule_set,
    format_kb,
)
from code_dump.exceptions import GitCommandError, NotAGitRepositoryError
from code_dump.file_manipulation import decide_all, ensure_git_work_tree, format_time, git_ls_files, partition_decisions
from code_dump.logging import logger, setup_logging
from code_dump.output_construction import RunContext, write_document
from code_dump.settings import Settings

if TYPE_CHECKING:
    from collections.abc import Sequence

    from code_dump.file_manipulation import InclusionDecision

INTERRUPTED_EXIT_CODE = 128 + signal.SIGINT

_EXTENSION_PATTERN = re.compile(r"\.([a-z0-9]+)$", re.IGNORECASE)


def parse_max_kb(value: str | None, current: float) -> float:
    """Parse a `--maxKB` value; anything but a positive finite number keeps `current`."""
    try:
        parsed = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return current
    if not math.isfinite(parsed) or parsed <= 0:
        return current
    return parsed


def parse_format(value: str | None) -> OutputFormat | None:
    """Parse a `--format` value; unrecognized values give None."""
    try:
        return OutputFormat((value or "").strip().lower())
    except ValueError:
        return None


def resolve_output_name(file_name: str | None, fmt: OutputFormat | None) -> tuple[str, OutputFormat]:
    """Resolve the output basename and format.

    Directory components are stripped from `file_name`. A recognized extension
    (`md`, `markdown`, `txt`) sets the format unless `fmt` is given; without one,
    the extension of the format is appended.

    Args:
        file_name (str | None): the `--fileName` value, None when absent
        fmt (OutputFormat | None): the `--format` value, None when absent

    Returns:
        tuple[str, OutputFormat]: the basename and the output format
    """
    base = Path((file_name or "").strip().replace("\\", "/")).name
    if base in {"", ".", ".."}:
        base = DEFAULT_FILE_STEM

    match = _EXTENSION_PATTERN.search(base)
    ext_format = FORMAT_EXTENSIONS.get(match.group(1).lower()) if match else None
    if ext_format is not None:
        return base, fmt or ext_format

    resolved = fmt or OutputFormat.MD
    return f"{base}.{resolved}", resolved


def parse_args(argv: Sequence[str] | None = None) -> Settings:
    """Build the run settings from the command line.

    Bad values and unknown arguments are ignored; the last valid occurrence
    of a flag wins. `-h` and `--version` print and exit with status 0.

    Args:
        argv (Sequence[str] | None): the arguments; `sys.argv[1:]` if None

    Returns:
        Settings: the run settings
    """
    p = argparse.ArgumentParser(
        prog="code-dump",
        description="Dump the files of the current git working tree into a single document.",
        allow_abbrev=False,
    )
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    # Values stay raw strings: a bad occurrence is dropped, the previous good one kept.
    p.add_argument(
        "--maxKB",
        dest="max_kb",
        action="append",
        nargs="?",
        default=[],
        help="Per-file size cap in kilobytes (default: 200).",
    )
    p.add_argument(
        "--fileName",
        dest="file_name",
        action="append",
        nargs="?",
        default=[],
        help="Output basename, written to the download directory.",
    )
    p.add_argument(
        "--format",
        action="append",
        nargs="?",
        default=[],
        help="Output format: md or txt (default: inferred from the name, else md).",
    )
    p.add_argument(
        "--log-file",
        action="append",
        nargs="?",
        default=[],
        help="Write structured logs to this file instead of stderr.",
    )
    args, unknown = p.parse_known_args(argv)
    if unknown:
        logger.debug("Ignoring unknown arguments", arguments=unknown)

    defaults = Settings()
    max_kb = defaults.max_kb
    for value in args.max_kb:
        max_kb = parse_max_kb(value, max_kb)

    file_name: str | None = None
    for value in args.file_name:
        file_name = (value or "").strip() or file_name

    fmt: OutputFormat | None = None
    for value in args.format:
        fmt = parse_format(value) or fmt

    log_file = defaults.log_file
    for value in args.log_file:
        log_file = (value or "").strip() or log_file

    name, resolved = resolve_output_name(file_name, fmt)
    return defaults.model_copy(
        update={"max_kb": max_kb, "file_name": name, "format": resolved, "log_file": log_file},
    )


def _joined(values: frozenset[str]) -> str:
    return RULE_DELIMITER.join(sorted(values)) or "(none)"


def print_skipped(skipped: Sequence[InclusionDecision]) -> None:
    """Print one line per skipped file with its reason."""
    for d in skipped:
        print(f" - {d.file}  -> {d.reason}")


def print_nothing_matched(rules: RuleSet, skipped: Sequence[InclusionDecision]) -> None:
    """Print the active rules and every skip reason when no file qualifies."""
    print("No matching files found under current rules.")
    print(f"Allowed extensions: {_joined(rules.allowed_extensions)}")
    print(f"Disallowed extensions: {_joined(rules.disallowed_extensions)}")
    print(f"Disallowed basenames: {_joined(rules.disallowed_basenames)}")
    print(f"Explicitly allowed files: {_joined(rules.allowed_basenames)}")
    print(f"Max size: {format_kb(rules.max_kb)}KB")
    if skipped:
        print("\nSkipped files (reason):")
        print_skipped(skipped)


def print_run_summary(
    repo: Path,
    listed: int,
    included: int,
    rules: RuleSet,
    skipped: Sequence[InclusionDecision],
) -> None:
    """Print what was listed, included and skipped before rendering starts."""
    print(f"\nGetting file list from: {repo}")
    print(f"Tracked files: {listed}")
    print(f"Included (<= {format_kb(rules.max_kb)}KB): {included}")
    if skipped:
        print(f"Skipped: {len(skipped)}")
        print_skipped(skipped)


def print_final_summary(output: Path, ctx: RunContext, rules: RuleSet) -> None:
    """Print the output location, elapsed time and the configuration used."""
    print(f"\nDone! Output saved to {output}")
    print(f"Total time:  {format_time(ctx.elapsed())}")
    print(
        f"Config -> AllowedExt: {_joined(rules.allowed_extensions)}"
        f" | DisallowedExt: {_joined(rules.disallowed_extensions)}"
        f" | DisallowedFiles: {_joined(rules.disallowed_basenames)}"
        f" | AllowedFiles: {_joined(rules.allowed_basenames)}"
        f" | MaxKB: {format_kb(rules.max_kb)}",
    )


def run(settings: Settings) -> int:
    """Execute one dump with resolved settings and return the exit code."""
    repo = settings.repo
    rules = build_rule_set(max_kb=settings.max_kb)

    try:
        ensure_git_work_tree(repo)
    except NotAGitRepositoryError as e:
        logger.error("Not a git working tree", folder=str(e.folder))
        print(f"Error: {e}", file=sys.stderr)
        return 1

    try:
        listed = git_ls_files(repo)
    except GitCommandError as e:
        logger.error("git ls-files failed", command=e.command, returncode=e.returncode, stderr=e.stderr)
        print(f"Error: {e}", file=sys.stderr)
        return 1

    decisions = decide_all(listed, rules, repo)
    included, skipped = partition_decisions(decisions)

    if not included:
        logger.info("No matching files", listed=len(listed), skipped=len(skipped))
        print_nothing_matched(rules, skipped)
        return 0

    print_run_summary(repo, len(listed), len(included), rules, skipped)

    ctx = RunContext()
    output = settings.output_path
    written = write_document(output, included, settings.format, ctx, repo)

    logger.info(
        "Dump complete",
        output=str(output),
        files=len(written),
        skipped=len(skipped),
        elapsed=round(ctx.elapsed(), 3),
    )
    print_final_summary(output, ctx, rules)
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    settings = parse_args(argv)
    if settings.log_file:
        setup_logging(settings.log_file)

    try:
        return run(settings)
    except KeyboardInterrupt:
        logger.warning("Interrupted", output=str(settings.output_path))
        return INTERRUPTED_EXIT_CODE


if __name__ == "__main__":
    raise SystemExit(main())
