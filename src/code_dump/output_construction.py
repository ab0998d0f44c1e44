from __future__ import annotations

import sys
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, TextIO

from code_dump.config import INSTRUCTION_BLOCK, OutputFormat
from code_dump.file_manipulation import (
    choose_fence,
    detect_language,
    fence_language,
    format_time,
    is_js_ts_file,
    now_iso,
    read_file_content,
    sort_paths,
    strip_js_ts_comments,
)
from code_dump.logging import logger

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator


@dataclass
class RunContext:
    """Per-run mutable state shared by rendering and progress reporting.

    Attributes:
        console: stream receiving the progress line.
        started_at: monotonic clock reading at the start of the run.
        processed: number of files rendered so far.
        wrote_progress: whether a progress line is pending a line break.
    """

    console: TextIO = field(default_factory=lambda: sys.stdout)
    started_at: float = field(default_factory=time.monotonic)
    processed: int = 0
    wrote_progress: bool = False

    def elapsed(self) -> float:
        """Seconds since the run started."""
        return time.monotonic() - self.started_at

    def advance(self, total: int) -> None:
        """Count one more processed file and redraw the progress line."""
        self.processed += 1
        pct = self.processed * 100 // total if total else 100
        self.wrote_progress = True
        self.console.write(
            f"Processing: {pct:>3}% ({self.processed}/{total})  Time: {format_time(self.elapsed())}\r",
        )
        self.console.flush()

    def finish_progress(self) -> None:
        """Terminate a pending progress line with a line break."""
        if self.wrote_progress:
            self.console.write("\n")
            self.console.flush()
            self.wrote_progress = False


@contextmanager
def progress_line(ctx: RunContext) -> Iterator[RunContext]:
    """Guarantee the progress line is finished on every exit path, interrupts included."""
    try:
        yield ctx
    finally:
        ctx.finish_progress()


def load_content(file: str, root: Path | None = None) -> str:
    """Read a listed file, inlining a short note instead of raising on error.

    Args:
        file (str): path as listed by git
        root (Path | None): directory `file` is relative to; the current directory if None

    Returns:
        str: the file content, or `/* Error reading file: ... */`
    """
    path = root / file if root is not None else Path(file)
    try:
        content = read_file_content(path)
    except OSError as e:
        logger.warning("Error reading file", file=file, error=str(e))
        return f"/* Error reading file: {e} */"
    if is_js_ts_file(file):
        content = strip_js_ts_comments(content)
    return content


def write_markdown_header(out: TextIO, files: Iterable[str]) -> None:
    """Write title, timestamp, fenced processing rules and the table of contents."""
    fence = choose_fence(INSTRUCTION_BLOCK)
    out.write("# Codebase Dump\n")
    out.write(f"\n> Generated at: {now_iso()}\n")
    out.write("\n## Processing Rules\n")
    out.write(f"{fence}\n")
    out.write(INSTRUCTION_BLOCK)
    out.write(f"\n{fence}\n")
    out.write("\n## Table of Contents\n")
    for file in files:
        out.write(f"- `{file}`\n")
    out.write("\n---\n")
    out.write("\n## Files\n")


def write_text_header(out: TextIO, files: Iterable[str]) -> None:
    """Write the unfenced processing rules and a plain table of contents."""
    out.write(INSTRUCTION_BLOCK)
    out.write("\n\nTABLE OF CONTENTS (file list)\n")
    out.write("-----------------------------\n")
    for file in files:
        out.write(f"{file}\n")
    out.write("\n\n=================================\n\n")


def write_markdown_section(out: TextIO, file: str, content: str) -> None:
    """Write one file as a heading plus a fenced block tagged with its language."""
    lang = fence_language(detect_language(file, content))
    fence = choose_fence(content)
    out.write(f"\n\n### `{file}`\n\n")
    out.write(f"{fence}{lang}\n")
    out.write(content)
    out.write(f"\n{fence}\n")


def write_text_section(out: TextIO, file: str, content: str) -> None:
    """Write one file as a plain header line followed by the raw content."""
    out.write(f"\n\n===== FILE: {file} =====\n")
    out.write(content)


def render_document(
    out: TextIO,
    files: Iterable[str],
    fmt: OutputFormat,
    ctx: RunContext,
    root: Path | None = None,
) -> list[str]:
    """Stream the whole document for `files` into `out`.

    The files are sorted once; that single list drives both the table of
    contents and the body. Content is read one file at a time.

    Args:
        out (TextIO): the output stream
        files (Iterable[str]): the included paths
        fmt (OutputFormat): markdown or plain text
        ctx (RunContext): run state receiving progress
        root (Path | None): directory the paths are relative to

    Returns:
        list[str]: the paths in the order they were written
    """
    ordered = sort_paths(files)
    markdown = fmt == OutputFormat.MD

    if markdown:
        write_markdown_header(out, ordered)
    else:
        write_text_header(out, ordered)

    with progress_line(ctx):
        for file in ordered:
            ctx.advance(len(ordered))
            content = load_content(file, root)
            if markdown:
                write_markdown_section(out, file, content)
            else:
                write_text_section(out, file, content)

    return ordered


def write_document(
    output: Path,
    files: Iterable[str],
    fmt: OutputFormat,
    ctx: RunContext,
    root: Path | None = None,
) -> list[str]:
    """Create the parent directory of `output` and render the document into it.

    The stream is opened once and closed when rendering ends, on interrupt too;
    whatever was written so far stays on disk.
    """
    output.parent.mkdir(parents=True, exist_ok=True)
    logger.info("Writing document", output=str(output), format=str(fmt))
    with output.open("w", encoding="utf-8", errors="replace", newline="") as out:
        return render_document(out, files, fmt, ctx, root)
