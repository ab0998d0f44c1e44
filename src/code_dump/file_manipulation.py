from __future__ import annotations

import os
import posixpath
import re
import subprocess  # noqa: S404
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field
from pyuca import Collator

from code_dump.config import (
    BYTES_PER_KB,
    EXT2LANG,
    FENCE_TIERS,
    PLAIN_TEXT,
    SPECIAL_BASENAMES,
    STRUCTURED_DATA,
    RuleSet,
    format_kb,
)
from code_dump.exceptions import GitCommandError, NotAGitRepositoryError
from code_dump.logging import logger

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

GIT_WORK_TREE_CMD = ["git", "rev-parse", "--is-inside-work-tree"]
GIT_LIST_FILES_CMD = ["git", "ls-files", "-z", "--cached", "--others", "--exclude-standard"]

_JS_TS_PATTERN = re.compile(r"\.(jsx?|tsx?)$", re.IGNORECASE)

_COLLATOR = Collator()


class InclusionDecision(BaseModel):
    """Verdict of the inclusion filter for one listed file.

    Attributes:
        file: repository relative path, as listed by git.
        included: whether the file content goes into the document.
        reason: why the file was skipped; empty when included.
        size: size in bytes, when the file was stat'ed.
    """

    model_config = ConfigDict(frozen=True)

    file: str = Field(..., description="Repository relative path")
    included: bool = Field(..., description="Whether the file is dumped")
    reason: str = Field(default="", description="Skip reason, empty when included")
    size: int | None = Field(default=None, ge=0, description="File size in bytes")


def ensure_git_work_tree(repo: Path) -> None:
    """Check that `repo` lies inside a git working tree.

    Args:
        repo (Path): the directory git is run from

    Raises:
        NotAGitRepositoryError: if git says no, fails, or is not installed.
    """
    try:
        out = subprocess.run(
            GIT_WORK_TREE_CMD,
            cwd=str(repo),
            text=True,
            capture_output=True,
            check=False,
        )
    except OSError as e:
        logger.error("git invocation failed", command=" ".join(GIT_WORK_TREE_CMD), error=str(e))
        raise NotAGitRepositoryError(folder=repo) from e
    if out.returncode != 0 or out.stdout.strip() != "true":
        raise NotAGitRepositoryError(folder=repo)


def git_ls_files(repo: Path) -> list[str]:
    """List tracked files plus untracked files that are not ignored.

    The listing is NUL delimited, so paths holding newlines survive intact.

    Args:
        repo (Path): the directory git is run from; paths are relative to it

    Raises:
        GitCommandError: if `git ls-files` cannot be run or exits non-zero.

    Returns:
        list[str]: the listed paths in git order, without empties or duplicates
    """
    command = " ".join(GIT_LIST_FILES_CMD)
    try:
        out = subprocess.run(
            GIT_LIST_FILES_CMD,
            cwd=str(repo),
            capture_output=True,
            check=False,
        )
    except OSError as e:
        raise GitCommandError(command=command, returncode=-1, stdout="", stderr=str(e)) from e
    if out.returncode != 0:
        raise GitCommandError(
            command=command,
            returncode=out.returncode,
            stdout=out.stdout.decode("utf-8", errors="replace"),
            stderr=out.stderr.decode("utf-8", errors="replace"),
        )
    files = [os.fsdecode(raw) for raw in out.stdout.split(b"\0") if raw]
    logger.info("git ls-files", repo=str(repo), files=len(files))
    return list(dict.fromkeys(files))


def file_extension(file: str) -> str:
    """Lowercase extension of `file` without the dot; empty for none and for dotfiles."""
    return posixpath.splitext(posixpath.basename(file))[1].lower().lstrip(".")


def decide_include(file: str, rules: RuleSet, root: Path | None = None) -> InclusionDecision:
    """Decide whether `file` is dumped, and if not, why.

    Rules apply in priority order, first match wins:
    1) disallowed basename,
    2) disallowed extension, unless the basename is explicitly allowed,
    3) extension missing from a non-empty allowed set, unless explicitly allowed,
    4) stat failure or size above the cap.

    Args:
        file (str): path as listed by git
        rules (RuleSet): the rule set of the run
        root (Path | None): directory `file` is relative to; the current directory if None

    Returns:
        InclusionDecision: the verdict for `file`
    """
    base = posixpath.basename(file)
    base_lower = base.lower()
    ext = file_extension(base)

    if base in rules.disallowed_basenames or base_lower in rules.disallowed_basenames:
        return InclusionDecision(file=file, included=False, reason="disallowed basename")

    explicitly_allowed = base in rules.allowed_basenames or base_lower in rules.allowed_basenames

    if not explicitly_allowed and ext and ext in rules.disallowed_extensions:
        return InclusionDecision(file=file, included=False, reason=f"disallowed extension .{ext}")

    if not explicitly_allowed and rules.allowed_extensions and (not ext or ext not in rules.allowed_extensions):
        return InclusionDecision(file=file, included=False, reason="not in allowed extensions")

    path = root / file if root is not None else Path(file)
    try:
        size = path.stat().st_size
    except OSError as e:
        return InclusionDecision(file=file, included=False, reason=f"stat error: {e}")

    if size > rules.max_bytes:
        reason = f"exceeds size limit ({size / BYTES_PER_KB:.1f}KB > {format_kb(rules.max_kb)}KB)"
        return InclusionDecision(file=file, included=False, reason=reason, size=size)

    return InclusionDecision(file=file, included=True, size=size)


def decide_all(files: Iterable[str], rules: RuleSet, root: Path | None = None) -> list[InclusionDecision]:
    """Run `decide_include` over every listed file, keeping the listing order."""
    return [decide_include(f, rules, root) for f in files]


def detect_language(file: str, content: str | None) -> str:
    """Heuristically determine a file's language for the code fence.

    - Special basenames first (case-insensitive), some of them sniffing the content.
    - Then the lowercase extension.
    - Then a content sniff: a leading `{` or `[` means JSON, anything else plain text.

    Never raises; errors resolve to the plain text tag.

    Args:
        file (str): the file path
        content (str | None): the file content

    Returns:
        str: a language tag, `PLAIN_TEXT` when unknown
    """
    try:
        base = posixpath.basename(file)
        rule = SPECIAL_BASENAMES.get(base.lower())
        if rule is not None:
            return rule(content)
        lang = EXT2LANG.get(file_extension(base))
        if lang:
            return lang
        if (content or "").strip().startswith(("{", "[")):
            return STRUCTURED_DATA
    except Exception:  # noqa: BLE001
        return PLAIN_TEXT
    return PLAIN_TEXT


def fence_language(lang: str) -> str:
    """Language annotation for an opening fence; empty for plain text."""
    return "" if not lang or lang == PLAIN_TEXT else lang


def choose_fence(content: str) -> str:
    """Pick the shortest fence not already present in `content`.

    The last tier uses a different character and is always accepted.
    """
    for fence in FENCE_TIERS[:-1]:
        if fence not in content:
            return fence
    return FENCE_TIERS[-1]


def is_js_ts_file(file: str) -> bool:
    """Check if `file` is a JavaScript or TypeScript source."""
    return _JS_TS_PATTERN.search(file) is not None


def strip_js_ts_comments(src: str) -> str:
    """Return `src` unchanged; comments are kept so no line is ever dropped."""
    return src


def read_file_content(path: Path) -> str:
    """Read a file as UTF-8, replacing undecodable bytes."""
    return path.read_text(encoding="utf-8", errors="replace")


def locale_sort_key(path: str) -> tuple[tuple[int, ...], str]:
    """Unicode collation key: punctuation before digits before letters, lowercase first on ties."""
    return (_COLLATOR.sort_key(path), path)


def sort_paths(paths: Iterable[str]) -> list[str]:
    """Sort paths in the stable order shared by the table of contents and the body."""
    return sorted(paths, key=locale_sort_key)


def format_time(seconds: float) -> str:
    """Format a duration as HH:MM:SS."""
    total = max(0, int(seconds))
    hours, rest = divmod(total, 3600)
    minutes, secs = divmod(rest, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def now_iso() -> str:
    """Return the current UTC time in ISO 8601 format with millisecond precision."""
    return datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def partition_decisions(
    decisions: Sequence[InclusionDecision],
) -> tuple[list[str], list[InclusionDecision]]:
    """Split decisions into the included paths and the skipped decisions."""
    included = [d.file for d in decisions if d.included]
    skipped = [d for d in decisions if not d.included]
    for d in skipped:
        logger.debug("file skipped", file=d.file, reason=d.reason)
    return included, skipped
