from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field, computed_field

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

RULE_DELIMITER = "/"

ALLOWED_EXTENSIONS_STR = RULE_DELIMITER.join(
    [
        # JavaScript / TypeScript
        "js",
        "jsx",
        "mjs",
        "cjs",
        "ts",
        "tsx",
        # Other languages
        "py",
        "php",
        "rb",
        "java",
        "kt",
        "kts",
        "scala",
        "dart",
        "c",
        "cpp",
        "cs",
        "go",
        "rs",
        "hs",
        # Scripts
        "sh",
        "bash",
        "zsh",
        "bat",
        "cmd",
        "pl",
        "pm",
        # Web
        "html",
        "htm",
        "css",
        "scss",
        "sass",
        "less",
        # Config / markup
        "xml",
        "yaml",
        "yml",
        "toml",
        "ini",
        "json",
        # Databases and tabular text
        "sql",
        "psql",
        "csv",
        "tsv",
        "md",
    ],
)

# Tokens starting with a dot are treated as basenames (e.g. ".env").
DISALLOWED_TYPES_STR = ""

ALLOWED_FILES_STR = RULE_DELIMITER.join(
    ["Dockerfile", ".gitignore", ".gitattributes", ".editorconfig", ".prettierrc"],
)

DISALLOWED_FILES_STR = RULE_DELIMITER.join(["package-lock.json", "yarn.lock", "pnpm-lock.yaml"])

DEFAULT_MAX_FILE_SIZE_KB = 200.0
BYTES_PER_KB = 1024

DEFAULT_FILE_STEM = "completeCodebase"
DEFAULT_FILE_NAME = f"{DEFAULT_FILE_STEM}.md"


class OutputFormat(StrEnum):
    """Supported output document formats."""

    MD = "md"
    TXT = "txt"


# File name extensions that pin the output format when `--format` is absent.
FORMAT_EXTENSIONS: dict[str, OutputFormat] = {
    "md": OutputFormat.MD,
    "markdown": OutputFormat.MD,
    "txt": OutputFormat.TXT,
}


def format_kb(value: float) -> str:
    """Render a kilobyte figure without a trailing `.0` for whole numbers."""
    value = float(value)
    return str(int(value)) if value.is_integer() else repr(value)


def _split_tokens(raw: str | None, delimiter: str) -> Iterator[str]:
    for token in (raw or "").split(delimiter):
        token = token.strip()  # noqa: PLW2901
        if token:
            yield token


class RuleSet(BaseModel):
    """Lookup sets driving the per-file inclusion decision.

    Attributes:
        allowed_extensions: lowercase extensions, no leading dot. Empty means "any extension".
        disallowed_extensions: lowercase extensions, no leading dot.
        disallowed_basenames: exact basenames, case preserved.
        allowed_basenames: exact basenames, case preserved; they bypass extension rules.
        max_kb: per-file size cap in kilobytes.
    """

    model_config = ConfigDict(frozen=True)

    allowed_extensions: frozenset[str] = Field(default_factory=frozenset)
    disallowed_extensions: frozenset[str] = Field(default_factory=frozenset)
    disallowed_basenames: frozenset[str] = Field(default_factory=frozenset)
    allowed_basenames: frozenset[str] = Field(default_factory=frozenset)
    max_kb: float = Field(default=DEFAULT_MAX_FILE_SIZE_KB, gt=0)

    @computed_field
    @property
    def max_bytes(self) -> float:
        """Size cap in bytes."""
        return self.max_kb * BYTES_PER_KB


def build_rule_set(
    allowed_extensions: str | None = ALLOWED_EXTENSIONS_STR,
    disallowed_types: str | None = DISALLOWED_TYPES_STR,
    disallowed_basenames: str | None = DISALLOWED_FILES_STR,
    allowed_basenames: str | None = ALLOWED_FILES_STR,
    *,
    max_kb: float | None = None,
    delimiter: str = RULE_DELIMITER,
) -> RuleSet:
    """Turn the delimiter separated configuration strings into a `RuleSet`.

    A `disallowed_types` token starting with a dot is a basename (e.g. `.env`),
    every other token is an extension.

    Args:
        allowed_extensions (str | None): allowed extensions, with or without a leading dot
        disallowed_types (str | None): disallowed extensions and dot-prefixed basenames
        disallowed_basenames (str | None): basenames that are always excluded
        allowed_basenames (str | None): basenames that bypass the extension rules
        max_kb (float | None): size cap override in kilobytes; None keeps the default
        delimiter (str): token separator used by every configuration string

    Returns:
        RuleSet: the immutable rule set
    """
    allowed_ext = frozenset(tok.lower().lstrip(".") for tok in _split_tokens(allowed_extensions, delimiter))

    disallowed_ext: set[str] = set()
    disallowed_names: set[str] = set()
    for tok in _split_tokens(disallowed_types, delimiter):
        if tok.startswith("."):
            disallowed_names.add(tok)
        else:
            disallowed_ext.add(tok.lower())
    disallowed_names.update(_split_tokens(disallowed_basenames, delimiter))

    return RuleSet(
        allowed_extensions=frozenset(ext for ext in allowed_ext if ext),
        disallowed_extensions=frozenset(disallowed_ext),
        disallowed_basenames=frozenset(disallowed_names),
        allowed_basenames=frozenset(_split_tokens(allowed_basenames, delimiter)),
        max_kb=DEFAULT_MAX_FILE_SIZE_KB if max_kb is None else max_kb,
    )


PLAIN_TEXT = "text"
STRUCTURED_DATA = "json"


@dataclass(frozen=True)
class FixedTag:
    """Naming rule resolving to a constant language tag."""

    tag: str

    def __call__(self, content: str | None) -> str:  # noqa: ARG002
        return self.tag


@dataclass(frozen=True)
class ContentClassifier:
    """Naming rule resolving the language tag from the file content.

    The classifier never raises: any error resolves to `fallback`.
    """

    classify: Callable[[str], str]
    fallback: str = PLAIN_TEXT

    def __call__(self, content: str | None) -> str:
        try:
            return self.classify(content or "")
        except Exception:  # noqa: BLE001
            return self.fallback


NameRule = FixedTag | ContentClassifier


def _prettierrc_language(content: str) -> str:
    # .prettierrc may hold JSON or YAML
    return "json" if content.strip().startswith("{") else "yaml"


# Keys are lowercase basenames.
SPECIAL_BASENAMES: dict[str, NameRule] = {
    "dockerfile": FixedTag("dockerfile"),
    "makefile": FixedTag("makefile"),
    ".gitignore": FixedTag("gitignore"),
    ".gitattributes": FixedTag("git-attributes"),
    ".editorconfig": FixedTag("ini"),
    ".env": FixedTag("ini"),
    ".prettierrc": ContentClassifier(_prettierrc_language, fallback="json"),
}

EXT2LANG: dict[str, str] = {
    "bash": "bash",
    "bat": "bat",
    "c": "c",
    "cc": "cpp",
    "cjs": "javascript",
    "cmd": "bat",
    "cpp": "cpp",
    "cs": "csharp",
    "css": "css",
    "csv": "csv",
    "cxx": "cpp",
    "dart": "dart",
    "go": "go",
    "h": "c",
    "hh": "cpp",
    "hpp": "cpp",
    "hs": "haskell",
    "htm": "html",
    "html": "html",
    "hxx": "cpp",
    "ini": "ini",
    "java": "java",
    "js": "javascript",
    "json": "json",
    "jsx": "javascript",
    "ksh": "bash",
    "kt": "kotlin",
    "kts": "kotlin",
    "less": "less",
    "markdown": "markdown",
    "md": "markdown",
    "mjs": "javascript",
    "php": "php",
    "pl": "perl",
    "pm": "perl",
    "ps1": "powershell",
    "psql": "sql",
    "py": "python",
    "rb": "ruby",
    "rs": "rust",
    "sass": "sass",
    "scala": "scala",
    "scss": "scss",
    "sh": "bash",
    "sql": "sql",
    "toml": "toml",
    "ts": "typescript",
    "tsv": "tsv",
    "tsx": "typescript",
    "xml": "xml",
    "yaml": "yaml",
    "yml": "yaml",
    "zsh": "bash",
}

FENCE_TIERS: tuple[str, str, str] = ("```", "````", "~~~")

INSTRUCTION_BLOCK = """
This file contains the complete codebase dump.
Processing rules (Focused, selective for all scenarios):


## 1. Root-First, Minimal-Scope Analysis
- Always start from the project root or entrypoint.
- Identify only minimal files required for the task (do NOT assume context or filenames).
- Never load or analyze the full codebase to save tokens and time
- Skip irrelevant parts (tests, binaries, presentation-only files, etc.) unless it is requested/required.
- If both frontend and backend exist, include only those portions that directly affect the current task.


## 2. Performance-Optimized File Handling
- Read only necessary line ranges or sections for large files.
- Use chunking/streaming to avoid OOM and increase speed.
- Limit total input to 5MB at a time; process larger data in batches (if required/possible).
- Use table of contents to locate relevant files before loading content.


## 3. Best Practices & Ambiguity Handling
- Follow industry-standard best practices.
- Avoid refactoring/reformatting unless essential.
- Use "package.json" only for dependencies/scripts/version info when needed.
- If ambiguity exists, ask one clear question; otherwise, proceed with reasonable assumptions and document them.


## 4. Patch & Default Output Standards
- Use repo-relative paths in patches.
- Diff must follow standard git format ("a/" and "b/" prefixes).
- Each hunk must include target file path and explicit line ranges ("@@ -start,count +start,count @@").
- Add a short metadata comment above each patch (filename, line ranges, SHA) for human readability and traceability.
- Include at least 3 lines of surrounding context around each diff hunk by default.

"""
