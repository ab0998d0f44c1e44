from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class CodeDumpError(Exception):
    """Base exception for errors in the code_dump module."""


@dataclass(frozen=True)
class GitCommandError(CodeDumpError):
    """Raised when a git command fails."""

    command: str
    returncode: int
    stdout: str
    stderr: str

    def __str__(self) -> str:
        detail = self.stderr.strip() or self.stdout.strip() or f"exit status {self.returncode}"
        return f"`{self.command}` failed: {detail}"


@dataclass(frozen=True)
class NotAGitRepositoryError(CodeDumpError):
    """Raised when the working directory is not inside a Git working tree."""

    folder: Path
    message: str = "Not inside a Git repository. cd into your repo and rerun."

    def __str__(self) -> str:
        return f"{self.message} ({self.folder})"
