from __future__ import annotations

import os
from pathlib import Path

from dotenv import dotenv_values, find_dotenv
from pydantic import BaseModel, ConfigDict, Field, computed_field

from code_dump.config import DEFAULT_FILE_NAME, DEFAULT_MAX_FILE_SIZE_KB, OutputFormat

ENV_FILE = find_dotenv(usecwd=True)
OUTPUT_DIR_ENV = "CODE_DUMP_OUTPUT_DIR"


def default_output_dir() -> Path:
    """Return the user's download directory.

    `CODE_DUMP_OUTPUT_DIR` (environment first, then `.env`) overrides `~/Downloads`.
    """
    override = os.environ.get(OUTPUT_DIR_ENV)
    if not override and ENV_FILE:
        override = dotenv_values(ENV_FILE).get(OUTPUT_DIR_ENV)
    if override:
        return Path(override).expanduser()
    return Path.home() / "Downloads"


class Settings(BaseModel):
    """Configuration settings for a code_dump run."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    repo: Path = Field(default_factory=Path.cwd, description="Directory git is run from.")
    max_kb: float = Field(default=DEFAULT_MAX_FILE_SIZE_KB, gt=0, description="Per-file size cap (KB).")
    file_name: str = Field(default=DEFAULT_FILE_NAME, description="Output basename.")
    format: OutputFormat = Field(default=OutputFormat.MD, description="Output format.")
    output_dir: Path = Field(default_factory=default_output_dir, description="Output directory.")
    log_file: str = Field(default="", description="Log file path.")

    @computed_field
    @property
    def output_path(self) -> Path:
        """Full path of the generated document."""
        return self.output_dir / self.file_name
