from __future__ import annotations

import os
from pathlib import Path

from dotenv import dotenv_values, find_dotenv
from pydantic import BaseModel, ConfigDict, Field

ENV_FILE = find_dotenv(usecwd=True)


def default_home() -> Path:
    """Home directory holding the global `.ctx/` registry.

    `CTX_HOME` from the environment wins over `.env`, which wins over the
    user's home directory.
    """
    override = os.environ.get("CTX_HOME")
    if not override and ENV_FILE:
        override = dotenv_values(ENV_FILE).get("CTX_HOME")
    return Path(override).expanduser() if override else Path.home()


class Settings(BaseModel):
    """Configuration settings for one `ctx` invocation."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    command: str = Field(default="status", description="Sub-command to run.")
    root: Path = Field(default_factory=Path.cwd, description="Directory to start the project search from.")
    home: Path = Field(default_factory=default_home, description="Directory holding the global .ctx/.")
    log_file: str = Field(default="", description="Log file path.")
    verbose: bool = Field(default=False, description="Debug logging.")

    # Scope selection
    global_scope: bool = Field(default=False, description="Operate on the global registry only.")
    all: bool = Field(default=False, description="Operate on project and global registries.")

    # Output shaping
    pretty: bool = Field(default=False, description="Human-readable output instead of JSON.")
    paths: bool = Field(default=False, description="Print matching context paths only.")

    # Matching
    target: str = Field(default="", description="Target file path or pattern.")
    keywords: list[str] = Field(default_factory=list, description="Keywords for relevance search.")

    # check / sync
    path: str = Field(default="", description="Restrict to one context document.")
    fix: bool = Field(default=False, description="Sync the registry when drift is found.")
    strict: bool = Field(default=False, description="Exit 1 when the registry is stale.")
    rebuild_index: bool = Field(default=False, description="Rebuild the global project index.")

    # init / create / save / add / remove / adopt
    init_target: str = Field(default="", description="'.' initializes the project, empty the global home.")
    context_paths: str = Field(default="", description="Comma list of pattern:purpose pairs.")
    force: bool = Field(default=False, description="Overwrite or reinitialize without asking.")
    patterns: list[str] = Field(default_factory=list, description="Paths or glob patterns.")
    content: str = Field(default="", description="Document body for save.")
    what: str = Field(default="", description="Preview summary for save.")

    # add-pattern
    pattern: str = Field(default="", description="Discovery glob to add to context_paths.")
    purpose: str = Field(default="", description="What documents matched by the pattern are for.")

    # migrate
    remove_legacy_config: bool = Field(default=False, description="Delete ctx.config.yaml after migrating.")
    remove_legacy_dir: bool = Field(default=False, description="Delete the legacy ctx/ directory after migrating.")

    # session
    session_file: str = Field(default="", description="Session transcript (JSONL).")
    role: str = Field(default="", description="Only keep messages from this role.")
    format: str = Field(default="jsonl", description="Session output format: jsonl, text or markdown.")
