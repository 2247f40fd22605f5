"""Settings read from the environment."""

from __future__ import annotations

import os

DEFAULT_REPO_URL = "https://github.com/rithum/pika.git"


class Settings:
    """Application settings loaded from environment variables."""

    def __init__(self) -> None:
        self.repo_url: str = os.environ.get("FORKSYNC_REPO_URL", DEFAULT_REPO_URL)
        self.branch: str = os.environ.get("FORKSYNC_BRANCH", "")  # empty: the remote default branch
        self.debug: bool = bool(os.environ.get("FORKSYNC_DEBUG") or os.environ.get("DEBUG"))


settings = Settings()
