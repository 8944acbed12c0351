"""Runtime configuration for the version manager."""

import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel


class Settings(BaseModel):
    home: Path = Path.home() / ".suivm"
    repo_owner: str = "MystenLabs"
    repo_name: str = "sui"
    binary_name: str = "sui"
    api_url: str = "https://api.github.com"
    # Builds for commits that have no release attached.
    commit_artifact_url: Optional[str] = (
        "https://sui-releases.s3-accelerate.amazonaws.com/{commit}/sui-{os}-{arch}"
    )
    user_agent: str = "suivm (+https://github.com/MystenLabs/sui)"
    request_timeout: float = 30.0
    download_retries: int = 3
    retry_base_delay: float = 0.5
    retry_max_delay: float = 8.0
    lock_timeout: float = 60.0
    github_token: Optional[str] = None

    @classmethod
    def from_env(cls, **overrides) -> "Settings":
        """Build settings from defaults, environment, then explicit overrides."""
        values = {}
        if os.environ.get("SUIVM_HOME"):
            values["home"] = Path(os.environ["SUIVM_HOME"]).expanduser()
        if os.environ.get("SUIVM_REPO"):
            owner, _, name = os.environ["SUIVM_REPO"].partition("/")
            if owner and name:
                values["repo_owner"] = owner
                values["repo_name"] = name
        if os.environ.get("SUIVM_API_URL"):
            values["api_url"] = os.environ["SUIVM_API_URL"]
        if os.environ.get("GITHUB_TOKEN"):
            values["github_token"] = os.environ["GITHUB_TOKEN"]
        values.update(overrides)
        return cls(**values)

    @property
    def versions_dir(self) -> Path:
        return self.home / "versions"

    @property
    def bin_dir(self) -> Path:
        return self.home / "bin"

    @property
    def tmp_dir(self) -> Path:
        return self.home / "tmp"

    @property
    def current_link(self) -> Path:
        return self.home / "current"

    @property
    def lock_file(self) -> Path:
        return self.home / ".lock"

    @property
    def log_file(self) -> Path:
        return self.home / "suivm.log"

    @property
    def repo_api_url(self) -> str:
        return f"{self.api_url.rstrip('/')}/repos/{self.repo_owner}/{self.repo_name}"
