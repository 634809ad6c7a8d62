"""Process configuration for the Timepon server.

The workspace root comes from ``--workspace`` or the ``TIMEPON_WORKSPACE``
environment variable, falling back to the current directory.
"""

import os
from dataclasses import dataclass
from typing import Mapping, Optional

WORKSPACE_ENV = "TIMEPON_WORKSPACE"
DOCUMENT_NAME = "_timepon.yaml"


@dataclass
class TimeponConfig:
    """Settings shared by the watcher, the index and the writer."""
    workspace_root: str
    document_name: str = DOCUMENT_NAME
    stability_threshold: float = 2.0  # seconds of quiet before a file counts as written
    save_retry_max: int = 3
    save_retry_base_delay: float = 1.0  # seconds
    refresh_batch_size: int = 10

    def __post_init__(self):
        self.workspace_root = os.path.abspath(self.workspace_root)

    @property
    def document_path(self) -> str:
        return os.path.join(self.workspace_root, self.document_name)

    @classmethod
    def from_env(
        cls,
        workspace: Optional[str] = None,
        environ: Optional[Mapping[str, str]] = None,
        **overrides,
    ) -> "TimeponConfig":
        """Build a config from an explicit workspace, the environment, or cwd.

        Args:
            workspace: Explicit workspace path (wins over the environment)
            environ: Environment mapping (default: os.environ)
            **overrides: Any other TimeponConfig field

        Returns:
            TimeponConfig with an absolute workspace root
        """
        if environ is None:
            environ = os.environ
        root = workspace or environ.get(WORKSPACE_ENV) or os.getcwd()
        return cls(workspace_root=root, **overrides)
