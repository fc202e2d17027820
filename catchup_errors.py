from pathlib import Path
from typing import Optional


class CatchupError(Exception):
    """Base for every failure that aborts a catch-up run."""


class ConfigValidationError(CatchupError):
    pass


class ScrapeError(CatchupError):
    pass


class UnknownProviderError(CatchupError):
    pass


class RemoteServiceError(CatchupError):
    def __init__(self, status: int, detail: str = ""):
        self.status = status
        msg = f"AniList HTTP {status}"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)


class UnknownRemoteError(CatchupError):
    def __init__(self, message: str, artifact_path: Optional[Path] = None):
        self.artifact_path = artifact_path
        if artifact_path is not None:
            message = f"{message} (details written to {artifact_path})"
        super().__init__(message)
