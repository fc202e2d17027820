import json
import os
from enum import Enum
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from catchup_errors import ConfigValidationError

# Endpoints
ANILIST_API = "https://graphql.anilist.co"
MANGADEX_API = "https://api.mangadex.org"
MANGADEX_SITE = "https://mangadex.org"
VIZ_SITE = "https://www.viz.com"

# Runtime defaults (overridable from the CLI)
DEFAULT_CONFIG_PATH = Path("config.json")
DEFAULT_ERROR_DUMP = Path("anilistUnknownError.json")
ANILIST_MIN_INTERVAL = 1.0
REQUEST_TIMEOUT = 12.0
USER_AGENT = "MangaCatchup/1.0"


class ProviderKind(str, Enum):
    VIZ = "viz"
    MANGADEX = "mangadex"


class SeriesConfig(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    name: str = Field(..., min_length=1)
    anilist_id: int = Field(..., alias="anilistId", gt=0)
    site_id: str = Field(..., alias="siteId", min_length=1)
    provider: ProviderKind


class TrackerConfig(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    anilist_username: str = Field(..., alias="anilistUsername", min_length=1)
    manga: List[SeriesConfig] = Field(default_factory=list)


def _describe_validation_error(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(x) for x in err.get("loc", ()))
        parts.append(f"{loc or '<root>'}: {err.get('msg')}")
    return "; ".join(parts)


def parse_config(raw: object, username_override: Optional[str] = None) -> TrackerConfig:
    """Validate an already-decoded config document.

    ``username_override`` replaces ``anilistUsername`` before validation, so a
    config without a username is still accepted when the override is given.
    """
    if not isinstance(raw, dict):
        raise ConfigValidationError("Invalid config data: top level must be an object")
    if username_override:
        raw = dict(raw)
        raw["anilistUsername"] = username_override
    try:
        return TrackerConfig.model_validate(raw)
    except ValidationError as e:
        raise ConfigValidationError(f"Invalid config data: {_describe_validation_error(e)}") from e


def load_config(path: Path = DEFAULT_CONFIG_PATH) -> TrackerConfig:
    if not path.exists():
        raise ConfigValidationError(f"Config file not found at {path}")
    try:
        with path.open("r", encoding="utf-8") as handle:
            raw = json.load(handle)
    except json.JSONDecodeError as e:
        raise ConfigValidationError(f"Config file {path} is not valid JSON: {e}") from e
    except UnicodeDecodeError as e:
        raise ConfigValidationError(f"Config file {path} is not valid UTF-8: {e}") from e
    except OSError as e:
        raise ConfigValidationError(f"Couldn't read config file {path}: {e}") from e
    # Env wins over the file so one config can be shared between accounts
    return parse_config(raw, username_override=os.getenv("ANILIST_USERNAME") or None)
