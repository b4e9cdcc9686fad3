"""
Configuration

Loads the metric specifications and the drill catalog from YAML files
shipped in core/data. Either file can be replaced through an environment
variable:

    SWINGSENSE_METRIC_SPECS=/path/to/metric_specs.yaml
    SWINGSENSE_DRILLS=/path/to/drills.yaml

Files are validated with pydantic and converted into immutable domain
objects. Loading is cheap, so callers load once per analysis instead of
caching shared state.

Server settings (log level, CORS origins, bind address) come from
SWINGSENSE_LOG_LEVEL, SWINGSENSE_CORS_ORIGINS, SWINGSENSE_HOST and
SWINGSENSE_PORT.
"""

import logging
import os
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional, Tuple, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .domain.analysis import DrillReference, MetricSpec
from .domain.errors import InvalidMetricSpec

if TYPE_CHECKING:
    from .services.coaching import InMemoryDrillCatalog

logger = logging.getLogger(__name__)


DATA_DIR = Path(__file__).parent / "data"
DEFAULT_METRIC_SPECS_PATH = DATA_DIR / "metric_specs.yaml"
DEFAULT_DRILLS_PATH = DATA_DIR / "drills.yaml"

METRIC_SPECS_ENV = "SWINGSENSE_METRIC_SPECS"
DRILLS_ENV = "SWINGSENSE_DRILLS"

PathLike = Union[str, Path]


# =============================================================================
# File schemas
# =============================================================================

class MetricSpecModel(BaseModel):
    """One metric entry in metric_specs.yaml."""
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    target: Tuple[float, float]
    weight: float = Field(ge=0)
    invert: bool = False
    abs_window: bool = Field(False, alias="absWindow")

    def to_spec(self) -> MetricSpec:
        return MetricSpec.from_flags(
            target=self.target,
            weight=self.weight,
            invert=self.invert,
            abs_window=self.abs_window,
        )


class MetricSpecFile(BaseModel):
    metrics: Dict[str, MetricSpecModel]


class DrillModel(BaseModel):
    """One drill entry in drills.yaml."""
    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    goal_metric: Optional[str] = Field(None, alias="goalMetric")
    purpose: str = ""
    setup: List[str] = Field(default_factory=list)
    steps: List[str] = Field(default_factory=list)
    reps: str = ""
    focus_cues: List[str] = Field(default_factory=list, alias="focusCues")
    equipment: List[str] = Field(default_factory=list)

    def to_reference(self) -> DrillReference:
        return DrillReference(
            drill_id=self.id,
            name=self.name,
            goal_metric=self.goal_metric,
            purpose=self.purpose,
            setup=tuple(self.setup),
            instructions=tuple(self.steps),
            equipment=tuple(self.equipment),
            reps=self.reps,
            focus_cues=tuple(self.focus_cues),
        )


class DrillFile(BaseModel):
    drills: List[DrillModel]


# =============================================================================
# Loaders
# =============================================================================

def _resolve_path(path: Optional[PathLike], env_var: str, default: Path) -> Path:
    if path is not None:
        return Path(path)
    override = os.environ.get(env_var)
    if override:
        return Path(override)
    return default


def _read_yaml(path: Path) -> Any:
    with open(path, encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def parse_metric_specs(data: Mapping[str, Any]) -> Dict[str, MetricSpec]:
    """
    Validate a metric specification mapping.

    Accepts either {"metrics": {...}} or the bare name -> spec mapping.

    Raises:
        InvalidMetricSpec: malformed entry, min > max, negative weight,
                           or invert combined with absWindow
    """
    if "metrics" not in data:
        data = {"metrics": data}
    try:
        parsed = MetricSpecFile.model_validate(data)
    except ValidationError as e:
        raise InvalidMetricSpec(f"Invalid metric specification: {e}") from e

    specs = {}
    for name, model in parsed.metrics.items():
        try:
            specs[name] = model.to_spec()
        except InvalidMetricSpec as e:
            raise InvalidMetricSpec(f"{name}: {e}") from e
    return specs


def load_metric_specs(path: Optional[PathLike] = None) -> Dict[str, MetricSpec]:
    """
    Load metric specifications.

    Args:
        path: YAML file; falls back to $SWINGSENSE_METRIC_SPECS, then the
              bundled metric_specs.yaml
    """
    resolved = _resolve_path(path, METRIC_SPECS_ENV, DEFAULT_METRIC_SPECS_PATH)
    specs = parse_metric_specs(_read_yaml(resolved))
    logger.debug(f"Loaded {len(specs)} metric specs from {resolved}")
    return specs


def load_drill_catalog(path: Optional[PathLike] = None) -> "InMemoryDrillCatalog":
    """
    Load the drill catalog.

    Args:
        path: YAML file; falls back to $SWINGSENSE_DRILLS, then the
              bundled drills.yaml
    """
    from .services.coaching import InMemoryDrillCatalog

    resolved = _resolve_path(path, DRILLS_ENV, DEFAULT_DRILLS_PATH)
    parsed = DrillFile.model_validate(_read_yaml(resolved))
    catalog = InMemoryDrillCatalog(drill.to_reference() for drill in parsed.drills)
    logger.debug(f"Loaded {len(catalog)} drills from {resolved}")
    return catalog


# =============================================================================
# Server
# =============================================================================

LOG_LEVEL_ENV = "SWINGSENSE_LOG_LEVEL"
CORS_ORIGINS_ENV = "SWINGSENSE_CORS_ORIGINS"
HOST_ENV = "SWINGSENSE_HOST"
PORT_ENV = "SWINGSENSE_PORT"

DEV_ORIGINS = (
    "http://localhost:3000",      # React dev server
    "http://localhost:5173",      # Vite dev server
    "http://127.0.0.1:3000",
    "http://127.0.0.1:5173",
)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class ServerSettings(BaseModel):
    """
    Process-level settings for the API server.

    SWINGSENSE_CORS_ORIGINS is a comma-separated list; "*" allows any
    origin (development default).
    """
    log_level: str = "INFO"
    cors_origins: List[str] = Field(default_factory=lambda: list(DEV_ORIGINS) + ["*"])
    host: str = "0.0.0.0"
    port: int = Field(8000, ge=1, le=65535)

    @classmethod
    def from_env(cls) -> "ServerSettings":
        values: Dict[str, Any] = {}
        if os.environ.get(LOG_LEVEL_ENV):
            values["log_level"] = os.environ[LOG_LEVEL_ENV].upper()
        if os.environ.get(CORS_ORIGINS_ENV):
            values["cors_origins"] = [
                origin.strip() for origin in os.environ[CORS_ORIGINS_ENV].split(",") if origin.strip()
            ]
        if os.environ.get(HOST_ENV):
            values["host"] = os.environ[HOST_ENV]
        if os.environ.get(PORT_ENV):
            values["port"] = os.environ[PORT_ENV]
        return cls.model_validate(values)
