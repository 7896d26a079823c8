"""Source configuration: which work units to ingest and how to fetch them."""
import json
from pathlib import Path
from typing import List

from pydantic import BaseModel, Field, ValidationError, model_validator

from utils.logger import setup_logger
from ingestion.models import WorkUnit
from ingestion.parsers import PARSERS
from execution.errors import FatalConfigError
import config

logger = setup_logger(__name__)


class SourceConfig(BaseModel):
    source: str = Field(min_length=1)
    rate_limit_seconds: float = Field(default=config.FETCH_RATE_LIMIT_SECONDS, ge=0)
    per_host_rate_limit: bool = False
    max_retries: int = Field(default=config.FETCH_MAX_RETRIES, ge=1)
    base_delay_seconds: float = Field(default=config.FETCH_BASE_DELAY_SECONDS, ge=0)
    timeout_seconds: float = Field(default=config.FETCH_TIMEOUT_SECONDS, gt=0)
    units: List[WorkUnit] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_unique(self) -> "SourceConfig":
        seen = set()
        for unit in self.units:
            if unit.key in seen:
                raise ValueError(f"duplicate work unit key {unit.key!r}")
            seen.add(unit.key)

        stable_ids = [unit.stable_id for unit in self.units]
        if len(stable_ids) != len(set(stable_ids)):
            raise ValueError("work unit source_id values must be unique")
        return self


def load_source_config(path: Path) -> SourceConfig:
    """Load and validate a source configuration file.

    Relative ``files`` entries are resolved against the configuration file's
    directory.

    Args:
        path: JSON configuration path

    Returns:
        Validated SourceConfig

    Raises:
        FatalConfigError: Missing file, invalid JSON, failed validation,
            unknown parser or missing local payload file
    """
    path = Path(path)
    if not path.exists():
        raise FatalConfigError(f"Source configuration not found: {path}")

    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise FatalConfigError(f"Invalid JSON in {path}: {e}") from e

    try:
        source_config = SourceConfig.model_validate(data)
    except ValidationError as e:
        raise FatalConfigError(f"Invalid source configuration {path}:\n{e}") from e

    units = []
    for unit in source_config.units:
        if unit.parser not in PARSERS:
            raise FatalConfigError(
                f"Unit {unit.key!r} uses unknown parser '{unit.parser}' "
                f"(available: {', '.join(sorted(PARSERS))})"
            )

        files = []
        for name in unit.files:
            file_path = Path(name)
            if not file_path.is_absolute():
                file_path = path.parent / file_path
            if not file_path.exists():
                raise FatalConfigError(f"Unit {unit.key!r} references missing file: {file_path}")
            files.append(str(file_path))
        units.append(unit.model_copy(update={"files": files}))

    logger.info(f"Loaded source '{source_config.source}' with {len(units)} work units")
    return source_config.model_copy(update={"units": units})
