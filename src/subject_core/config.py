"""Pipeline configuration, built once at startup and passed to each component."""

from __future__ import annotations

import dataclasses
import os
from pathlib import Path
from typing import Any

from subject_core.config_validator import read_yaml
from subject_core.secrets import SecretStr
from subject_core.similarity import DEFAULT_SCORE_THRESHOLD, SimilaritySource

API_TOKEN_ENV = "SUBJECTS_API_TOKEN"
DEFAULT_API_BASE_URL = "https://api.wanikani.com/v2"
DEFAULT_PROGRESS_INTERVAL = 1000
DEFAULT_INPUT = "data"
DEFAULT_OUTPUT = "data.bin"


@dataclasses.dataclass(frozen=True)
class ApiConfig:
    token: SecretStr = dataclasses.field(default_factory=lambda: SecretStr(None))
    base_url: str = DEFAULT_API_BASE_URL
    request_interval: float = 1.0
    max_tries: int = 10
    backoff_min: float = 1.0
    backoff_max: float = 10.0
    backoff_factor: float = 2.0
    timeout: float = 30.0

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None, *, token: str | None = None) -> ApiConfig:
        data = dict(data or {})
        defaults = cls()
        return cls(
            token=SecretStr(token if token is not None else os.environ.get(API_TOKEN_ENV)),
            base_url=str(data.get("base_url", defaults.base_url)).rstrip("/"),
            request_interval=float(data.get("request_interval", defaults.request_interval)),
            max_tries=int(data.get("max_tries", defaults.max_tries)),
            backoff_min=float(data.get("backoff_min", defaults.backoff_min)),
            backoff_max=float(data.get("backoff_max", defaults.backoff_max)),
            backoff_factor=float(data.get("backoff_factor", defaults.backoff_factor)),
            timeout=float(data.get("timeout", defaults.timeout)),
        )


@dataclasses.dataclass(frozen=True)
class PipelineConfig:
    """Everything the combine stage needs.

    Similarity sources are applied in list order, which decides which source establishes
    a pair first.
    """

    input_path: Path
    output_path: Path
    overrides_path: Path | None = None
    similarity_sources: tuple[SimilaritySource, ...] = ()
    similarity_threshold: float = DEFAULT_SCORE_THRESHOLD
    sort_amalgamations: bool = True
    progress_interval: int = DEFAULT_PROGRESS_INTERVAL
    api: ApiConfig = dataclasses.field(default_factory=ApiConfig)

    @classmethod
    def from_dict(cls, data: dict[str, Any], *, base_dir: Path | None = None) -> PipelineConfig:
        def resolve(value: str) -> Path:
            path = Path(value).expanduser()
            if base_dir is not None and not path.is_absolute():
                path = base_dir / path
            return path

        combine = data.get("combine") or {}
        similarity = data.get("similarity") or {}
        return cls(
            input_path=resolve(data.get("input") or DEFAULT_INPUT),
            output_path=resolve(data.get("output") or DEFAULT_OUTPUT),
            overrides_path=resolve(data["overrides"]) if data.get("overrides") else None,
            similarity_sources=tuple(
                SimilaritySource.from_dict(item, base_dir=base_dir) for item in similarity.get("sources", [])
            ),
            similarity_threshold=float(similarity.get("score_threshold", DEFAULT_SCORE_THRESHOLD)),
            sort_amalgamations=bool(combine.get("sort_amalgamations", True)),
            progress_interval=int(combine.get("progress_interval", DEFAULT_PROGRESS_INTERVAL)),
            api=ApiConfig.from_dict(data.get("api")),
        )


def load_config(path: Path) -> PipelineConfig:
    """Load and validate a YAML config file; relative paths resolve against its directory."""
    data = read_yaml(path, schema_name="pipeline")
    return PipelineConfig.from_dict(data, base_dir=path.parent)
