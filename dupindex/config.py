"""
Configuration for the duplicate index.

Controls where the index lives, the on-disk vector precision and the
default query parameters. Loaded from YAML or JSON files.
"""

import json
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

CONFIG_FILE_NAMES = [".dupindex.yml", ".dupindex.yaml", "dupindex.yml", "dupindex.yaml"]
VECTOR_DTYPES = ("float32", "float64")


@dataclass
class IndexConfig:
    """
    Configuration for an on-disk duplicate index.

    The three stores live in distinct subdirectories of ``index_dir``.
    """

    # Index location, relative to the project root unless absolute
    index_dir: str = ".dupindex"

    vectors_subdir: str = "vectors"
    metadata_subdir: str = "metadata"
    tracker_subdir: str = "files"

    # On-disk precision; vectors are always float64 in memory
    vector_dtype: str = "float32"

    default_top_k: int = 10
    default_threshold: Optional[float] = None

    def __post_init__(self) -> None:
        """Validate configuration parameters."""
        if self.vector_dtype not in VECTOR_DTYPES:
            raise ValueError(f"vector_dtype must be one of {VECTOR_DTYPES}, got {self.vector_dtype!r}")
        if self.default_top_k <= 0:
            raise ValueError(f"default_top_k must be positive, got {self.default_top_k}")
        if self.default_threshold is not None and not -1.0 <= self.default_threshold <= 1.0:
            raise ValueError(f"default_threshold must be in [-1, 1], got {self.default_threshold}")

        subdirs = [self.vectors_subdir, self.metadata_subdir, self.tracker_subdir]
        if len(set(subdirs)) != len(subdirs):
            raise ValueError(f"Store subdirectories must be distinct, got {subdirs}")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {f.name: getattr(self, f.name) for f in fields(self)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "IndexConfig":
        """Create from dictionary representation, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        return cls(**{key: value for key, value in data.items() if key in known})

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "IndexConfig":
        """Load configuration from a file."""
        path = Path(path)
        if not path.exists():
            return cls()

        with open(path, "r", encoding="utf-8") as f:
            if path.suffix in [".yaml", ".yml"]:
                data = yaml.safe_load(f) or {}
            elif path.suffix == ".json":
                data = json.load(f)
            else:
                raise ValueError(f"Unsupported config format: {path.suffix}")

        if not isinstance(data, dict):
            raise ValueError(f"Config file {path} must contain a mapping")

        # Allow the settings to sit under a top-level 'index' key
        return cls.from_dict(data.get("index", data))

    @classmethod
    def find_and_load(cls, start_path: Union[str, Path]) -> "IndexConfig":
        """Find and load configuration from standard locations."""
        current = Path(start_path).resolve()

        while current != current.parent:
            for name in CONFIG_FILE_NAMES:
                config_path = current / name
                if config_path.exists():
                    return cls.from_file(config_path)
            current = current.parent

        return cls()

    def save(self, path: Union[str, Path]) -> None:
        """Save configuration as YAML."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            yaml.dump(self.to_dict(), f, default_flow_style=False, sort_keys=False)
