"""
Run configuration for the Zyxt runtime, optionally loaded from a YAML file.
"""
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Optional

import yaml

DEFAULT_CONFIG_NAME = "zyxt.yaml"


@dataclass(frozen=True)
class RunConfig:
    """Settings shared by the CLI, the REPL and embedders of ScriptRunner."""
    # 0 = quiet; 1 = stage timings; 2 = parser passes; 3 = desugaring and frames
    verbosity: int = 0
    # Run a frame's deferred statements when it is unwound by an error
    defer_on_error: bool = False
    # Raise Python's recursion limit for deeply nested programs
    recursion_limit: Optional[int] = None
    # Append the Zyxt call stack to formatted errors
    show_stacktrace: bool = True

    def merged(self, **overrides: Any) -> 'RunConfig':
        """Returns a copy with every non-None override applied."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})


def load_config(path: Optional[str] = None) -> RunConfig:
    """Loads a RunConfig from `path`, or from ./zyxt.yaml when it exists.

    Missing default files give the default config; a missing explicit path is
    an error. Unknown keys raise ValueError.
    """
    if path is None:
        candidate = Path.cwd() / DEFAULT_CONFIG_NAME
        data = _read_yaml(candidate) if candidate.is_file() else {}
    else:
        candidate = Path(path)
        if not candidate.is_file():
            raise FileNotFoundError(path)
        data = _read_yaml(candidate)

    known = {f.name for f in fields(RunConfig)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ValueError(f"Unknown config key(s) in {candidate}: {', '.join(unknown)}")

    config = RunConfig(**data)
    if os.environ.get("ZYXT_DEBUG") and config.verbosity < 1:
        config = replace(config, verbosity=1)
    return config


def _read_yaml(path: Path) -> dict:
    text = path.read_text(encoding="utf-8")
    data = yaml.safe_load(text)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a mapping")
    return data
