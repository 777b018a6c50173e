import os
from pathlib import Path
from typing import Optional

import yaml

DEFAULT_CONFIG: dict = {
    "workspace_dir": "./workspace",
    "git_timeout_minutes": 10,
    "lfs_skip_smudge": False,  # True exports GIT_LFS_SKIP_SMUDGE=1 to every git invocation
    "max_workers": 4,  # concurrent background reviews per orchestrator
    "store": "sqlite",  # "sqlite" or "memory"
    "store_path": ".meiwei.db",
    "log_level": "WARNING",
}


def load_config(config_path: str = ".meiwei.yml", cli_overrides: Optional[dict] = None) -> dict:
    """
    Load configuration by merging (in order of precedence):
      1. Built-in defaults
      2. .meiwei.yml in the current directory
      3. Environment variables (MEIWEI_WORKSPACE_DIR, GIT_LFS_SKIP_SMUDGE)
      4. CLI argument overrides
    """
    config = dict(DEFAULT_CONFIG)

    path = Path(config_path)
    if path.exists():
        with open(path) as f:
            file_config = yaml.safe_load(f) or {}
        if not isinstance(file_config, dict):
            raise ValueError(f"{config_path} must contain a YAML mapping, got {type(file_config).__name__}.")
        config.update(file_config)

    workspace = os.environ.get("MEIWEI_WORKSPACE_DIR")
    if workspace:
        config["workspace_dir"] = workspace
    skip_smudge = os.environ.get("GIT_LFS_SKIP_SMUDGE")
    if skip_smudge is not None:
        config["lfs_skip_smudge"] = skip_smudge.strip() == "1"

    if cli_overrides:
        for key, value in cli_overrides.items():
            if value is not None:
                config[key] = value

    return config


def git_timeout_seconds(config: dict) -> float:
    return float(config.get("git_timeout_minutes", DEFAULT_CONFIG["git_timeout_minutes"])) * 60
