"""Runtime configuration for the reconciliation engine.

Settings come from environment variables. A `.env` file at the repository
root is loaded first if it exists.

Variables:
- RECON_AMOUNT_TOLERANCE: pesos of slack allowed when matching amounts (default 2)
- RECON_MAX_SEARCH_NODES: node budget for one subset-sum search (default 1500000)
- RECON_LOG_LEVEL: logging level name (default INFO)
- RECON_LOG_JSON: "true" for JSON log lines (default false)
- RECON_ARTIFACTS_DIR: where reports are written by the CLI (default artifacts/)
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

REPO_ROOT = Path(__file__).resolve().parents[1]

env_path = REPO_ROOT / ".env"
if env_path.exists():
    load_dotenv(env_path)


DEFAULT_AMOUNT_TOLERANCE = 2
DEFAULT_MAX_SEARCH_NODES = 1_500_000


def _env_int(name: str, default: int) -> int:
    """Read a non-negative integer variable, falling back to default."""
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    try:
        parsed = int(value.strip().replace("_", ""))
    except ValueError:
        return default
    return parsed if parsed >= 0 else default


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class ReconciliationSettings:
    """Engine settings resolved from the environment."""
    amount_tolerance: int = DEFAULT_AMOUNT_TOLERANCE
    max_search_nodes: int = DEFAULT_MAX_SEARCH_NODES
    log_level: str = "INFO"
    log_json: bool = False
    artifacts_dir: Path = REPO_ROOT / "artifacts"

    @property
    def log_level_value(self) -> int:
        return getattr(logging, self.log_level.upper(), logging.INFO)

    @classmethod
    def from_env(cls) -> "ReconciliationSettings":
        artifacts = os.getenv("RECON_ARTIFACTS_DIR")
        return cls(
            amount_tolerance=_env_int("RECON_AMOUNT_TOLERANCE", DEFAULT_AMOUNT_TOLERANCE),
            max_search_nodes=_env_int("RECON_MAX_SEARCH_NODES", DEFAULT_MAX_SEARCH_NODES),
            log_level=os.getenv("RECON_LOG_LEVEL", "INFO"),
            log_json=_env_bool("RECON_LOG_JSON", False),
            artifacts_dir=Path(artifacts) if artifacts else REPO_ROOT / "artifacts",
        )


_settings: Optional[ReconciliationSettings] = None


def get_settings() -> ReconciliationSettings:
    """Return the cached settings, reading the environment on first use."""
    global _settings
    if _settings is None:
        _settings = ReconciliationSettings.from_env()
    return _settings


def reset_settings() -> None:
    """Drop cached settings so the next get_settings() re-reads the environment."""
    global _settings
    _settings = None
