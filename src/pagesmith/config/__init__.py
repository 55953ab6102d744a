"""Configuration for pagesmith."""

from pagesmith.config.orchestrator import (
    OrchestratorConfig,
    TierThresholds,
    get_config,
    set_config,
)

__all__ = [
    "OrchestratorConfig",
    "TierThresholds",
    "get_config",
    "set_config",
]
