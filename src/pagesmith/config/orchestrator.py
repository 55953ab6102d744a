"""Orchestrator configuration.

Contains OrchestratorConfig, the configuration dataclass for page
improvement runs, and the per-tier quality-gate thresholds. The regression
ratios, thresholds and per-tool cost estimates are empirically tuned values
and are exposed here so they can be overridden from TOML or the environment.
"""

from __future__ import annotations

import logging
import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

from pagesmith.config.parsing import _parse_bool, _parse_float_mapping

logger = logging.getLogger(__name__)

_CONFIG_FILE_ENV_VAR = "PAGESMITH_CONFIG"
_ENV_PREFIX = "PAGESMITH_"


@dataclass(frozen=True)
class TierThresholds:
    """Minimum metric values a page must reach to pass the quality gate.

    Attributes:
        min_words: Minimum word count
        min_footnotes: Minimum citation count (skipped for zero-research tiers)
        min_entity_links: Minimum EntityLink count
        min_structural_score: Minimum structural score (0-100 scale)
    """

    min_words: int
    min_footnotes: int
    min_entity_links: int
    min_structural_score: int

    @classmethod
    def from_toml_dict(cls, data: Dict[str, Any], base: "TierThresholds") -> "TierThresholds":
        return cls(
            min_words=int(data.get("min_words", base.min_words)),
            min_footnotes=int(data.get("min_footnotes", base.min_footnotes)),
            min_entity_links=int(data.get("min_entity_links", base.min_entity_links)),
            min_structural_score=int(data.get("min_structural_score", base.min_structural_score)),
        )


def _default_tier_thresholds() -> Dict[str, TierThresholds]:
    return {
        "polish": TierThresholds(min_words=500, min_footnotes=3, min_entity_links=3, min_structural_score=30),
        "standard": TierThresholds(min_words=800, min_footnotes=8, min_entity_links=5, min_structural_score=40),
        "deep": TierThresholds(min_words=1200, min_footnotes=15, min_entity_links=10, min_structural_score=55),
    }


def _default_tool_costs() -> Dict[str, float]:
    return {
        "read_page": 0.0,
        "get_page_metrics": 0.0,
        "split_into_sections": 0.0,
        "run_research": 1.50,
        "rewrite_section": 0.20,
        "audit_citations": 0.20,
        "add_entity_links": 0.05,
        "add_fact_refs": 0.05,
        "validate_content": 0.0,
    }


@dataclass
class OrchestratorConfig:
    """Configuration for orchestrator runs.

    Attributes:
        orchestrator_model: Model driving the tool-calling agent
        writer_model: Model passed to the section writer
        max_refinement_cycles: Quality-gate re-entries after the initial loop
        max_tool_turns: Safety ceiling on tool turns per agent loop
        loop_overhead_cost: Estimated agent cost booked per loop (USD)
        agent_max_tokens: Output token limit per agent request
        agent_max_retries: Retries for transient agent-service failures
        agent_retry_base_delay: Initial backoff delay in seconds
        agent_retry_max_delay: Backoff delay cap in seconds
        heartbeat_interval: Seconds between "still waiting" log lines (0 disables)
        word_regression_ratio: Minimum fraction of original words to keep
        footnote_regression_ratio: Minimum fraction of original citations to keep
        tier_thresholds: Quality-gate minimums per tier name
        tool_cost_estimates: Static cost estimate per tool name (USD)
        research_cost_cap: Cost cap passed to each research call (USD)
        citation_pass_threshold: Pass threshold passed to the citation auditor
        output_dir: Where pipeline runs write final content and reports
        anthropic_api_key: API key for the agent service (env only)
        log_level: Logging level for the ``pagesmith`` logger
        structured_logging: Emit JSON-style log lines
    """

    orchestrator_model: str = "claude-opus-4-1"
    writer_model: str = "claude-sonnet-4-5"
    max_refinement_cycles: int = 2
    max_tool_turns: int = 60
    loop_overhead_cost: float = 0.50
    agent_max_tokens: int = 16_000
    agent_max_retries: int = 3
    agent_retry_base_delay: float = 1.0
    agent_retry_max_delay: float = 60.0
    heartbeat_interval: float = 60.0
    word_regression_ratio: float = 0.7
    footnote_regression_ratio: float = 0.8
    tier_thresholds: Dict[str, TierThresholds] = field(default_factory=_default_tier_thresholds)
    tool_cost_estimates: Dict[str, float] = field(default_factory=_default_tool_costs)
    research_cost_cap: float = 3.00
    citation_pass_threshold: float = 0.7
    output_dir: Path = field(default_factory=lambda: Path(".pagesmith/orchestrator"))
    anthropic_api_key: Optional[str] = field(default=None, repr=False)
    log_level: str = "INFO"
    structured_logging: bool = False

    def thresholds_for(self, tier: str) -> TierThresholds:
        """Return the gate thresholds for *tier*.

        Raises:
            ValueError: If the tier has no thresholds configured
        """
        try:
            return self.tier_thresholds[tier]
        except KeyError:
            raise ValueError(
                f"No quality-gate thresholds configured for tier '{tier}'. "
                f"Known tiers: {', '.join(sorted(self.tier_thresholds))}"
            ) from None

    def tool_cost(self, tool_name: str) -> float:
        return self.tool_cost_estimates.get(tool_name, 0.0)

    @classmethod
    def from_toml_dict(cls, data: Dict[str, Any]) -> "OrchestratorConfig":
        """Create config from TOML dict (typically [orchestrator] section).

        Args:
            data: Dict from TOML parsing

        Returns:
            OrchestratorConfig instance
        """
        tier_thresholds = _default_tier_thresholds()
        raw_thresholds = data.get("thresholds", {})
        if isinstance(raw_thresholds, dict):
            for tier_name, tier_data in raw_thresholds.items():
                if not isinstance(tier_data, dict):
                    logger.warning("Ignoring thresholds for tier '%s': expected a table", tier_name)
                    continue
                base = tier_thresholds.get(tier_name, tier_thresholds["standard"])
                tier_thresholds[tier_name] = TierThresholds.from_toml_dict(tier_data, base)

        tool_costs = _default_tool_costs()
        if "tool_costs" in data:
            tool_costs.update(_parse_float_mapping(data["tool_costs"], source="orchestrator.tool_costs"))

        return cls(
            orchestrator_model=str(data.get("orchestrator_model", cls.orchestrator_model)),
            writer_model=str(data.get("writer_model", cls.writer_model)),
            max_refinement_cycles=int(data.get("max_refinement_cycles", 2)),
            max_tool_turns=int(data.get("max_tool_turns", 60)),
            loop_overhead_cost=float(data.get("loop_overhead_cost", 0.50)),
            agent_max_tokens=int(data.get("agent_max_tokens", 16_000)),
            agent_max_retries=int(data.get("agent_max_retries", 3)),
            agent_retry_base_delay=float(data.get("agent_retry_base_delay", 1.0)),
            agent_retry_max_delay=float(data.get("agent_retry_max_delay", 60.0)),
            heartbeat_interval=float(data.get("heartbeat_interval", 60.0)),
            word_regression_ratio=float(data.get("word_regression_ratio", 0.7)),
            footnote_regression_ratio=float(data.get("footnote_regression_ratio", 0.8)),
            tier_thresholds=tier_thresholds,
            tool_cost_estimates=tool_costs,
            research_cost_cap=float(data.get("research_cost_cap", 3.00)),
            citation_pass_threshold=float(data.get("citation_pass_threshold", 0.7)),
            output_dir=Path(data.get("output_dir", ".pagesmith/orchestrator")),
            log_level=str(data.get("log_level", "INFO")).upper(),
            structured_logging=_parse_bool(data.get("structured_logging", False)),
        )

    @classmethod
    def from_env(cls, config_file: Optional[str] = None) -> "OrchestratorConfig":
        """Create config from an optional TOML file plus environment overrides.

        Priority (highest first): ``PAGESMITH_*`` environment variables, the
        ``[orchestrator]`` table of *config_file* (or ``$PAGESMITH_CONFIG``),
        built-in defaults.
        """
        data: Dict[str, Any] = {}
        path = config_file or os.environ.get(_CONFIG_FILE_ENV_VAR)
        if path:
            config_path = Path(path).expanduser()
            if config_path.exists():
                with config_path.open("rb") as fh:
                    document = tomllib.load(fh)
                data = dict(document.get("orchestrator", {}))
                logger.debug("Loaded orchestrator config from %s", config_path)
            else:
                logger.warning("Config file %s not found, using defaults", config_path)

        config = cls.from_toml_dict(data)

        if value := os.environ.get(f"{_ENV_PREFIX}ORCHESTRATOR_MODEL"):
            config.orchestrator_model = value
        if value := os.environ.get(f"{_ENV_PREFIX}WRITER_MODEL"):
            config.writer_model = value
        if value := os.environ.get(f"{_ENV_PREFIX}LOG_LEVEL"):
            config.log_level = value.upper()
        if value := os.environ.get(f"{_ENV_PREFIX}OUTPUT_DIR"):
            config.output_dir = Path(value)
        if value := os.environ.get(f"{_ENV_PREFIX}STRUCTURED_LOGGING"):
            config.structured_logging = _parse_bool(value)
        config.anthropic_api_key = os.environ.get("ANTHROPIC_API_KEY")

        return config

    def setup_logging(self) -> None:
        """Configure logging based on settings."""
        level = getattr(logging, self.log_level, logging.INFO)

        if self.structured_logging:
            # JSON-style structured logging
            formatter = logging.Formatter(
                '{"timestamp":"%(asctime)s","level":"%(levelname)s","logger":"%(name)s","message":"%(message)s"}'
            )
        else:
            formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

        handler = logging.StreamHandler()
        handler.setFormatter(formatter)

        root_logger = logging.getLogger("pagesmith")
        root_logger.setLevel(level)
        root_logger.addHandler(handler)


# Global configuration instance
_config: Optional[OrchestratorConfig] = None


def get_config() -> OrchestratorConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = OrchestratorConfig.from_env()
    return _config


def set_config(config: OrchestratorConfig) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config
