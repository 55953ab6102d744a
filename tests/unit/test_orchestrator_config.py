"""Tests for OrchestratorConfig loading.

Tests cover:
1. Built-in defaults (models, cycles, thresholds, tool costs)
2. TOML [orchestrator] table, including thresholds and tool_costs sub-tables
3. Environment overrides and their priority over the TOML file
4. Bad values in sub-tables are skipped with a warning
5. Global get_config / set_config
6. setup_logging formatter and level on the pagesmith logger
"""

import logging
from pathlib import Path

import pytest

from pagesmith.config import OrchestratorConfig, TierThresholds, get_config, set_config
from pagesmith.config.parsing import _parse_bool, _parse_float_mapping


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in (
        "PAGESMITH_CONFIG",
        "PAGESMITH_ORCHESTRATOR_MODEL",
        "PAGESMITH_WRITER_MODEL",
        "PAGESMITH_LOG_LEVEL",
        "PAGESMITH_OUTPUT_DIR",
        "PAGESMITH_STRUCTURED_LOGGING",
        "ANTHROPIC_API_KEY",
    ):
        monkeypatch.delenv(name, raising=False)


class TestDefaults:
    def test_defaults(self):
        config = OrchestratorConfig()
        assert config.max_refinement_cycles == 2
        assert config.max_tool_turns == 60
        assert config.loop_overhead_cost == 0.50
        assert config.word_regression_ratio == 0.7
        assert config.footnote_regression_ratio == 0.8
        assert config.tool_cost("run_research") == 1.50
        assert config.tool_cost("not_a_tool") == 0.0

    def test_threshold_defaults(self):
        config = OrchestratorConfig()
        assert config.thresholds_for("polish") == TierThresholds(500, 3, 3, 30)
        assert config.thresholds_for("standard") == TierThresholds(800, 8, 5, 40)
        assert config.thresholds_for("deep") == TierThresholds(1200, 15, 10, 55)

    def test_unknown_tier_thresholds(self):
        with pytest.raises(ValueError, match="No quality-gate thresholds configured for tier 'extreme'"):
            OrchestratorConfig().thresholds_for("extreme")

    def test_api_key_not_in_repr(self):
        assert "sk-ant" not in repr(OrchestratorConfig(anthropic_api_key="sk-ant-secret"))

    def test_from_empty_dict_matches_defaults(self):
        assert OrchestratorConfig.from_toml_dict({}) == OrchestratorConfig()


class TestFromTomlDict:
    def test_scalar_fields(self):
        config = OrchestratorConfig.from_toml_dict(
            {
                "orchestrator_model": "claude-x",
                "max_refinement_cycles": 1,
                "loop_overhead_cost": "0.75",
                "structured_logging": "yes",
                "log_level": "debug",
                "output_dir": "/tmp/runs",
            }
        )
        assert config.orchestrator_model == "claude-x"
        assert config.max_refinement_cycles == 1
        assert config.loop_overhead_cost == 0.75
        assert config.structured_logging is True
        assert config.log_level == "DEBUG"
        assert config.output_dir == Path("/tmp/runs")

    def test_threshold_subtables_merge_over_defaults(self):
        config = OrchestratorConfig.from_toml_dict(
            {"thresholds": {"deep": {"min_words": 2000}, "custom": {"min_footnotes": 1}}}
        )
        assert config.thresholds_for("deep") == TierThresholds(2000, 15, 10, 55)
        # Unknown tiers start from the standard thresholds
        assert config.thresholds_for("custom") == TierThresholds(800, 1, 5, 40)

    def test_non_table_thresholds_ignored(self, caplog):
        with caplog.at_level(logging.WARNING):
            config = OrchestratorConfig.from_toml_dict({"thresholds": {"deep": 5}})
        assert config.thresholds_for("deep") == TierThresholds(1200, 15, 10, 55)
        assert "Ignoring thresholds for tier 'deep'" in caplog.text

    def test_tool_costs(self, caplog):
        with caplog.at_level(logging.WARNING):
            config = OrchestratorConfig.from_toml_dict(
                {"tool_costs": {"run_research": 2.5, "rewrite_section": "cheap"}}
            )
        assert config.tool_cost("run_research") == 2.5
        assert config.tool_cost("rewrite_section") == 0.20
        assert "rewrite_section" in caplog.text


class TestFromEnv:
    def test_reads_toml_file(self, tmp_path):
        path = tmp_path / "pagesmith.toml"
        path.write_text(
            '[orchestrator]\nwriter_model = "writer-x"\n\n'
            "[orchestrator.thresholds.polish]\nmin_words = 100\n",
            encoding="utf-8",
        )
        config = OrchestratorConfig.from_env(str(path))
        assert config.writer_model == "writer-x"
        assert config.thresholds_for("polish").min_words == 100

    def test_config_file_env_var(self, tmp_path, monkeypatch):
        path = tmp_path / "pagesmith.toml"
        path.write_text("[orchestrator]\nmax_tool_turns = 10\n", encoding="utf-8")
        monkeypatch.setenv("PAGESMITH_CONFIG", str(path))
        assert OrchestratorConfig.from_env().max_tool_turns == 10

    def test_missing_file_falls_back_to_defaults(self, tmp_path, caplog):
        with caplog.at_level(logging.WARNING):
            config = OrchestratorConfig.from_env(str(tmp_path / "absent.toml"))
        assert config.max_tool_turns == 60
        assert "not found" in caplog.text

    def test_env_overrides_file(self, tmp_path, monkeypatch):
        path = tmp_path / "pagesmith.toml"
        path.write_text('[orchestrator]\norchestrator_model = "from-file"\n', encoding="utf-8")
        monkeypatch.setenv("PAGESMITH_ORCHESTRATOR_MODEL", "from-env")
        monkeypatch.setenv("PAGESMITH_LOG_LEVEL", "warning")
        monkeypatch.setenv("PAGESMITH_STRUCTURED_LOGGING", "true")
        monkeypatch.setenv("PAGESMITH_OUTPUT_DIR", str(tmp_path / "out"))
        monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-ant-env")

        config = OrchestratorConfig.from_env(str(path))

        assert config.orchestrator_model == "from-env"
        assert config.log_level == "WARNING"
        assert config.structured_logging is True
        assert config.output_dir == tmp_path / "out"
        assert config.anthropic_api_key == "sk-ant-env"


class TestParsing:
    @pytest.mark.parametrize("value,expected", [(True, True), ("on", True), ("1", True), ("no", False), (0, False)])
    def test_parse_bool(self, value, expected):
        assert _parse_bool(value) is expected

    def test_parse_float_mapping_rejects_non_tables(self):
        assert _parse_float_mapping([1, 2], source="x") == {}


class TestGlobalConfig:
    def test_set_and_get(self):
        previous = get_config()
        try:
            custom = OrchestratorConfig(max_tool_turns=5)
            set_config(custom)
            assert get_config() is custom
        finally:
            set_config(previous)


class TestSetupLogging:
    @pytest.fixture
    def pagesmith_logger(self):
        logger = logging.getLogger("pagesmith")
        handlers, level = list(logger.handlers), logger.level
        yield logger
        logger.handlers = handlers
        logger.setLevel(level)

    def test_plain_formatter(self, pagesmith_logger):
        OrchestratorConfig(log_level="DEBUG").setup_logging()

        assert pagesmith_logger.level == logging.DEBUG
        handler = pagesmith_logger.handlers[-1]
        assert isinstance(handler, logging.StreamHandler)
        assert handler.formatter._fmt == "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    def test_structured_formatter(self, pagesmith_logger):
        OrchestratorConfig(log_level="WARNING", structured_logging=True).setup_logging()

        assert pagesmith_logger.level == logging.WARNING
        fmt = pagesmith_logger.handlers[-1].formatter._fmt
        assert fmt.startswith("{") and '"level":"%(levelname)s"' in fmt

    def test_unknown_level_falls_back_to_info(self, pagesmith_logger):
        OrchestratorConfig(log_level="CHATTY").setup_logging()
        assert pagesmith_logger.level == logging.INFO
