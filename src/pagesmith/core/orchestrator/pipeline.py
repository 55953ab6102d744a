"""File-level entry point for orchestrator runs.

Reads the page file, runs the orchestrator, and persists the outcome under
``<output_dir>/<page_id>/``:

* ``final.mdx``: the final page content (always written)
* ``result.json``: the run record without the content

Unless the run is a dry run, the final content is also written back to the
page file.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional, Union

from pagesmith.config.orchestrator import OrchestratorConfig, get_config
from pagesmith.core.errors import MissingContentError
from pagesmith.core.llm_provider import AgentClient
from pagesmith.core.orchestrator.collaborators import Collaborators
from pagesmith.core.orchestrator.models import OrchestratorOptions, OrchestratorResult, PageData
from pagesmith.core.orchestrator.orchestrator import run_orchestrator

logger = logging.getLogger(__name__)

FINAL_CONTENT_FILENAME = "final.mdx"
RESULT_FILENAME = "result.json"


def _write_output(directory: Path, filename: str, content: str) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / filename
    path.write_text(content, encoding="utf-8")
    return path


async def run_orchestrator_pipeline(
    page: PageData,
    file_path: Union[str, Path],
    options: Optional[OrchestratorOptions] = None,
    *,
    agent: AgentClient,
    collaborators: Collaborators,
    config: Optional[OrchestratorConfig] = None,
    output_dir: Optional[Path] = None,
) -> OrchestratorResult:
    """Run the orchestrator on the page stored at *file_path*.

    Returns:
        The run result with ``output_path`` pointing at ``final.mdx``

    Raises:
        MissingContentError: If the page file is missing or empty
    """
    options = options or OrchestratorOptions()
    config = config or get_config()
    path = Path(file_path)

    if not path.is_file():
        raise MissingContentError(f"Page file not found: {path}", page_id=page.id)
    content = path.read_text(encoding="utf-8")
    if not content.strip():
        raise MissingContentError(f"Page file is empty: {path}", page_id=page.id)

    result = await run_orchestrator(
        page,
        path,
        content,
        options,
        agent=agent,
        collaborators=collaborators,
        config=config,
    )

    run_dir = Path(output_dir or config.output_dir) / page.id
    final_path = _write_output(run_dir, FINAL_CONTENT_FILENAME, result.final_content)
    result = result.model_copy(update={"output_path": str(final_path)})

    report = result.model_dump(mode="json", exclude={"final_content"})
    _write_output(run_dir, RESULT_FILENAME, json.dumps(report, indent=2))

    breakdown = sorted(result.cost_breakdown.items(), key=lambda item: item[1], reverse=True)
    for tool_name, cost in breakdown:
        if cost > 0:
            logger.info("  %s: $%.2f", tool_name, cost)

    if options.dry_run:
        logger.info("Dry run: output written to %s, page file left unchanged", final_path)
    else:
        path.write_text(result.final_content, encoding="utf-8")
        logger.info("Changes applied to %s", path)

    return result


__all__ = ["FINAL_CONTENT_FILENAME", "RESULT_FILENAME", "run_orchestrator_pipeline"]
