import time
import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field

from starcc import storage
from starcc.config import load_config
from starcc.stages.check import run_check
from starcc.stages.combiner import combiner_factory
from starcc.stages.converge import ROUND_PREFIX, ConvergenceController, ConvergenceState, round_path
from starcc.stages.extract import run_extract
from starcc.stages.terminate import renumber_clusters, run_terminate
from starcc.substrate import LocalRunner
from starcc.utils import elapsed_ms, get_logger, now_utc, write_stats

logger = get_logger(__name__)


class RunStats(BaseModel):
    run_id: str
    started_at: Optional[str] = None
    input_format: Optional[str] = None
    initial_nodes: int = 0
    initial_rows: int = 0
    final_nodes: int = 0
    final_clusters: int = 0
    partition_ok: bool = False
    num_errors: int = 0
    state: str = ConvergenceState.RUNNING.value
    rounds: int = 0
    change_history: List[Tuple[int, int]] = Field(default_factory=list)
    took_ms: int = 0

    @property
    def success(self) -> bool:
        done = self.state in (ConvergenceState.CONVERGED.value, ConvergenceState.CAPPED.value)
        return done and self.partition_ok


def _work_dir(cfg: Dict[str, Any], output_path: Path) -> Path:
    configured = cfg.get("storage", {}).get("work_dir")
    if configured:
        return Path(configured)
    return output_path.with_name(output_path.name + "_rounds")


def _cleanup(work_dir: Path, created: bool) -> None:
    """Drop every intermediate path this run may have left behind."""
    if created:
        storage.delete_tree(work_dir)
        return
    for child in storage.list_children(work_dir, ROUND_PREFIX):
        storage.delete_tree(child)


def _execute_pipeline(cfg: Dict[str, Any], input_path: Path, output_path: Path, run_id: str) -> RunStats:
    """Run extraction, contraction, termination and check in strict order."""
    t0 = time.monotonic()
    stats = RunStats(run_id=run_id, started_at=now_utc().isoformat())
    runner = LocalRunner.from_config(cfg)
    contraction = cfg.get("contraction", {})

    storage.ensure_replaceable(output_path)
    work_dir = _work_dir(cfg, output_path)
    created = not work_dir.exists()
    work_dir.mkdir(parents=True, exist_ok=True)
    logger.info("config loaded input=%s output=%s work_dir=%s workers=%d", input_path, output_path, work_dir, runner.num_workers)

    try:
        ext = run_extract(runner, input_path, round_path(work_dir, 0), cfg.get("input", {}).get("format", "auto"))
        stats.input_format = ext.input_format
        stats.initial_nodes = ext.initial_nodes
        stats.initial_rows = ext.initial_rows

        controller = ConvergenceController(
            runner,
            work_dir,
            max_rounds=int(contraction.get("max_rounds", 60)),
            combiner=combiner_factory(contraction.get("combiner", {})),
        )
        conv = controller.run()
        stats.state = conv.state.value
        stats.rounds = conv.rounds
        stats.change_history = conv.history

        term = run_terminate(runner, conv.last_path, output_path)
        storage.delete_tree(conv.last_path)
        stats.final_nodes = term.num_nodes
        stats.final_clusters = term.num_clusters

        check = run_check(runner, output_path)
        stats.partition_ok = check.ok
        stats.num_errors = check.num_errors
    finally:
        _cleanup(work_dir, created)

    if stats.final_nodes != stats.initial_nodes:
        logger.warning("node count mismatch initial=%d final=%d", stats.initial_nodes, stats.final_nodes)

    out_cfg = cfg.get("output", {})
    if stats.partition_ok and out_cfg.get("renumber", True):
        renumber_clusters(output_path)

    stats.took_ms = elapsed_ms(t0)
    if out_cfg.get("write_stats", True):
        path = write_stats(stats.model_dump(mode="json"), str(output_path))
        logger.info("stats written: %s", path)
    return stats


def run_once(
    input_path: str,
    output_path: str,
    *,
    config_path: Optional[str] = None,
    overrides: Optional[Dict[str, Any]] = None,
) -> RunStats:
    """Execute the whole pipeline once for ``input_path`` into ``output_path``."""
    run_id = uuid.uuid4().hex[:8]
    logger.info("=== run start id=%s ===", run_id)

    try:
        cfg = load_config(config_path, overrides)
        stats = _execute_pipeline(cfg, Path(input_path), Path(output_path), run_id)
        logger.info(
            "run done state=%s clusters=%d nodes=%d partition_ok=%s",
            stats.state, stats.final_clusters, stats.final_nodes, stats.partition_ok,
        )
        return stats
    except Exception as e:
        logger.error("Pipeline execution failed: %s", e)
        raise
    finally:
        logger.info("=== run end id=%s ===", run_id)
