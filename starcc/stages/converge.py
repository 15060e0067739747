"""Alternates Large-Star and Small-Star until a round pair changes nothing.

Round ``i``'s edge set lives in ``<work_dir>/round_<i>``. A round pair reads
``round_i``, writes ``round_{i+1}`` (Large-Star), drops ``round_i``, writes
``round_{i+2}`` (Small-Star) and drops ``round_{i+1}``. An input is removed
only after the job consuming it has completed.
"""
from __future__ import annotations

import time
import warnings
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional, Tuple

from starcc import storage
from starcc.errors import IterationCapped
from starcc.stages.star import StarMode, run_star
from starcc.substrate import LocalRunner
from starcc.utils import elapsed_ms, get_logger

logger = get_logger(__name__)

ROUND_PREFIX = "round_"
DEFAULT_MAX_ROUNDS = 60


class ConvergenceState(str, Enum):
    RUNNING = "RUNNING"
    CONVERGED = "CONVERGED"
    CAPPED = "CAPPED"
    FAILED = "FAILED"


@dataclass
class ConvergenceResult:
    state: ConvergenceState
    rounds: int
    last_path: Path
    history: List[Tuple[int, int]] = field(default_factory=list)

    @property
    def total_changes(self) -> int:
        return sum(a + b for a, b in self.history)


def round_path(work_dir: Path, i: int) -> Path:
    return Path(work_dir) / f"{ROUND_PREFIX}{i}"


class ConvergenceController:
    def __init__(
        self,
        runner: LocalRunner,
        work_dir: Path,
        *,
        max_rounds: int = DEFAULT_MAX_ROUNDS,
        combiner: Optional[Callable] = None,
    ):
        if max_rounds < 2 or max_rounds % 2:
            raise ValueError("max_rounds must be a positive even number")
        self.runner = runner
        self.work_dir = Path(work_dir)
        self.max_rounds = int(max_rounds)
        self.combiner = combiner
        self.state = ConvergenceState.RUNNING
        self.round = 0
        self.history: List[Tuple[int, int]] = []

    def cleanup(self) -> None:
        for child in storage.list_children(self.work_dir, ROUND_PREFIX):
            storage.delete_tree(child)

    def _step(self, mode: StarMode) -> int:
        src = round_path(self.work_dir, self.round)
        dst = round_path(self.work_dir, self.round + 1)
        changes = run_star(self.runner, mode, src, dst, round_index=self.round, combiner=self.combiner)
        storage.delete_tree(src)
        self.round += 1
        return changes

    def run(self, start_round: int = 0) -> ConvergenceResult:
        """Contract ``round_<start_round>`` to a fixed point or to the round cap.

        Raises :class:`StageFailure` after deleting every round directory if a
        job fails.
        """
        t0 = time.monotonic()
        self.state = ConvergenceState.RUNNING
        self.round = start_round
        self.history = []

        try:
            while self.state is ConvergenceState.RUNNING:
                large = self._step(StarMode.LARGE)
                small = self._step(StarMode.SMALL)
                self.history.append((large, small))
                logger.info("converge: pair=%d large=%d small=%d", len(self.history), large, small)

                if large + small == 0:
                    self.state = ConvergenceState.CONVERGED
                elif self.round - start_round >= self.max_rounds:
                    self.state = ConvergenceState.CAPPED
        except Exception as e:
            self.state = ConvergenceState.FAILED
            logger.error("converge: failed at round=%d: %s", self.round, e)
            self.cleanup()
            raise

        if self.state is ConvergenceState.CAPPED:
            msg = f"no fixed point after {self.max_rounds} rounds; clusters may be incomplete"
            logger.warning("converge: %s", msg)
            warnings.warn(msg, IterationCapped, stacklevel=2)

        logger.info(
            "converge: state=%s rounds=%d took_ms=%d",
            self.state.value, self.round - start_round, elapsed_ms(t0),
        )
        return ConvergenceResult(
            state=self.state,
            rounds=self.round - start_round,
            last_path=round_path(self.work_dir, self.round),
            history=list(self.history),
        )
