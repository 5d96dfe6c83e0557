# stochastic_eval/runner.py
import asyncio
import logging
import random
from typing import List, Optional

from .config import EvalConfig
from .imputation import ImputationEngine, ImputationResult, tail_lines
from .model import Cohort
from .scoring import score

logger = logging.getLogger(__name__)


class ImputationRunner:
    """
    Ejecuta la pasada de imputación fuera del hilo que la invoca.

    Las invocaciones se serializan con un lock; una pasada iniciada no se
    cancela y su resultado se publica completo al terminar (``latest``).
    """

    def __init__(self, cfg: EvalConfig, rng: Optional[random.Random] = None):
        self.cfg = cfg
        self.rng = rng if rng is not None else random.Random(cfg.seed)
        self.latest: Optional[ImputationResult] = None
        self._lock = asyncio.Lock()
        self._in_flight = 0

    @property
    def busy(self) -> bool:
        return self._in_flight > 0

    def _run_sync(self, cohort: Cohort) -> ImputationResult:
        time_slots = self.cfg.time_slot_objects()
        subjects = self.cfg.subject_objects()
        engine = ImputationEngine(
            algorithm=self.cfg.algorithm,
            rng=self.rng,
            jitter_amplitude=self.cfg.jitter_amplitude,
        )
        result = engine.run(cohort, time_slots, subjects)
        result.cohort = score(result.cohort, time_slots, subjects)
        return result

    async def run_async(self, cohort: Cohort) -> ImputationResult:
        self._in_flight += 1
        try:
            async with self._lock:
                task = asyncio.ensure_future(asyncio.to_thread(self._run_sync, cohort))
                try:
                    result = await asyncio.shield(task)
                except asyncio.CancelledError:
                    # el hilo sigue corriendo: no se libera el lock hasta que termine
                    await asyncio.wait([task])
                    if not task.exception():
                        self.latest = task.result()
                    raise
                self.latest = result
                return result
        finally:
            self._in_flight -= 1

    def rescore(self, cohort: Cohort) -> Cohort:
        """Re-ranking síncrono tras un cambio de pesos, sin volver a imputar."""
        return score(cohort, self.cfg.time_slot_objects(), self.cfg.subject_objects())

    def reconfigure(self, cfg: EvalConfig, cohort: Cohort) -> Cohort:
        self.cfg = cfg
        logger.debug("Pesos actualizados; recalculando ranking de %d estudiantes", len(cohort))
        return self.rescore(cohort)

    def log_tail(self) -> List[str]:
        if self.latest is None:
            return []
        return tail_lines(self.latest.log, self.cfg.log_tail)
