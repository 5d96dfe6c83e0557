# stochastic_eval/sampling.py
import math
import random
from typing import Optional


class RandomNormalSampler:
    """Muestreo normal por Box-Muller sobre un generador inyectable."""

    def __init__(self, rng: Optional[random.Random] = None):
        self.rng = rng if rng is not None else random.Random()

    def _open_uniform(self) -> float:
        # log(0) no está definido: se repite el sorteo
        u = 0.0
        while u == 0.0:
            u = self.rng.random()
        return u

    def sample(self, mean: float, std: float) -> float:
        u = self._open_uniform()
        v = self._open_uniform()
        z = math.sqrt(-2.0 * math.log(u)) * math.cos(2.0 * math.pi * v)
        return z * std + mean
