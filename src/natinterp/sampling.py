import numpy as np


class Sampling:
    """Sampling of one coordinate axis of a grid.

    A sampling is either uniform, defined by a count, an interval and a first value, or given
    by an explicit increasing sequence of values (see :meth:`from_values`).

    Args:
        count: Number of samples; must be positive.
        delta: Sampling interval; must be positive.
        first: Value of the first sample.
    """

    def __init__(self, count: int, delta: float = 1.0, first: float = 0.0):
        if count < 1:
            raise ValueError(f'Sampling count must be positive, got {count}')
        if not delta > 0.0:
            raise ValueError(f'Sampling interval must be positive, got {delta}')
        self.count = int(count)
        self.delta = float(delta)
        self.first = float(first)
        self._values = None

    @classmethod
    def from_values(cls, values) -> 'Sampling':
        """Creates a sampling from explicit, strictly increasing values."""
        values = np.asarray(values, np.float64).ravel()
        if len(values) == 0:
            raise ValueError('Sampling values must not be empty')
        if np.any(np.diff(values) <= 0.0):
            raise ValueError('Sampling values must be strictly increasing')
        delta = (values[-1] - values[0]) / (len(values) - 1) if len(values) > 1 else 1.0
        sampling = cls(len(values), delta, values[0])
        uniform = sampling.first + sampling.delta * np.arange(len(values))
        if not np.allclose(values, uniform, rtol=0.0, atol=1e-6 * delta):
            sampling._values = values
        return sampling

    @property
    def last(self) -> float:
        if self._values is not None:
            return float(self._values[-1])
        return self.first + self.delta * (self.count - 1)

    @property
    def values(self) -> np.ndarray:
        if self._values is not None:
            return self._values.copy()
        return self.first + self.delta * np.arange(self.count)

    def value(self, i: int) -> float:
        if self._values is not None:
            return float(self._values[i])
        return self.first + self.delta * i

    def is_uniform(self) -> bool:
        return self._values is None

    def index_of_nearest(self, x):
        """Index (or array of indices) of the sample nearest to x, clipped to the sampling."""
        x = np.asarray(x, np.float64)
        if self._values is None:
            index = np.rint((x - self.first) / self.delta)
        else:
            upper = np.clip(np.searchsorted(self._values, x), 1, max(self.count - 1, 1))
            lower = upper - 1
            closer_to_upper = np.abs(self._values[upper] - x) < np.abs(x - self._values[lower])
            index = np.where(closer_to_upper, upper, lower)
        index = np.clip(index, 0, self.count - 1).astype(np.int64)
        return int(index) if index.ndim == 0 else index

    def __len__(self) -> int:
        return self.count

    def __repr__(self) -> str:
        if self._values is None:
            return f'Sampling(count={self.count}, delta={self.delta}, first={self.first})'
        return f'Sampling.from_values({self._values.tolist()})'
