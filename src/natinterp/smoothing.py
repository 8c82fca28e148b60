import itertools
import logging
from typing import Optional

import numpy as np
import scipy.sparse
import scipy.sparse.linalg

from natinterp.tensors import Tensors

logger = logging.getLogger(__name__)


class LocalSmoothingFilter:
    """Local smoothing guided by a field of diffusion tensors.

    The output y solves ``(I + Gᵀ D G) y = x``, where G computes gradients on a grid staggered by
    half a sample, with one cell of 2×2 (or 2×2×2) samples per gradient, and D is the tensor of
    each cell scaled by a constant and by optional per-sample factors. Larger tensors smooth
    more, and only along their dominant eigenvectors if they are anisotropic. The system is
    symmetric positive-definite and is solved by Jacobi-preconditioned conjugate gradients.

    Args:
        small: Stop iterating when the residual norm is less than this fraction of the norm of
            the input.
        niter: Maximum number of iterations.
    """

    def __init__(self, small: float = 0.01, niter: int = 10000):
        if not small > 0.0:
            raise ValueError(f'Tolerance must be positive, got {small}')
        if niter < 1:
            raise ValueError(f'Number of iterations must be positive, got {niter}')
        self.small = float(small)
        self.niter = int(niter)

    def apply(self, tensors: Tensors, c: float, s: Optional[np.ndarray], x: np.ndarray) -> np.ndarray:
        """Smooths a gridded array.

        Args:
            tensors: Diffusion tensors with the grid shape of x.
            c: Constant scale factor for the tensors; must be non-negative.
            s: Scale factors for the tensors, one per grid sample, or None for all ones. The
                factor of a cell is taken at its sample with the highest indices.
            x: Input array, indexed ``[i2, i1]`` or ``[i3, i2, i1]``.

        Returns:
            The smoothed array, with the dtype of x if it is a floating-point type.
        """
        x = np.asarray(x)
        if tensors.shape != x.shape:
            raise ValueError(f'Tensors of grid shape {tensors.shape} for array of shape {x.shape}')
        if not c >= 0.0:
            raise ValueError(f'Scale factor must be non-negative, got {c}')
        if s is not None and np.shape(s) != x.shape:
            raise ValueError(f'Scale factors must have shape {x.shape}, got {np.shape(s)}')

        operator = self._operator(tensors, c, s)
        b = x.astype(np.float64).ravel()
        preconditioner = scipy.sparse.diags(1.0 / operator.diagonal())
        iterations = 0

        def count(_):
            nonlocal iterations
            iterations += 1

        y, info = scipy.sparse.linalg.cg(
            operator, b, x0=b.copy(), rtol=self.small, maxiter=self.niter, M=preconditioner,
            callback=count)
        if info > 0:
            logger.warning('Smoothing did not converge within %d iterations', self.niter)
        else:
            logger.debug('Smoothing converged in %d iterations', iterations)
        dtype = x.dtype if np.issubdtype(x.dtype, np.floating) else np.float64
        return y.reshape(x.shape).astype(dtype, copy=False)

    @staticmethod
    def _operator(tensors: Tensors, c: float, s: Optional[np.ndarray]) -> scipy.sparse.csr_matrix:
        shape = tensors.shape
        ndim = len(shape)
        size = int(np.prod(shape))

        # Cells are identified by their sample with the highest indices.
        upper = np.stack(np.meshgrid(*[np.arange(1, n) for n in shape], indexing='ij'), axis=-1)
        upper = upper.reshape(-1, ndim)
        ncells = len(upper)
        cells = np.arange(ncells)

        # Gradient component k is along coordinate x(k+1), which is array axis ndim-1-k.
        rows, cols, data = [], [], []
        scale = 1.0 / 2 ** (ndim - 1)
        for corner in itertools.product((0, 1), repeat=ndim):
            index = np.ravel_multi_index(tuple((upper - corner).T), shape)
            for k in range(ndim):
                rows.append(cells * ndim + k)
                cols.append(index)
                sign = -1.0 if corner[ndim - 1 - k] else 1.0
                data.append(np.full(ncells, sign * scale))
        gradient = scipy.sparse.csr_matrix(
            (np.concatenate(data), (np.concatenate(rows), np.concatenate(cols))),
            shape=(ncells * ndim, size))

        weights = c * tensors.array[tuple(upper.T)]
        if s is not None:
            weights = weights * np.asarray(s, np.float64)[tuple(upper.T)][:, np.newaxis, np.newaxis]
        k, l = np.meshgrid(np.arange(ndim), np.arange(ndim), indexing='ij')
        block_rows = cells[:, np.newaxis, np.newaxis] * ndim + k
        block_cols = cells[:, np.newaxis, np.newaxis] * ndim + l
        diffusion = scipy.sparse.csr_matrix(
            (weights.ravel(), (block_rows.ravel(), block_cols.ravel())),
            shape=(ncells * ndim, ncells * ndim))

        return (scipy.sparse.identity(size, format='csr') + gradient.T @ diffusion @ gradient).tocsr()
