from typing import Optional, Sequence, Tuple

import numpy as np


class Tensors:
    """A field of symmetric positive-definite tensors over a 2D or 3D grid.

    Tensor components are ordered by coordinate (x1, x2[, x3]), while grid indices follow the
    array convention ``[i2, i1]`` or ``[i3, i2, i1]``.

    Args:
        array: Tensors with shape ``grid_shape + (ndim, ndim)``, where ``len(grid_shape) == ndim``.
    """

    def __init__(self, array: np.ndarray):
        array = np.asarray(array, np.float64)
        if array.ndim not in (4, 5) or array.shape[-2:] != (array.ndim - 2, array.ndim - 2):
            raise ValueError(
                f'Tensors must have shape grid_shape + (ndim, ndim) with ndim 2 or 3, '
                f'got {array.shape}')
        if not np.allclose(array, np.swapaxes(array, -1, -2)):
            raise ValueError('Tensors must be symmetric')
        self._array = array

    @classmethod
    def identity(cls, shape: Sequence[int]) -> 'Tensors':
        """Isotropic tensors equal to the identity at every grid point."""
        shape = tuple(shape)
        ndim = len(shape)
        return cls(np.broadcast_to(np.eye(ndim), shape + (ndim, ndim)).copy())

    @classmethod
    def from_components(cls, *components, shape: Optional[Sequence[int]] = None) -> 'Tensors':
        """Creates tensors from their upper-triangle components.

        Args:
            components: ``d11, d12, d22`` in 2D or ``d11, d12, d13, d22, d23, d33`` in 3D, each a
                scalar or an array broadcastable to the grid shape.
            shape: Grid shape; inferred from the components if None.
        """
        if len(components) == 3:
            ndim = 2
        elif len(components) == 6:
            ndim = 3
        else:
            raise ValueError(f'Expected 3 or 6 tensor components, got {len(components)}')
        components = [np.asarray(c, np.float64) for c in components]
        if shape is None:
            shape = np.broadcast_shapes(*[c.shape for c in components])
        shape = tuple(shape)
        if len(shape) != ndim:
            raise ValueError(f'Grid shape {shape} does not match {ndim}D tensors')

        array = np.empty(shape + (ndim, ndim))
        upper = zip(*np.triu_indices(ndim))
        for (i, j), component in zip(upper, components):
            array[..., i, j] = component
            array[..., j, i] = component
        return cls(array)

    @classmethod
    def from_eigen2(cls, u1, u2, au, av) -> 'Tensors':
        """Creates 2D tensors from eigenvectors and eigenvalues.

        Args:
            u1: First component of the unit eigenvector u, per grid point.
            u2: Second component of u. The other eigenvector v is u rotated by 90 degrees.
            au: Eigenvalue for u.
            av: Eigenvalue for v.
        """
        u1, u2, au, av = np.broadcast_arrays(*[np.asarray(a, np.float64) for a in (u1, u2, au, av)])
        if u1.ndim != 2:
            raise ValueError(f'Eigenvector components must be 2D arrays, got shape {u1.shape}')
        norm = np.hypot(u1, u2)
        u1 = u1 / norm
        u2 = u2 / norm
        return cls.from_components(
            au * u1 * u1 + av * u2 * u2,
            (au - av) * u1 * u2,
            au * u2 * u2 + av * u1 * u1)

    @property
    def array(self) -> np.ndarray:
        return self._array

    @property
    def shape(self) -> Tuple[int, ...]:
        """Grid shape."""
        return self._array.shape[:-2]

    @property
    def ndim(self) -> int:
        return self._array.shape[-1]

    def get_tensor(self, index: Sequence[int]) -> np.ndarray:
        """Returns a copy of the tensor at a grid index ``(i2, i1)`` or ``(i3, i2, i1)``."""
        return self._array[tuple(index)].copy()

    def in_coordinate_order(self) -> np.ndarray:
        """Tensor array with grid axes reordered to ``[i1, i2(, i3)]``, as a view."""
        ndim = self.ndim
        return self._array.transpose(tuple(reversed(range(ndim))) + (ndim, ndim + 1))

    def __repr__(self) -> str:
        return f'Tensors(shape={self.shape}, ndim={self.ndim})'
