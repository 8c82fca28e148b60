"""Natural neighbor interpolation and blended gridding in 2D and 3D.

Scattered samples are interpolated with Sibson's method on a Delaunay triangulation or
tetrahedralization, optionally blended with gradients for a C1 interpolant, or gridded by
blending nearest-neighbor values with tensor-guided smoothing.
"""

from natinterp.accumulators import Method
from natinterp.exceptions import (
    DegenerateSamplesError, DuplicateSampleError, NatinterpError, NonUniformSamplingError)
from natinterp.gridding import (
    BlendedGridder, BlendedGridder2, BlendedGridder3, DiscreteSibsonGridder, DiscreteSibsonGridder2,
    DiscreteSibsonGridder3, SimpleGridder, SimpleGridder2, SimpleGridder3)
from natinterp.sampling import Sampling
from natinterp.sibson import (
    SibsonInterpolator, SibsonInterpolator2, SibsonInterpolator3, get_weights, interpolate)
from natinterp.smoothing import LocalSmoothingFilter
from natinterp.tensors import Tensors
from natinterp.timemarker import TimeMarker

try:
    from ._version import version as __version__
except ImportError:
    __version__ = '0.0.0'
