"""Exceptions raised by natinterp."""


class NatinterpError(Exception):
    """Base exception for all natinterp errors."""


class DuplicateSampleError(NatinterpError, ValueError):
    """Two or more samples share the same coordinates."""


class DegenerateSamplesError(NatinterpError, ValueError):
    """The samples cannot be triangulated (too few, or all collinear/coplanar)."""


class NonUniformSamplingError(NatinterpError, ValueError):
    """A uniform sampling was required but a non-uniform one was given."""
