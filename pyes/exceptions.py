"""
Exceptions Module
-----------------

Error taxonomy for the Expected Shortfall engine.

Structural and input problems abort the call and are raised as one of the
exceptions below. All of them derive from ValueError (or RuntimeError for a
missing collaborator), so code catching the builtin types keeps working.

Result-quality problems (non-finite, inverted or over-100% estimates) are not
exceptions: they are reported as flags on the result, see checks.py.
"""


class ESError(Exception):
    """Base class for every error raised by pyes."""


class MissingInput(ESError, ValueError):
    """Neither a return series nor the moments needed by the method were supplied."""


class DimensionMismatch(ESError, ValueError):
    """Weights or moment tensors do not match the number of assets."""


class InvalidMoments(ESError, ValueError):
    """Moments are missing, non-finite or degenerate for the requested method."""


class InsufficientTailData(ESError, ValueError):
    """The empirical tail holds no observation for the given probability."""


class UnavailableCollaborator(ESError, RuntimeError):
    """A requested external estimator (e.g. standard errors) cannot be used."""
