"""Core data structures shared by the optimizer and the cost functions."""

from .space import IncorrectSpaceError, ShapedVectorSpace, complex_dtype

__all__ = [
    "IncorrectSpaceError",
    "ShapedVectorSpace",
    "complex_dtype",
]
