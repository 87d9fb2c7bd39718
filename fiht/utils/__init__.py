"""
Utility functions for FIHT reconstruction.

This module provides helper functions for:
- Tensor shape validation
- Observation / index validation
- Rank validation against the Hankel lifting
"""

from fiht.utils.validation import (
    validate_observations,
    validate_rank,
    validate_shape,
)

__all__ = [
    "validate_observations",
    "validate_rank",
    "validate_shape",
]
