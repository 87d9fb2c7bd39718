"""
High-level reconstruction models.

- FIHTReconstructor: fit/sample interface around the FIHT solver
"""

from fiht.models.reconstructor import FIHTReconstructor

__all__ = [
    "FIHTReconstructor",
]
