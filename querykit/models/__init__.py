"""
models/ - Domain Models
=======================
Plain dataclasses passed between the executor and the dialects.
"""

from querykit.models.query import Query

__all__ = ["Query"]
