"""
querykit/models/query.py
------------------------
Domain model for a single SQL statement and its bound parameters.
"""

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class Query:
    """
    Represents one statement as it is sent to the driver.

    Attributes:
        sql: The SQL text, using the dialect's placeholder style.
        params: Positional parameters, bound in order.
    """
    sql: str
    params: tuple[Any, ...] = field(default_factory=tuple)

    @classmethod
    def of(cls, sql: str, *params: Any) -> "Query":
        return cls(sql=sql, params=tuple(params))

    def describe(self) -> str:
        """Multi-line text used in timing and error log lines."""
        text = f"\n  QUERY:  {self.sql.strip()}"
        if self.params:
            text += f"\n  PARAMS: {', '.join(repr(p) for p in self.params)}"
        return text

    def __str__(self) -> str:
        return self.sql.strip()
