"""
Base ingestion channel class and validation result types
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class InsertError:
    """One validation error reported by the sink for a submitted row"""
    message: str
    row_index: Optional[int] = None
    exception: Optional[BaseException] = None

    def __str__(self) -> str:
        return self.message


@dataclass
class ValidationResult:
    """Outcome of submitting one row to the sink"""
    errors: List[InsertError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    @property
    def first_error(self) -> Optional[InsertError]:
        return self.errors[0] if self.errors else None


class BaseIngestChannel(ABC):
    """
    Streaming ingestion channel into one sink table

    Rows are persisted asynchronously by the sink; the latest committed offset
    token is the only durability signal it exposes.
    """

    @abstractmethod
    def submit(self, row: Dict[str, Any], offset_token: str) -> ValidationResult:
        """Submit one row tagged with its offset token"""
        pass

    @abstractmethod
    def latest_committed_offset(self) -> Optional[str]:
        """Latest durably committed offset token, or None if none is available yet"""
        pass

    def close(self):
        pass
