"""
Tagged outcome of one data-gathering task.

Every slot resolves to Success or Unavailable, never None, so assembly code
does not have to ask "is it missing".
"""

from dataclasses import dataclass
from typing import Any, Dict, Generic, TypeVar, Union

T = TypeVar("T")

AVAILABLE = "available"
UNAVAILABLE = "unavailable"


@dataclass(frozen=True)
class Success(Generic[T]):
    data: T

    ok = True
    status = AVAILABLE

    def unwrap_or(self, default: Any) -> T:
        return self.data

    def to_dict(self) -> Dict[str, Any]:
        return {'status': self.status}


@dataclass(frozen=True)
class Unavailable:
    reason: str

    ok = False
    status = UNAVAILABLE

    def unwrap_or(self, default: Any) -> Any:
        return default

    def to_dict(self) -> Dict[str, Any]:
        return {'status': self.status, 'reason': self.reason}


SourceResult = Union[Success[T], Unavailable]
