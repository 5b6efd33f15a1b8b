from dataclasses import dataclass, field
from typing import Optional

from services.errors import ArchiveError


@dataclass
class _Outcome:
    error: Optional[ArchiveError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def error_message(self) -> Optional[str]:
        return str(self.error) if self.error else None


@dataclass
class OperationResult(_Outcome):
    success: bool = True

    @classmethod
    def failed(cls, error: ArchiveError) -> "OperationResult":
        return cls(error=error, success=False)


@dataclass
class SweepResult(_Outcome):
    archived_count: int = 0


@dataclass
class TaskListResult(_Outcome):
    tasks: list = field(default_factory=list)


@dataclass
class ArchiveStats(_Outcome):
    # None means the count was not reached because an earlier one failed
    total_archived: Optional[int] = None
    archived_this_week: Optional[int] = None
    archived_this_month: Optional[int] = None

    def to_dict(self):
        return {
            "total_archived": self.total_archived,
            "archived_this_week": self.archived_this_week,
            "archived_this_month": self.archived_this_month,
        }
