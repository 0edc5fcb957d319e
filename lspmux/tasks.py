"""Records that worker threads post to the engine when they stop."""

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional


class TaskRole(str, Enum):
    CLIENT = "client"
    AGGREGATOR = "aggregator"
    WRITER = "writer"
    READER = "reader"


@dataclass(frozen=True)
class TaskExit:
    """A worker thread has finished, cleanly or with an error."""

    role: TaskRole
    backend: Optional[str] = None
    error: Optional[BaseException] = None

    @property
    def failed(self) -> bool:
        return self.error is not None

    def describe(self) -> str:
        task = self.role.value if self.backend is None else f"{self.backend} {self.role.value}"
        if self.error is None:
            return f"{task} task finished"
        return f"{task} task failed: {self.error}"


TaskExitCallback = Callable[[TaskExit], None]
