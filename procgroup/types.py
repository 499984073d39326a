"""Core types shared across procgroup modules."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, TypeAlias

from pydantic import BaseModel

# Exit code, or the negated signal number for a signaled child (subprocess convention)
ExitStatus: TypeAlias = int


class TaskOptions(BaseModel):
    """Per-task options accepted by spawn(), fork() and run()."""

    foreground: bool = False
    env: dict[str, str] | None = None
    # An fd, or anything with fileno(); None inherits the parent's stream
    stdin: Any = None
    stdout: Any = None
    stderr: Any = None

    model_config = {"extra": "forbid"}

    def redirections(self) -> list[tuple[int, int]]:
        """(source fd, target fd) pairs to dup2 in the child."""
        pairs = []
        for target, stream in ((0, self.stdin), (1, self.stdout), (2, self.stderr)):
            if stream is None:
                continue
            source = stream if isinstance(stream, int) else stream.fileno()
            pairs.append((source, target))
        return pairs


@dataclass(frozen=True)
class Placement:
    """Process group a new child is put in: a new group of its own, or an existing one."""

    pgid: int = 0  # 0 = the child leads a new group

    @classmethod
    def leader(cls) -> Placement:
        return cls(0)

    @classmethod
    def join(cls, pgid: int) -> Placement:
        return cls(pgid)

    @property
    def is_leader(self) -> bool:
        return self.pgid == 0
