"""
Post-commit side effects.

Work that must never undo or fail a committed write (socket fan-out,
notification rows) is queued here and run after the primary commit.
Each hook runs in order; a failing hook is logged and the rest still run.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from app.core.logging import get_logger

logger = get_logger("services.side_effects")

Hook = Callable[[], Awaitable[Any]]


@dataclass
class PostCommitHooks:
    _hooks: list[tuple[str, Hook]] = field(default_factory=list)

    def add(self, label: str, hook: Hook) -> None:
        self._hooks.append((label, hook))

    def extend(self, other: "PostCommitHooks") -> None:
        self._hooks.extend(other._hooks)

    @property
    def labels(self) -> list[str]:
        return [label for label, _ in self._hooks]

    def __len__(self) -> int:
        return len(self._hooks)

    async def run(self) -> list[str]:
        """Run every hook once. Returns the labels of hooks that failed."""
        failed: list[str] = []
        hooks, self._hooks = self._hooks, []
        for label, hook in hooks:
            try:
                await hook()
            except Exception as exc:  # noqa: BLE001
                failed.append(label)
                logger.warning(
                    "post_commit_hook_failed",
                    hook=label,
                    error=str(exc),
                    error_type=exc.__class__.__name__,
                )
        return failed
