from __future__ import annotations

import sys
from typing import Any

from tqdm import tqdm
from tqdm.std import tqdm as TqdmType

"""Progress display with tqdm (TTY only).

- one tqdm instance per validation run, one step per ticket
- disabled when stdout is not a TTY (CI, redirected output) so that the
  labeled log lines stay clean
"""

__all__ = [
    "ProgressTracker",
    "is_tty_enabled",
]


def is_tty_enabled() -> bool:
    """True if stdout is a TTY and progress should be displayed."""
    return sys.stdout.isatty()


class ProgressTracker:
    """Progress bar over tickets.

    All methods are no-ops when the bar is disabled.
    """

    def __init__(self, total_tickets: int, *, description: str = "Validating tickets") -> None:
        self.total_tickets = total_tickets
        self.description = description
        self.current_ticket = 0

        self.enabled = is_tty_enabled()
        self.pbar: TqdmType[Any] | None
        if self.enabled:
            self.pbar = tqdm(
                total=total_tickets,
                desc=description,
                unit="ticket",
                disable=False,
                leave=True,
                position=0,
                ncols=80,
                ascii=True,
            )
        else:
            self.pbar = None

    def start_ticket(self, key: str) -> None:
        self.current_ticket += 1
        if self.enabled and self.pbar is not None:
            self.pbar.set_description(f"{self.description} ({key})")

    def finish_ticket(self) -> None:
        if self.enabled and self.pbar is not None:
            self.pbar.update(1)
            self.pbar.set_description(self.description)

    def set_postfix(self, **kwargs: Any) -> None:
        if self.enabled and self.pbar is not None:
            self.pbar.set_postfix(**kwargs)

    def close(self) -> None:
        if self.enabled and self.pbar is not None:
            self.pbar.close()
            self.pbar = None

    def __enter__(self) -> ProgressTracker:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
