"""Live run context.

Holds the in-flight handles for a single run: the spawned process (when
there is one) and the cancellation token.  Created by the coordinator,
registered in the ``ActiveRunRegistry`` while the run is live, discarded
when the run reaches a terminal state.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from asyncio.subprocess import Process


@dataclass
class LiveRun:
    """In-flight state for a single run."""

    # -- Identity --------------------------------------------------------------
    run_id: int
    workspace_id: int
    action_id: int

    # -- Live references (set during execution) --------------------------------
    process: Process | None = None
    process_id: int | None = None

    # -- Cancellation ----------------------------------------------------------
    cancel_event: asyncio.Event = field(default_factory=asyncio.Event)
    timed_out_after: float | None = None
    """Set when the run was stopped by its timeout rather than by a user cancel."""

    # -- Detached processes ----------------------------------------------------
    detached: bool = False
    release_event: asyncio.Event = field(default_factory=asyncio.Event)
    """Set at shutdown: stop waiting for the detached process and leave it running."""

    # -- Bookkeeping -----------------------------------------------------------
    persistence_failed: bool = False
    """Set when a transition or log batch of this run could not be stored."""

    @property
    def cancel_requested(self) -> bool:
        return self.cancel_event.is_set()

    @property
    def timed_out(self) -> bool:
        return self.timed_out_after is not None

    @property
    def has_process(self) -> bool:
        return self.process is not None and self.process.returncode is None
