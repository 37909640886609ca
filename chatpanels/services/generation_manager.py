from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Dict


@dataclass
class GenerationState:
    task: asyncio.Task
    target_id: str
    provider_id: str
    model_id: str
    created_at: float
    canceled: bool = False


class GenerationManager:
    """Tracks one in-flight generation per target, with cancellation support.

    All methods are synchronous so they can run between two awaits of the
    owning event loop without yielding.
    """

    def __init__(self):
        self._generations: Dict[str, GenerationState] = {}

    def start_generation(self, target_id: str, provider_id: str, model_id: str, task: asyncio.Task) -> None:
        """Register a new generation, replacing any previous one for the target."""
        self._generations[target_id] = GenerationState(
            task=task,
            target_id=target_id,
            provider_id=provider_id,
            model_id=model_id,
            created_at=time.time(),
        )

    def cancel_generation(self, target_id: str) -> bool:
        """Cancel the target's generation. Returns True if one was still running."""
        state = self._generations.get(target_id)
        if not state or state.canceled or state.task.done():
            return False

        state.canceled = True
        state.task.cancel()
        return True

    def cancel_all(self) -> list[str]:
        return [target_id for target_id in list(self._generations) if self.cancel_generation(target_id)]

    def is_canceled(self, target_id: str, task: asyncio.Task | None = None) -> bool:
        """Check whether the generation (optionally a specific task) has been canceled."""
        state = self._generations.get(target_id)
        if state is None:
            return False
        if task is not None and state.task is not task:
            # A newer generation replaced this one
            return True
        return state.canceled

    def cleanup_generation(self, target_id: str, task: asyncio.Task | None = None) -> None:
        """Remove a completed generation from tracking."""
        state = self._generations.get(target_id)
        if state is not None and (task is None or state.task is task):
            del self._generations[target_id]

    def clear(self) -> None:
        self._generations.clear()

    def get_active_generations(self) -> list[str]:
        """Get list of target ids with a generation still running."""
        return [
            target_id for target_id, state in self._generations.items()
            if not state.canceled and not state.task.done()
        ]
