"""Simulated typing delay applied before a reply is returned."""

from __future__ import annotations

import asyncio
import random
from abc import ABC, abstractmethod

from rose.engine.types import ChatReply


class TypingDelay(ABC):
    @abstractmethod
    async def pause(self, reply: ChatReply) -> None:
        """Suspend before ``reply`` is delivered."""


class NoTypingDelay(TypingDelay):
    async def pause(self, reply: ChatReply) -> None:
        return None


class RandomTypingDelay(TypingDelay):
    """Uniform delay in ``[min_ms, max_ms]``, nudged up for longer replies."""

    def __init__(self, min_ms: int, max_ms: int, rng: random.Random | None = None) -> None:
        self.min_ms = max(0, min_ms)
        self.max_ms = max(self.min_ms, max_ms)
        self._rng = rng or random.Random()

    def delay_seconds(self, reply: ChatReply) -> float:
        base = self._rng.uniform(self.min_ms, self.max_ms)
        length_bonus = min(len(reply.message) * 2, self.max_ms - self.min_ms)
        return min(base + length_bonus, self.max_ms) / 1000.0

    async def pause(self, reply: ChatReply) -> None:
        await asyncio.sleep(self.delay_seconds(reply))


def typing_delay_for(min_ms: int, max_ms: int) -> TypingDelay:
    if max_ms <= 0:
        return NoTypingDelay()
    return RandomTypingDelay(min_ms, max_ms)
