"""Ordered stack of compensating actions for one provisioning run."""

from __future__ import annotations

from typing import Iterator

from .contracts import CompensatingAction, ProvisioningStep


class CompensationStack:
    """LIFO stack pairing each registered action with the step that owns it.

    ``registered`` reports actions in registration order; ``drain`` yields
    them most-recent first and empties the stack, so a rollback can never
    run the same action twice.
    """

    def __init__(self) -> None:
        self._entries: list[tuple[ProvisioningStep, CompensatingAction]] = []

    def __len__(self) -> int:
        return len(self._entries)

    def push(self, step: ProvisioningStep, action: CompensatingAction) -> None:
        self._entries.append((step, action))

    @property
    def registered(self) -> tuple[CompensatingAction, ...]:
        return tuple(action for _, action in self._entries)

    def drain(self) -> Iterator[tuple[ProvisioningStep, CompensatingAction]]:
        while self._entries:
            yield self._entries.pop()

    def clear(self) -> None:
        self._entries.clear()
