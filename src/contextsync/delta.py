"""Reduce a snapshot against the last transmitted one."""

from __future__ import annotations

import logging

from .settings import ContextSettings
from .snapshot import Snapshot

__all__ = ["compute_delta"]

LOGGER = logging.getLogger(__name__)


def compute_delta(
    current: Snapshot,
    last: Snapshot | None,
    settings: ContextSettings | None = None,
) -> Snapshot:
    """Return a copy of ``current`` with fields unchanged since ``last`` removed.

    Only two fields have an equality rule: the current file (compared by
    display name) and the mentioned subagents (compared by value). Every other
    present field is resent in full. That coarse policy is intentional;
    extending suppression to more fields changes what the assistant sees.

    Args:
        current: Live snapshot; never mutated.
        last: Snapshot recorded at the previous transmission, if any.
        settings: Context disabled yields an empty snapshot; delta disabled
            yields a full copy every time.
    """

    config = settings or ContextSettings()
    if not config.enabled:
        return Snapshot()

    delta = current.copy()
    if not config.delta.enabled or last is None:
        return delta

    if (
        delta.current_file is not None
        and last.current_file is not None
        and delta.current_file.name == last.current_file.name
    ):
        LOGGER.debug("Suppressing unchanged current file %s", delta.current_file.name)
        delta.current_file = None

    if (
        delta.mentioned_subagents is not None
        and last.mentioned_subagents is not None
        and delta.mentioned_subagents == last.mentioned_subagents
    ):
        delta.mentioned_subagents = None

    return delta
