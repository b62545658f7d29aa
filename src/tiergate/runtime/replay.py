"""Reconstruct a key's value and version from the update-event log."""

from __future__ import annotations

import copy
from collections.abc import Iterable
from typing import Any

from tiergate.runtime.models import ABSENT, UpdateEvent, UpdateType


def replay_history(events: Iterable[UpdateEvent], key: str) -> tuple[Any, int]:
    """Fold the events for *key* into ``(value, version)``.

    Starts from "absent, version 0".  A create sets version 1, each update
    and rollback adds one, a delete returns to absent.  A per-key restore
    event is a hard set of value and version (absent, 0 when the snapshot
    did not hold the key).  Store-wide restore markers carry no key and are
    skipped.
    """
    value: Any = ABSENT
    version = 0
    for ev in events:
        if ev.key != key:
            continue
        if ev.type is UpdateType.CREATE:
            value, version = copy.deepcopy(ev.new_value), 1
        elif ev.type in (UpdateType.UPDATE, UpdateType.ROLLBACK):
            value, version = copy.deepcopy(ev.new_value), version + 1
        elif ev.type is UpdateType.DELETE:
            value, version = ABSENT, 0
        elif ev.type is UpdateType.RESTORE:
            if ev.new_value is ABSENT:
                value, version = ABSENT, 0
            else:
                value, version = copy.deepcopy(ev.new_value), ev.version
    return value, version
