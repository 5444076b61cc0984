# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/railid_connect

"""
Optional background sweep of expired state records.

Expiry is enforced when a state is checked, so this only bounds memory use.
"""

from typing import Protocol

import anyio

from railid_connect.utils.logger import logger


class PurgeableStorage(Protocol):
    def purge_expired(self) -> int: ...


async def purge_states_periodically(
    storage: PurgeableStorage,
    interval: float = 86400.0,
    max_runs: int | None = None,
) -> int:
    """
    Purges expired state records every ``interval`` seconds.

    Run it in a task group; cancel the group to stop it.

    Args:
        storage: Storage exposing ``purge_expired``.
        interval: Seconds to wait between sweeps. Defaults to one day.
        max_runs: Stop after this many sweeps (runs forever if None).

    Returns:
        int: Total number of records purged.
    """
    total = 0
    runs = 0
    while max_runs is None or runs < max_runs:
        purged = storage.purge_expired()
        total += purged
        runs += 1
        if purged:
            logger.debug(f"Purged {purged} expired state record(s)")
        if max_runs is not None and runs >= max_runs:
            break
        await anyio.sleep(interval)
    return total
