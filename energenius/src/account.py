"""
Account-deletion cleanup for the consumption store and preferences.

User-added devices are kept but revert to unowned presets with zeroed
counters; consumption history is deleted in batches of ``batch_size``.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

import logging

from energenius.src.preferences import (
    APP_LAST_ACTIVE,
    APP_STATE,
    CURRENT_USER_ID,
    LAST_BACKGROUND_UPDATE,
    LAST_CONSUMPTION_UPDATE,
    NEXT_MIDNIGHT_RESET,
    Preferences,
)
from energenius.src.store import ConsumptionStore

logger = logging.getLogger(__name__)

_SESSION_KEYS = (
    CURRENT_USER_ID,
    NEXT_MIDNIGHT_RESET,
    LAST_BACKGROUND_UPDATE,
    LAST_CONSUMPTION_UPDATE,
    APP_LAST_ACTIVE,
    APP_STATE,
)


def delete_account_data(
    store: ConsumptionStore,
    prefs: Preferences,
    user_id: str,
    batch_size: int = 100,
) -> dict[str, int]:
    """Remove everything the tracker holds for *user_id*.

    Stop the user's ``TrackerScheduler`` before calling this.

    Returns:
        ``{"devices_released": n, "records_deleted": m}``.

    Raises:
        StoreError: If the store fails; preferences are left untouched
            so the cleanup can be retried.
    """
    released = store.release_user_devices(user_id)
    deleted = 0
    while True:
        batch = store.delete_consumption_history(user_id, limit=batch_size)
        deleted += batch
        if batch < batch_size:
            break

    for key in _SESSION_KEYS:
        prefs.remove(key)

    logger.info(
        "Preserved %d devices and deleted %d history records",
        released,
        deleted,
        extra={"user_id": user_id},
    )
    return {"devices_released": released, "records_deleted": deleted}
