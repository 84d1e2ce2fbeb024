"""
App update check and the persisted pending-update record.

Fetches the latest-version document over HTTP and compares it with the
running version (major, minor, patch, then build number). The result is
kept in preferences as a versioned tagged union so that a later session
can show the update prompt:

- ``NoPendingUpdate``: ``{"kind": "none"}``
- ``PendingUpdate``: ``{"kind": "pending", "schema_version": 1, ...}``

Network and HTTP errors are logged at WARNING and reported as "no update"
so startup never blocks on the update server.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

import logging
from typing import Annotated, Literal

import httpx
from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from energenius.src.preferences import (
    PENDING_UPDATE,
    SKIPPED_UPDATE_VERSION,
    Preferences,
)

logger = logging.getLogger(__name__)

# Default request timeout in seconds.
_DEFAULT_TIMEOUT: float = 5.0

_DEFAULT_NOTES = "Bug fixes and performance improvements"


class NoPendingUpdate(BaseModel):
    kind: Literal["none"] = "none"


class PendingUpdate(BaseModel):
    """An update the user has not dealt with yet."""

    kind: Literal["pending"] = "pending"
    schema_version: int = 1
    latest_version: str
    latest_build: int = 0
    current_version: str
    notes: str = _DEFAULT_NOTES
    force_update: bool = False
    download_url: str | None = None


PendingUpdateInfo = Annotated[
    NoPendingUpdate | PendingUpdate, Field(discriminator="kind")
]

_pending_adapter: TypeAdapter[NoPendingUpdate | PendingUpdate] = TypeAdapter(
    PendingUpdateInfo
)


class LatestVersionDocument(BaseModel):
    """Shape of the latest-version document served by the update server."""

    version: str
    build_number: int = Field(default=0, alias="buildNumber")
    update_notes: str | None = Field(default=None, alias="updateNotes")
    force_update: bool = Field(default=False, alias="forceUpdate")
    download_url: dict[str, str] | None = Field(default=None, alias="downloadUrl")


def parse_version(version: str) -> tuple[int, int, int]:
    """Parse ``major.minor.patch`` into a tuple; missing parts are 0.

    Raises:
        ValueError: If a part is not an integer.
    """
    parts = [int(p) for p in version.strip().split(".")[:3]]
    while len(parts) < 3:
        parts.append(0)
    return parts[0], parts[1], parts[2]


def is_newer(
    latest: str, latest_build: int, current: str, current_build: int,
) -> bool:
    """Whether *latest*+*latest_build* is newer than *current*+*current_build*."""
    return (parse_version(latest), latest_build) > (
        parse_version(current), current_build,
    )


class UpdateChecker:
    """Checks for and remembers app updates.

    Args:
        prefs: Preferences for the skipped version and pending record.
        url: URL of the latest-version JSON document.
        current_version: Running ``major.minor.patch`` version.
        build_number: Running build number.
        platform: Key into the document's ``downloadUrl`` map.
        timeout: HTTP request timeout in seconds.
    """

    def __init__(
        self,
        prefs: Preferences,
        url: str,
        current_version: str,
        build_number: int,
        platform: str = "android",
        timeout: float = _DEFAULT_TIMEOUT,
    ) -> None:
        self._prefs = prefs
        self._url = url
        self._current_version = current_version
        self._build_number = build_number
        self._platform = platform
        self._timeout = timeout

    def _fetch(self) -> LatestVersionDocument | None:
        try:
            with httpx.Client(timeout=self._timeout) as client:
                response = client.get(self._url)
                response.raise_for_status()
                return LatestVersionDocument.model_validate(response.json())
        except httpx.HTTPStatusError as exc:
            logger.warning(
                "Update check HTTP error %s for %s",
                exc.response.status_code,
                self._url,
            )
        except httpx.TransportError as exc:
            logger.warning("Update check failed for %s: %s", self._url, exc)
        except (ValueError, ValidationError) as exc:
            logger.warning("Update check got an invalid document: %s", exc)
        return None

    def _ahead_of_current(self, pending: PendingUpdate) -> bool:
        try:
            return is_newer(
                pending.latest_version,
                pending.latest_build,
                self._current_version,
                self._build_number,
            )
        except ValueError:
            return False

    def check_for_update(self) -> PendingUpdate | None:
        """Return the available update, or ``None`` if up to date or offline."""
        document = self._fetch()
        if document is None:
            return None
        try:
            newer = is_newer(
                document.version,
                document.build_number,
                self._current_version,
                self._build_number,
            )
        except ValueError:
            logger.warning("Unparseable version %r", document.version)
            return None
        if not newer:
            return None

        url = None
        if document.download_url:
            url = document.download_url.get(self._platform)
        return PendingUpdate(
            latest_version=document.version,
            latest_build=document.build_number,
            current_version=self._current_version,
            notes=document.update_notes or _DEFAULT_NOTES,
            force_update=document.force_update,
            download_url=url,
        )

    # ------------------------------------------------------------------
    # Skipped version
    # ------------------------------------------------------------------

    def should_skip(self, version: str) -> bool:
        return self._prefs.get_str(SKIPPED_UPDATE_VERSION) == version

    def skip_version(self, version: str) -> None:
        self._prefs.set_str(SKIPPED_UPDATE_VERSION, version)

    def clear_skipped(self) -> None:
        self._prefs.remove(SKIPPED_UPDATE_VERSION)

    # ------------------------------------------------------------------
    # Pending record
    # ------------------------------------------------------------------

    def store_pending(self, info: NoPendingUpdate | PendingUpdate) -> None:
        self._prefs.set_str(
            PENDING_UPDATE, _pending_adapter.dump_json(info).decode("utf-8"),
        )

    def load_pending(self) -> NoPendingUpdate | PendingUpdate:
        """Return the stored record; missing or corrupt records read as none."""
        raw = self._prefs.get_str(PENDING_UPDATE)
        if raw is None:
            return NoPendingUpdate()
        try:
            return _pending_adapter.validate_json(raw)
        except ValidationError:
            logger.warning("Discarding unreadable pending-update record")
            return NoPendingUpdate()

    def acknowledge_pending(self) -> NoPendingUpdate | PendingUpdate:
        """Return the pending record and clear it unless the update is forced."""
        info = self.load_pending()
        if isinstance(info, PendingUpdate) and not info.force_update:
            self.store_pending(NoPendingUpdate())
        return info

    def refresh(self) -> NoPendingUpdate | PendingUpdate:
        """Check for an update and persist the outcome.

        A version the user skipped is ignored unless the update is forced.
        When no update is found the stored record is kept, unless the
        running version has already caught up with it.
        """
        update = self.check_for_update()
        if update is None:
            pending = self.load_pending()
            if isinstance(pending, PendingUpdate) and not self._ahead_of_current(pending):
                self.store_pending(NoPendingUpdate())
                return NoPendingUpdate()
            return pending
        if not update.force_update and self.should_skip(update.latest_version):
            logger.info("User previously skipped version %s", update.latest_version)
            return self.load_pending()
        self.store_pending(update)
        logger.info(
            "Update %s available (forced: %s)",
            update.latest_version, update.force_update,
        )
        return update
