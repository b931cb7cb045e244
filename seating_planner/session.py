"""
Glue between the editor, the arrangement store, the local cache and the
realtime feed.

Conflict policy: once the session knows which stored arrangement (id and
version) it is editing, every save is version-checked. A conflicting save
discards the local change, reloads the latest arrangement and warns. The
unconditional last-writer-wins path is used only to create the first row or
on an explicit force_save().
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Callable, Iterable, Optional

from . import reconciler
from .editor import SeatingEditor
from .guests import DEFAULT_GUEST_NAMES, merge_guests, seed_guests
from .models import Arrangement, ArrangementData
from .notifications import LoggingNotifier, Notifier, Severity, notify
from .realtime import ArrangementChannel, RealtimeSubscriber
from .storage import CacheError, LocalCache
from .store import ArrangementStore, SaveResult

if TYPE_CHECKING:
    from .config import Settings


logger = logging.getLogger(__name__)

DEFAULT_AUTOSAVE_SECONDS = 30.0


class EditorSession:
    def __init__(
        self,
        editor: SeatingEditor,
        store: ArrangementStore,
        cache: Optional[LocalCache] = None,
        *,
        notifier: Optional[Notifier] = None,
        guest_names: Iterable[str] = DEFAULT_GUEST_NAMES,
    ):
        self.editor = editor
        self.store = store
        self.cache = cache
        self.notifier = notifier or editor.notifier or LoggingNotifier()
        self.guest_names = tuple(guest_names)

        self.arrangement_id: Optional[str] = None
        self.version: Optional[int] = None
        self.saved_revision = editor.revision
        self._saving = False
        self._subscriber: Optional[RealtimeSubscriber] = None

    @property
    def dirty(self) -> bool:
        return self.editor.revision != self.saved_revision

    def _notify(self, severity: Severity, title: str, message: str = "") -> None:
        notify(self.notifier, severity, title, message)

    def _apply(self, arrangement: Arrangement) -> None:
        self.editor.replace_data(arrangement.data)
        self.arrangement_id = arrangement.id
        self.version = arrangement.version
        self.saved_revision = self.editor.revision

    def _reset_to(self, data: ArrangementData) -> None:
        self.editor.replace_data(data)
        self.arrangement_id = None
        self.version = None
        self.saved_revision = self.editor.revision

    # --- load
    def load(self) -> str:
        """Load remote, else cached, else default data. Returns "remote", "cache" or "default"."""
        arrangement = self.store.fetch_latest()
        if arrangement is not None:
            self._apply(arrangement)
            self._notify(Severity.success, "Arrangement loaded", "The seating arrangement has been loaded.")
            return "remote"

        if not self.store.available or self.store.last_error is not None:
            self._notify(
                Severity.warning,
                "Cloud storage unavailable",
                "Working from the copy saved on this device.",
            )

        try:
            cached = self.cache.load() if self.cache else None
        except CacheError as e:
            logger.error("Error loading saved data: %s", e)
            self.cache.drop()
            self._notify(Severity.error, "Error loading saved data", "The saved copy was unreadable and has been reset.")
            cached = None

        if cached is not None:
            guests = merge_guests(cached.guests, self.guest_names)
            self._reset_to(cached.model_copy(update={"guests": guests}))
            return "cache"

        self._reset_to(ArrangementData(guests=seed_guests(self.guest_names)))
        return "default"

    def reload(self) -> bool:
        arrangement = self.store.fetch_latest()
        if arrangement is None:
            return False
        self._apply(arrangement)
        return True

    # --- save
    def _prepare_save(self) -> Optional[ArrangementData]:
        """Write the local copy; returns the data to push, or None when there are no tables."""
        data = self.editor.data
        if self.cache is not None:
            self.cache.save(data)
        return data if data.tables else None

    def save(self, silent: bool = False) -> bool:
        data = self._prepare_save()
        if data is None:
            return False
        if self.arrangement_id is None or self.version is None:
            return self._save_unconditionally(data, silent)

        revision = self.editor.revision
        result = self._versioned(data, self.arrangement_id, self.version)
        if result.success:
            self.saved_revision = revision
            if not silent:
                self._notify(Severity.success, "Arrangement saved", "Your seating arrangement has been saved to the cloud.")
            return True
        if not result.conflict and not silent:
            self._notify(Severity.error, "Error saving arrangement", "There was a problem saving your seating arrangement.")
        return False

    def force_save(self, silent: bool = False) -> bool:
        data = self._prepare_save()
        if data is None:
            return False
        return self._save_unconditionally(data, silent)

    def _save_unconditionally(self, data: ArrangementData, silent: bool) -> bool:
        revision = self.editor.revision
        self._saving = True
        try:
            ok = self.store.save(data, silent=silent)
        finally:
            self._saving = False
        if not ok:
            if not silent:
                self._notify(Severity.error, "Error saving arrangement", "There was a problem saving your seating arrangement.")
            return False
        latest = self.store.fetch_latest()
        if latest is not None:
            self.arrangement_id = latest.id
            self.version = latest.version
        self.saved_revision = revision
        if not silent:
            self._notify(Severity.success, "Arrangement saved", "Your seating arrangement has been saved to the cloud.")
        return True

    def _versioned(self, data: ArrangementData, arrangement_id: str, version: int) -> SaveResult:
        self._saving = True
        try:
            result = self.store.save_with_version(data, arrangement_id, version)
        finally:
            self._saving = False
        if result.success and result.latest is not None:
            self.version = result.latest.version
        elif result.conflict:
            self._notify(
                Severity.warning,
                "Seating chart was updated by another device",
                "Your changes were not applied. The latest data has been loaded.",
            )
            if result.latest is not None:
                self._apply(result.latest)
        return result

    # --- multi-device assignment
    def assign(self, seat_id: str, guest_id: Optional[str]) -> SaveResult:
        """Assign (or with guest_id=None, clear) one seat and persist it with a version check."""
        if self.arrangement_id is None or self.version is None:
            if not self.reload():
                self._notify(Severity.error, "No seating arrangement found")
                return SaveResult(success=False)

        data = self.editor.data
        if data.seat(seat_id) is None:
            return SaveResult(success=False)
        if guest_id:
            seats = reconciler.assign(data.seats, guest_id, seat_id).seats
        else:
            seats = reconciler.unassign(data.seats, seat_id)
        updated = data.model_copy(update={"seats": seats})

        result = self._versioned(updated, self.arrangement_id, self.version)
        if result.success and result.latest is not None:
            self._apply(result.latest)
        elif not result.conflict:
            self._notify(Severity.error, "Failed to assign guest", "Please try again")
        return result

    # --- realtime
    def on_remote_update(self, arrangement: Arrangement) -> bool:
        if self._saving:
            return False
        if arrangement.id == self.arrangement_id and self.version is not None and arrangement.version <= self.version:
            return False
        had_local_changes = self.dirty
        self._apply(arrangement)
        if had_local_changes:
            self._notify(
                Severity.warning,
                "Local changes discarded",
                "The seating chart was updated on another device.",
            )
        else:
            self._notify(Severity.info, "Seating arrangement updated", "Changes from another device have been applied")
        return True

    def connect(self, channel: ArrangementChannel) -> RealtimeSubscriber:
        self.disconnect()
        self._subscriber = RealtimeSubscriber(self.store, channel, self.on_remote_update).start()
        return self._subscriber

    def disconnect(self) -> None:
        if self._subscriber is not None:
            self._subscriber.close()
            self._subscriber = None


class AutoSaver:
    """Silent periodic save; call poll() from the host's event loop or timer."""

    def __init__(
        self,
        session: EditorSession,
        interval: float = DEFAULT_AUTOSAVE_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.session = session
        self.interval = interval
        self.clock = clock
        self.last_run = clock()
        self.saving = False

    @classmethod
    def from_settings(
        cls, session: EditorSession, settings: "Settings", clock: Callable[[], float] = time.monotonic
    ) -> "AutoSaver":
        return cls(session, settings.autosave_seconds, clock)

    def due(self) -> bool:
        return self.clock() - self.last_run >= self.interval

    def poll(self) -> bool:
        if not self.due():
            return False
        self.last_run = self.clock()
        if not self.session.editor.data.tables:
            return False
        self.saving = True
        try:
            return self.session.save(silent=True)
        finally:
            self.saving = False
