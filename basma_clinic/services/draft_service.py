"""
Draft/autosave for in-progress forms.

Drafts live in a local string key-value store (one JSON file per key under
``DRAFTS_DIR``), stored as ``{"data": ..., "savedAt": ms}``. Storage failures
never reach the form: reads degrade to "no draft" and writes are skipped.
"""
import asyncio
import copy
import json
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Union

from basma_clinic.config import get_settings
from basma_clinic.exceptions import LocalStorageUnavailable
from basma_clinic.models.draft import Draft
from basma_clinic.utils.dates import now_ms
from basma_clinic.utils.logger import get_logger

settings = get_settings()
logger = get_logger("drafts")


class DraftKeys:
    """Deterministic draft keys per form and operation."""
    PATIENT_CREATE = "patient_create"

    @staticmethod
    def patient_edit(patient_id: str) -> str:
        return f"patient_edit_{patient_id}"

    @staticmethod
    def session_create(patient_id: str) -> str:
        return f"session_create_{patient_id}"

    @staticmethod
    def session_edit(patient_id: str, session_id: str) -> str:
        return f"session_edit_{patient_id}_{session_id}"


class FileDraftStorage:
    """Synchronous string key-value store namespaced under a fixed prefix."""

    def __init__(self, directory: Union[str, Path, None] = None, prefix: Optional[str] = None):
        self.directory = Path(directory or settings.DRAFTS_DIR)
        self.prefix = settings.DRAFT_PREFIX if prefix is None else prefix

    def _path(self, key: str) -> Path:
        safe = "".join(c if c.isalnum() or c in "-_" else "_" for c in f"{self.prefix}{key}")
        return self.directory / f"{safe}.json"

    def get_item(self, key: str) -> Optional[str]:
        path = self._path(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            raise LocalStorageUnavailable(str(e)) from e

    def set_item(self, key: str, value: str) -> None:
        path = self._path(key)
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            tmp = path.with_suffix(".tmp")
            tmp.write_text(value, encoding="utf-8")
            tmp.replace(path)
        except OSError as e:
            raise LocalStorageUnavailable(str(e)) from e

    def remove_item(self, key: str) -> None:
        try:
            self._path(key).unlink(missing_ok=True)
        except OSError as e:
            raise LocalStorageUnavailable(str(e)) from e


def save_draft(storage, key: str, data: Dict[str, Any]) -> bool:
    try:
        storage.set_item(key, json.dumps({"data": data, "savedAt": now_ms()}, ensure_ascii=False, default=str))
        return True
    except (LocalStorageUnavailable, TypeError, ValueError) as e:
        logger.warning(f"Failed to save draft {key}: {e}")
        return False


def load_draft(storage, key: str) -> Optional[Draft]:
    try:
        item = storage.get_item(key)
        if not item:
            return None
        parsed = json.loads(item)
        if not isinstance(parsed, dict) or not isinstance(parsed.get("data"), dict):
            return None
        return Draft(key=key, data=parsed["data"], saved_at=parsed.get("savedAt") or 0)
    except (LocalStorageUnavailable, ValueError) as e:
        logger.warning(f"Failed to load draft {key}: {e}")
        return None


def clear_draft(storage, key: str) -> None:
    try:
        storage.remove_item(key)
    except LocalStorageUnavailable as e:
        logger.warning(f"Failed to clear draft {key}: {e}")


def has_draft(storage, key: str) -> bool:
    try:
        return storage.get_item(key) is not None
    except LocalStorageUnavailable:
        return False


def has_meaningful_data(data: Any) -> bool:
    """At least one field holds a non-empty trimmed string or a positive number."""
    if not isinstance(data, dict):
        return False
    for value in data.values():
        if isinstance(value, str) and value.strip():
            return True
        if isinstance(value, (int, float)) and not isinstance(value, bool) and value > 0:
            return True
    return False


class DraftState(str, Enum):
    IDLE = "idle"
    PENDING_DECISION = "pending_decision"
    ACTIVE = "active"
    SUBMITTED = "submitted"
    CLOSED = "closed"


class DraftSession:
    """Autosave state for one form instance.

    - Only genuine user edits (``update``) arm the debounced save; populating the
      form or restoring a draft does not.
    - A draft found on ``start`` is surfaced as a restore-or-discard decision and is
      never merged automatically.
    - An empty ``draft_key`` disables drafting entirely (no reads, no writes).

    Must be used from inside a running event loop; the debounce timer is an
    ``asyncio`` timer handle, so a new edit always cancels the pending save.
    """

    def __init__(
        self,
        draft_key: Optional[str],
        initial_data: Optional[Dict[str, Any]] = None,
        *,
        storage=None,
        debounce_ms: Optional[int] = None,
    ):
        self.draft_key = draft_key or None
        self.initial_data: Dict[str, Any] = copy.deepcopy(initial_data or {})
        self.storage = storage if storage is not None else FileDraftStorage()
        self.debounce_ms = settings.DRAFT_DEBOUNCE_MS if debounce_ms is None else debounce_ms

        self.data: Dict[str, Any] = copy.deepcopy(self.initial_data)
        self.has_draft = False
        self.show_restore_dialog = False
        self.state = DraftState.IDLE

        self._user_touched = False
        self._last_persisted: Dict[str, Any] = copy.deepcopy(self.initial_data)
        self._timer: Optional[asyncio.TimerHandle] = None

    @property
    def enabled(self) -> bool:
        return self.draft_key is not None

    def start(self) -> Dict[str, Any]:
        """On form mount: report ``{currentData, draftAvailable}``."""
        if self.enabled and has_draft(self.storage, self.draft_key):
            self.has_draft = True
            self.show_restore_dialog = True
            self.state = DraftState.PENDING_DECISION
        return {"currentData": copy.deepcopy(self.data), "draftAvailable": self.has_draft}

    def populate(self, data: Dict[str, Any]) -> None:
        """Fill the form programmatically (e.g. after loading the record being edited)."""
        self.initial_data = copy.deepcopy(data)
        self.data = copy.deepcopy(data)
        self._last_persisted = copy.deepcopy(data)

    def update(self, new_data: Union[Dict[str, Any], Callable[[Dict[str, Any]], Dict[str, Any]]]) -> Dict[str, Any]:
        """Record a user edit; accepts new data or an updater ``fn(previous) -> new``."""
        previous = copy.deepcopy(self.data)
        self.data = new_data(previous) if callable(new_data) else copy.deepcopy(new_data)

        if not self.enabled or self.state in (DraftState.SUBMITTED, DraftState.CLOSED):
            return self.data
        self._user_touched = True
        if self.state == DraftState.IDLE:
            self.state = DraftState.ACTIVE
        if self.data != self._last_persisted:
            self._schedule_persist()
        return self.data

    set_data = update

    def _schedule_persist(self) -> None:
        self._cancel_timer()
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self.debounce_ms / 1000, self._persist)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _persist(self) -> None:
        self._timer = None
        if not self.enabled or not self._user_touched:
            return
        if self.state in (DraftState.SUBMITTED, DraftState.CLOSED):
            return
        if self.data == self._last_persisted:
            return

        if has_meaningful_data(self.data):
            logger.debug(f"Autosaving draft {self.draft_key}")
            # a failed write leaves _last_persisted behind so the next edit retries it
            if save_draft(self.storage, self.draft_key, self.data):
                self._last_persisted = copy.deepcopy(self.data)
                self.has_draft = True
            return
        if has_draft(self.storage, self.draft_key):
            # everything cleared: same as discarding
            clear_draft(self.storage, self.draft_key)
            self.has_draft = False
        self._last_persisted = copy.deepcopy(self.data)

    def flush(self) -> None:
        """Run a pending debounced save immediately."""
        if self._timer is not None:
            self._cancel_timer()
            self._persist()

    def restore(self) -> Dict[str, Any]:
        """Merge the stored draft over the initial data and consume the draft."""
        self.show_restore_dialog = False
        if not self.enabled:
            return copy.deepcopy(self.data)

        draft = load_draft(self.storage, self.draft_key)
        if draft is None or not draft.data:
            logger.info(f"No draft found or draft is empty for {self.draft_key}")
            self.has_draft = False
            if self.state == DraftState.PENDING_DECISION:
                self.state = DraftState.ACTIVE
            return copy.deepcopy(self.data)

        merged = {**copy.deepcopy(self.initial_data), **draft.data}
        self._cancel_timer()
        self.data = merged
        self._last_persisted = copy.deepcopy(merged)
        self._user_touched = True
        clear_draft(self.storage, self.draft_key)
        self.has_draft = False
        self.state = DraftState.ACTIVE
        return copy.deepcopy(merged)

    def discard(self) -> Dict[str, Any]:
        """Drop the stored draft; the caller repopulates the form from the returned initial data."""
        if self.enabled:
            clear_draft(self.storage, self.draft_key)
        self._cancel_timer()
        self.has_draft = False
        self.show_restore_dialog = False
        self.data = copy.deepcopy(self.initial_data)
        self._last_persisted = copy.deepcopy(self.initial_data)
        if self.state in (DraftState.IDLE, DraftState.PENDING_DECISION):
            self.state = DraftState.ACTIVE
        return copy.deepcopy(self.data)

    def clear(self) -> None:
        """After a successful submit: delete the draft, keep the in-memory form data."""
        self._cancel_timer()
        if self.enabled:
            clear_draft(self.storage, self.draft_key)
        self.has_draft = False
        self.state = DraftState.SUBMITTED

    def close(self) -> None:
        """Form unmounted: cancel the pending save; nothing is written afterwards."""
        self._cancel_timer()
        self.state = DraftState.CLOSED
