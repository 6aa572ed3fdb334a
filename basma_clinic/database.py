"""
Record storage backends.

The record store is a hierarchical key-value tree (Firebase Realtime Database
shape): point read/write, merge update, atomic multi-path update where ``None``
deletes a path, append with a generated id, subtree delete and change
subscriptions on a path.
"""
import asyncio
import copy
import inspect
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Union

from basma_clinic.config import get_settings
from basma_clinic.exceptions import StoreUnavailable
from basma_clinic.utils.logger import get_logger
from basma_clinic.utils.push_id import generate_push_id

settings = get_settings()
logger = get_logger("database")

Listener = Callable[[Any], Union[Awaitable[None], None]]
Unsubscribe = Callable[[], None]


def split_path(path: str) -> List[str]:
    return [part for part in str(path).strip("/").split("/") if part]


def join_path(*parts: str) -> str:
    return "/".join(p for part in parts for p in split_path(part))


def check_multi_update(updates: Dict[str, Any]) -> None:
    """Reject overlapping paths the way the Realtime Database does for multi-path updates."""
    keys = sorted(tuple(split_path(p)) for p in updates)
    for a, b in zip(keys, keys[1:]):
        if b[: len(a)] == a:
            raise ValueError(f"Path {'/'.join(a)!r} is an ancestor of {'/'.join(b)!r} in the same update")


async def invoke_listener(callback: Listener, snapshot: Any) -> None:
    result = callback(snapshot)
    if inspect.isawaitable(result):
        await result


class RecordBackend(ABC):
    """Async hierarchical key-value store used by the record services."""

    def new_key(self) -> str:
        return generate_push_id()

    @abstractmethod
    async def get(self, path: str) -> Any:
        ...

    @abstractmethod
    async def set(self, path: str, value: Any) -> None:
        ...

    @abstractmethod
    async def update(self, path: str, fields: Dict[str, Any]) -> None:
        ...

    @abstractmethod
    async def multi_update(self, updates: Dict[str, Any]) -> None:
        """Apply all absolute-path writes together; ``None`` deletes that path."""

    @abstractmethod
    async def delete(self, path: str) -> None:
        ...

    @abstractmethod
    async def find_children(self, path: str, child: str, value: Any) -> Dict[str, Any]:
        """Children of ``path`` whose ``child`` key equals ``value``."""

    @abstractmethod
    async def listen(self, path: str, callback: Listener) -> Unsubscribe:
        """Deliver the current snapshot of ``path`` now and after every change."""

    async def push(self, path: str, value: Any) -> str:
        key = self.new_key()
        await self.set(join_path(path, key), value)
        return key

    async def ping(self) -> bool:
        return True


def _prune(value: Any) -> Any:
    """Drop null leaves and empty objects: the tree never stores them."""
    if isinstance(value, dict):
        cleaned = {}
        for k, v in value.items():
            v = _prune(v)
            if v is not None:
                cleaned[str(k)] = v
        return cleaned or None
    return value


class MemoryBackend(RecordBackend):
    """In-process tree with the same write semantics as the Realtime Database.

    Used for development and tests. Multi-path updates are applied to a copy
    and swapped in, so a rejected update leaves the tree untouched.
    """

    def __init__(self, data: Optional[Dict[str, Any]] = None):
        self._root: Dict[str, Any] = (_prune(copy.deepcopy(data)) or {}) if data else {}
        self._listeners: Dict[int, Tuple[List[str], Listener]] = {}
        self._next_listener_id = 0

    @staticmethod
    def _read(root: Dict[str, Any], parts: List[str]) -> Any:
        node: Any = root
        for part in parts:
            if not isinstance(node, dict) or part not in node:
                return None
            node = node[part]
        return node

    @staticmethod
    def _write(root: Dict[str, Any], parts: List[str], value: Any) -> Dict[str, Any]:
        value = _prune(copy.deepcopy(value))
        if not parts:
            return value if isinstance(value, dict) else {}
        trail = [root]
        node = root
        for part in parts[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                if value is None:
                    return root
                child = {}
                node[part] = child
            node = child
            trail.append(node)
        if value is None:
            node.pop(parts[-1], None)
            # remove parents left empty by the delete
            for depth in range(len(parts) - 1, 0, -1):
                if trail[depth]:
                    break
                trail[depth - 1].pop(parts[depth - 1], None)
        else:
            node[parts[-1]] = value
        return root

    async def get(self, path: str) -> Any:
        return copy.deepcopy(self._read(self._root, split_path(path)))

    async def set(self, path: str, value: Any) -> None:
        await self.multi_update({path: value})

    async def update(self, path: str, fields: Dict[str, Any]) -> None:
        if not fields:
            return
        await self.multi_update({join_path(path, key): value for key, value in fields.items()})

    async def multi_update(self, updates: Dict[str, Any]) -> None:
        if not updates:
            return
        check_multi_update(updates)
        new_root = copy.deepcopy(self._root)
        for path, value in updates.items():
            new_root = self._write(new_root, split_path(path), value)
        self._root = new_root
        await self._notify([split_path(p) for p in updates])

    async def delete(self, path: str) -> None:
        await self.multi_update({path: None})

    async def find_children(self, path: str, child: str, value: Any) -> Dict[str, Any]:
        node = await self.get(path)
        if not isinstance(node, dict):
            return {}
        return {k: v for k, v in node.items() if isinstance(v, dict) and v.get(child) == value}

    async def listen(self, path: str, callback: Listener) -> Unsubscribe:
        listener_id = self._next_listener_id
        self._next_listener_id += 1
        self._listeners[listener_id] = (split_path(path), callback)
        await self._deliver(listener_id)

        def unsubscribe() -> None:
            self._listeners.pop(listener_id, None)

        return unsubscribe

    async def _deliver(self, listener_id: int) -> None:
        entry = self._listeners.get(listener_id)
        if entry is None:
            return
        parts, callback = entry
        try:
            await invoke_listener(callback, await self.get("/".join(parts)))
        except Exception as e:
            logger.error(f"Listener on /{'/'.join(parts)} failed: {e}", exc_info=True)

    async def _notify(self, changed: List[List[str]]) -> None:
        for listener_id, (parts, _) in list(self._listeners.items()):
            related = any(
                c[: len(parts)] == parts or parts[: len(c)] == c
                for c in changed
            )
            if related:
                await self._deliver(listener_id)


class FirebaseBackend(RecordBackend):
    """Firebase Realtime Database through ``firebase_admin.db``.

    The Admin SDK is blocking, so every call runs in a worker thread. Change
    events arrive on the SDK's listener thread and are bridged into the event
    loop; each event triggers a fresh read so subscribers always see the whole
    snapshot of the listened path.
    """

    def __init__(self, app=None):
        from firebase_admin import db

        self._db = db
        self._app = app

    def _ref(self, path: str):
        return self._db.reference("/" + "/".join(split_path(path)), app=self._app)

    async def _call(self, action: str, fn: Callable, *args, **kwargs) -> Any:
        from firebase_admin.exceptions import FirebaseError

        try:
            return await asyncio.to_thread(fn, *args, **kwargs)
        except FirebaseError as e:
            logger.error(f"❌ Firebase {action} failed: {e}")
            raise StoreUnavailable(f"Record store unavailable ({action})") from e

    async def get(self, path: str) -> Any:
        return await self._call(f"get {path}", self._ref(path).get)

    async def set(self, path: str, value: Any) -> None:
        if value is None:
            await self.delete(path)
            return
        await self._call(f"set {path}", self._ref(path).set, value)

    async def update(self, path: str, fields: Dict[str, Any]) -> None:
        if not fields:
            return
        await self._call(f"update {path}", self._ref(path).update, fields)

    async def multi_update(self, updates: Dict[str, Any]) -> None:
        if not updates:
            return
        check_multi_update(updates)
        payload = {"/".join(split_path(p)): v for p, v in updates.items()}
        await self._call("multi-path update", self._ref("/").update, payload)

    async def delete(self, path: str) -> None:
        await self._call(f"delete {path}", self._ref(path).delete)

    async def find_children(self, path: str, child: str, value: Any) -> Dict[str, Any]:
        query = self._ref(path).order_by_child(child).equal_to(value)
        result = await self._call(f"query {path} by {child}", query.get)
        return dict(result or {})

    async def listen(self, path: str, callback: Listener) -> Unsubscribe:
        loop = asyncio.get_running_loop()
        # serialize deliveries so a slow read never overwrites a fresher one
        delivery_lock = asyncio.Lock()
        active = True

        async def _deliver() -> None:
            async with delivery_lock:
                if not active:
                    return
                try:
                    await invoke_listener(callback, await self.get(path))
                except Exception as e:
                    logger.error(f"Listener on /{path} failed: {e}", exc_info=True)

        def _on_event(event) -> None:
            asyncio.run_coroutine_threadsafe(_deliver(), loop)

        registration = await self._call(f"listen {path}", self._ref(path).listen, _on_event)

        def unsubscribe() -> None:
            nonlocal active
            active = False
            registration.close()

        return unsubscribe

    async def ping(self) -> bool:
        try:
            await asyncio.to_thread(self._ref("/").get, shallow=True)
            return True
        except Exception:
            return False


_backend: RecordBackend | None = None


async def init_db() -> None:
    """Create the configured record backend (kept if one is already installed)."""
    global _backend
    if _backend is not None:
        return
    if settings.RECORD_BACKEND == "firebase":
        from basma_clinic.utils.firebase import init_firebase_app

        _backend = FirebaseBackend(init_firebase_app())
    else:
        _backend = MemoryBackend()
    logger.info(f"Record backend ready: {settings.RECORD_BACKEND}")


def use_backend(backend: RecordBackend | None) -> None:
    """Install a backend explicitly (tests, scripts); ``None`` resets."""
    global _backend
    _backend = backend


def get_backend() -> RecordBackend:
    if _backend is None:
        raise StoreUnavailable("Record store not initialized")
    return _backend


async def ping_db() -> bool:
    """Check record store connectivity."""
    if _backend is None:
        return False
    try:
        return await _backend.ping()
    except Exception:
        return False
