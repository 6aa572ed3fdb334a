import secrets
import threading
import time

# Same alphabet as Firebase push ids: ASCII-ordered so ids sort by creation time
PUSH_CHARS = "-0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ_abcdefghijklmnopqrstuvwxyz"

_lock = threading.Lock()
_last_push_time = 0
_last_rand_chars = [0] * 12


def generate_push_id(now_ms: int | None = None) -> str:
    """Generate a 20-char, chronologically sortable id (8 time chars + 12 random chars).

    Ids generated within the same millisecond increment the random part, so they
    stay unique and ordered within one process.
    """
    global _last_push_time
    now = int(time.time() * 1000) if now_ms is None else now_ms
    with _lock:
        duplicate_time = now == _last_push_time
        _last_push_time = now

        time_chars = []
        value = now
        for _ in range(8):
            time_chars.append(PUSH_CHARS[value % 64])
            value //= 64
        time_part = "".join(reversed(time_chars))

        if not duplicate_time:
            for i in range(12):
                _last_rand_chars[i] = secrets.randbelow(64)
        else:
            # increment the random part, carrying over 63 -> 0
            i = 11
            while i >= 0 and _last_rand_chars[i] == 63:
                _last_rand_chars[i] = 0
                i -= 1
            if i >= 0:
                _last_rand_chars[i] += 1

        return time_part + "".join(PUSH_CHARS[c] for c in _last_rand_chars)
