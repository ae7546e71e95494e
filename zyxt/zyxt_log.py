"""
Debug output channel. Lines go to stderr prefixed with `[DBG]` when the
configured verbosity reaches the message level; `ZYXT_DEBUG` in the
environment turns level 1 on without any configuration.
"""
import os
import sys

_verbosity = 1 if os.environ.get("ZYXT_DEBUG") else 0


def set_verbosity(level: int) -> None:
    global _verbosity
    _verbosity = max(int(level), 0)


def get_verbosity() -> int:
    return _verbosity


def dbg(level: int, *parts) -> None:
    if _verbosity < level:
        return
    print("[DBG]", *parts, file=sys.stderr)
