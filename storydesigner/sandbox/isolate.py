"""Child-process side of a sandboxed script execution.

Runs inside a freshly spawned process. The script is compiled with
RestrictedPython (no imports, no underscore attributes, no open/exec/eval)
and executed as a module body against a globals dict that holds nothing but
the guard hooks, a `console` facade and the `Story` builder. Both talk to the
host exclusively through the pipe:

    child → host   ("ready",)                    bridge installed, script starts
                   ("log", line)
                   ("call", name, args)          host answers (status, value)
                   ("done",)
                   ("fault", kind, message)      kind: compile | runtime | memory

The address-space limit is the memory mapped at startup plus the budget, so
the budget covers what the script allocates rather than the interpreter.
"""

from __future__ import annotations

import operator
import os
from functools import partial

from RestrictedPython import (
    PrintCollector,
    compile_restricted_exec,
    limited_builtins,
    safe_builtins,
)
from RestrictedPython.Eval import default_guarded_getitem, default_guarded_getiter
from RestrictedPython.Guards import (
    full_write_guard,
    guarded_iter_unpack_sequence,
    guarded_unpack_sequence,
    safer_getattr,
)

try:
    import resource
except ImportError:  # not available on Windows
    resource = None

SCRIPT_FILENAME = "<story-script>"

_INPLACE = {
    "+=": operator.iadd,
    "-=": operator.isub,
    "*=": operator.imul,
    "/=": operator.itruediv,
    "//=": operator.ifloordiv,
    "%=": operator.imod,
    "**=": operator.ipow,
}

_EXTRA_BUILTINS = {
    "dict": dict,
    "list": list,
    "enumerate": enumerate,
    "min": min,
    "max": max,
    "sum": sum,
    "any": any,
    "all": all,
    "reversed": reversed,
}


class BridgeCallError(RuntimeError):
    """The host refused a bridge call."""


class HostLink:
    def __init__(self, conn) -> None:
        self._conn = conn

    def send(self, *message) -> None:
        self._conn.send(message)

    def log(self, line: str) -> None:
        self.send("log", line)

    def call(self, name: str, *args):
        self.send("call", name, args)
        status, value = self._conn.recv()
        if status != "ok":
            raise BridgeCallError(value)
        return value


def _plain(value):
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    return str(value)


# ---------------------------------------------------------------------------
# Objects visible to the script
# ---------------------------------------------------------------------------

class StoryBuilder:
    """Fluent story handle. Every call is forwarded to the host by handle."""

    def __init__(self, host: HostLink, handle: int) -> None:
        self._host = host
        self._handle = handle

    @property
    def handle(self) -> int:
        return self._handle

    def add_scene(self, key):
        self._host.call("add_scene", self._handle, _plain(key))
        return self

    def set_text(self, text):
        self._host.call("set_text", self._handle, _plain(text))
        return self

    def add_event(self, media, trigger="autostart"):
        self._host.call("add_event", self._handle, _plain(media), _plain(trigger))
        return self

    def link(self, from_key, to_key):
        self._host.call("link", self._handle, _plain(from_key), _plain(to_key))
        return self

    def add_keyword(self, keyword):
        self._host.call("add_keyword", self._handle, _plain(keyword))
        return self

    def generate_media(self, prompt, template="default"):
        """Queue an image for generation after the script ends. Returns its filename."""
        return self._host.call("queue_media", self._handle, _plain(prompt), _plain(template))

    def publish(self):
        return self._host.call("publish", self._handle)


class StoryFactory:
    def __init__(self, host: HostLink) -> None:
        self._host = host

    def create(self, name, description=""):
        handle = self._host.call("create_story", _plain(name), _plain(description))
        return StoryBuilder(self._host, handle)


class Console:
    def __init__(self, host: HostLink) -> None:
        self._host = host

    def _write(self, prefix, parts):
        self._host.log(prefix + " ".join(str(p) for p in parts))

    def log(self, *parts):
        self._write("", parts)

    def info(self, *parts):
        self._write("", parts)

    def warn(self, *parts):
        self._write("⚠️ ", parts)

    def error(self, *parts):
        self._write("❌ ", parts)


class LogPrint(PrintCollector):
    """`print()` inside the script becomes a log line on the host."""

    def __init__(self, host: HostLink, _getattr_=None) -> None:
        super().__init__(_getattr_)
        self._host = host

    def _call_print(self, *objects, **kwargs):
        if kwargs.get("file") is not None:
            return super()._call_print(*objects, **kwargs)
        sep = kwargs.get("sep")
        self._host.log((" " if sep is None else str(sep)).join(str(o) for o in objects))


def _inplacevar(op: str, x, y):
    if op not in _INPLACE:
        raise SyntaxError(f"Unsupported in-place operator: {op}")
    return _INPLACE[op](x, y)


def build_globals(host: HostLink) -> dict:
    builtins = {**safe_builtins, **limited_builtins, **_EXTRA_BUILTINS}
    return {
        "__builtins__": builtins,
        "__name__": "story_script",
        "__metaclass__": type,
        "_getattr_": safer_getattr,
        "_getitem_": default_guarded_getitem,
        "_getiter_": default_guarded_getiter,
        "_iter_unpack_sequence_": guarded_iter_unpack_sequence,
        "_unpack_sequence_": guarded_unpack_sequence,
        "_write_": full_write_guard,
        "_inplacevar_": _inplacevar,
        "_print_": partial(LogPrint, host),
        "Story": StoryFactory(host),
        "console": Console(host),
    }


# ---------------------------------------------------------------------------
# Process entry point
# ---------------------------------------------------------------------------

def _mapped_bytes() -> int:
    try:
        with open("/proc/self/statm") as f:
            pages = int(f.read().split()[0])
        return pages * os.sysconf("SC_PAGE_SIZE")
    except (OSError, ValueError):
        return resource.getrusage(resource.RUSAGE_SELF).ru_maxrss * 1024


def limit_memory(memory_bytes: int) -> None:
    if resource is None:
        return
    _, hard = resource.getrlimit(resource.RLIMIT_AS)
    soft = _mapped_bytes() + memory_bytes
    if hard != resource.RLIM_INFINITY:
        soft = min(soft, hard)
    resource.setrlimit(resource.RLIMIT_AS, (soft, hard))


def run_isolated(conn, script: str, memory_bytes: int) -> None:
    host = HostLink(conn)
    try:
        script_globals = build_globals(host)
        limit_memory(memory_bytes)
        host.send("ready")

        compiled = compile_restricted_exec(script, filename=SCRIPT_FILENAME)
        if compiled.errors:
            host.send("fault", "compile", "; ".join(compiled.errors))
            return
        exec(compiled.code, script_globals)
    except MemoryError:
        host.send("fault", "memory", "Memory limit exceeded")
    except BridgeCallError as e:
        host.send("fault", "runtime", f"Bridge call failed: {e}")
    except Exception as e:  # anything the script raised
        host.send("fault", "runtime", f"{type(e).__name__}: {e}")
    else:
        host.send("done")
    finally:
        conn.close()
