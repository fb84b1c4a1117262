"""Restricted Python context for the fallback path.

Run as a standalone script (``python -I _restricted_worker.py``) with a JSON
request on stdin:

    {"code": "...", "sleep_cap": 1.0, "memory_limit_mb": 256, "cpu_seconds": 6}

Guest output goes straight to this process's stdout/stderr so the parent
can stream it. Only the standard library and RestrictedPython are
imported: this file must run without the runbox package being importable.

Restrictions:
    - source compiled with RestrictedPython's compile_restricted, so
      underscore names and attributes are rejected before anything runs
    - attribute reads go through safer_getattr; reaching a module object
      through an attribute is refused
    - builtins and imports are allowlists
    - ``time`` resolves to a shim whose sleep() is clamped
    - RLIMIT_AS and RLIMIT_CPU applied before guest code runs
"""

from __future__ import annotations

import json
import operator
import sys
import time
import traceback
import types
import warnings
from typing import Any

try:
    import resource  # POSIX only
except ImportError:  # pragma: no cover - platform specific
    resource = None

from RestrictedPython import compile_restricted, safe_builtins
from RestrictedPython.Guards import (
    full_write_guard,
    guarded_iter_unpack_sequence,
    guarded_unpack_sequence,
    safer_getattr,
)

# Added on top of RestrictedPython's safe_builtins
EXTRA_BUILTINS = frozenset(
    {
        "all",
        "any",
        "dict",
        "enumerate",
        "filter",
        "format",
        "frozenset",
        "iter",
        "list",
        "map",
        "max",
        "min",
        "next",
        "reversed",
        "set",
        "sum",
    }
)

# Removed from safe_builtins: guest classes opt out of the write guard
REMOVED_BUILTINS = frozenset({"setattr", "delattr"})

ALLOWED_IMPORTS = frozenset(
    {
        "bisect",
        "cmath",
        "collections",
        "datetime",
        "decimal",
        "fractions",
        "functools",
        "heapq",
        "itertools",
        "math",
        "random",
        "re",
        "statistics",
        "time",
    }
)

_INPLACE_OPERATORS = {
    "+=": operator.iadd,
    "-=": operator.isub,
    "*=": operator.imul,
    "/=": operator.itruediv,
    "//=": operator.ifloordiv,
    "%=": operator.imod,
    "**=": operator.ipow,
    "<<=": operator.ilshift,
    ">>=": operator.irshift,
    "&=": operator.iand,
    "^=": operator.ixor,
    "|=": operator.ior,
    "@=": operator.imatmul,
}


def _set_limits(memory_limit_mb: int, cpu_seconds: int) -> None:
    if resource is None:
        return
    mem_bytes = int(memory_limit_mb) * 1024 * 1024
    for limit, value in ((resource.RLIMIT_AS, mem_bytes), (resource.RLIMIT_CPU, int(cpu_seconds))):
        try:
            _, hard = resource.getrlimit(limit)
            target = value if hard in (-1, resource.RLIM_INFINITY) else min(value, hard)
            resource.setrlimit(limit, (target, target))
        except (ValueError, OSError) as exc:
            print(f"runbox: limit not applied: {exc}", file=sys.stderr)


def _clamped_time_module(sleep_cap: float) -> types.SimpleNamespace:
    def sleep(seconds: float) -> None:
        time.sleep(max(0.0, min(float(seconds), sleep_cap)))

    return types.SimpleNamespace(
        sleep=sleep,
        time=time.time,
        monotonic=time.monotonic,
        perf_counter=time.perf_counter,
        time_ns=time.time_ns,
    )


def _safe_import_factory(time_shim: types.SimpleNamespace):
    def _safe_import(name, globals=None, locals=None, fromlist=(), level=0):
        if level != 0:
            raise ImportError("Relative imports are not allowed")
        root = name.split(".")[0]
        if root not in ALLOWED_IMPORTS:
            raise ImportError(f"Import '{name}' is not allowed in fallback mode")
        if root == "time":
            return time_shim
        return __import__(name, globals, locals, fromlist, level)

    return _safe_import


def _guarded_getattr(obj: Any, name: str, default: Any = None) -> Any:
    """safer_getattr that also refuses to hand out module objects.

    Allowed modules import others (``json.codecs`` and the like); walking
    into those would bypass the import allowlist.
    """
    value = safer_getattr(obj, name, default)
    if isinstance(value, types.ModuleType):
        raise AttributeError(f"Access to module '{value.__name__}' is not allowed in fallback mode")
    return value


def _inplacevar(op: str, target: Any, value: Any) -> Any:
    return _INPLACE_OPERATORS[op](target, value)


def _apply(func, *args, **kwargs):
    return func(*args, **kwargs)


def _guest_class(name, bases, namespace, **kwargs):
    """``__metaclass__`` for guest class statements.

    Marks the class as handling its own writes so ``self.x = ...`` works.
    Underscore attribute names are still rejected at compile time.
    """
    namespace["_guarded_writes"] = True
    return type(name, bases, namespace, **kwargs)


class _StreamingPrint:
    """``_print_`` hook: guest print() writes straight to stdout.

    RestrictedPython's PrintCollector buffers until the end of the run;
    the parent streams output instead.
    """

    def __init__(self, _getattr_=None) -> None:
        self._getattr_ = _getattr_

    def _call_print(self, *objects, **kwargs) -> None:
        if kwargs.get("file") is None:
            kwargs["file"] = sys.stdout
        else:
            self._getattr_(kwargs["file"], "write")
        print(*objects, **kwargs)

    def __call__(self) -> str:
        # ``printed`` is always empty: nothing is collected
        return ""


def _build_safe_builtins(safe_import) -> dict[str, Any]:
    builtins_obj = __builtins__
    if not isinstance(builtins_obj, dict):
        builtins_obj = builtins_obj.__dict__

    safe = {name: value for name, value in safe_builtins.items() if name not in REMOVED_BUILTINS}
    for name in EXTRA_BUILTINS:
        safe[name] = builtins_obj[name]
    safe["getattr"] = _guarded_getattr
    safe["__import__"] = safe_import
    return safe


def _build_globals(sleep_cap: float) -> dict[str, Any]:
    time_shim = _clamped_time_module(sleep_cap)
    return {
        "__builtins__": _build_safe_builtins(_safe_import_factory(time_shim)),
        "__name__": "__main__",
        "__metaclass__": _guest_class,
        "_print_": _StreamingPrint,
        "_getattr_": _guarded_getattr,
        "_getitem_": operator.getitem,
        "_getiter_": iter,
        "_write_": full_write_guard,
        "_iter_unpack_sequence_": guarded_iter_unpack_sequence,
        "_unpack_sequence_": guarded_unpack_sequence,
        "_inplacevar_": _inplacevar,
        "_apply_": _apply,
    }


def _compile(code: str):
    # compile_restricted reports every problem at once as a tuple of lines
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", SyntaxWarning)
        return compile_restricted(code, "<guest>", "exec")


def main() -> int:
    request = json.loads(sys.stdin.read() or "{}")
    code: str = request.get("code", "")
    sleep_cap = float(request.get("sleep_cap", 1.0))
    memory_limit_mb = int(request.get("memory_limit_mb", 256))
    cpu_seconds = int(request.get("cpu_seconds", 6))

    try:
        byte_code = _compile(code)
    except SyntaxError as exc:
        details = exc.msg if isinstance(exc.msg, (tuple, list)) else (str(exc),)
        print("SyntaxError: " + "\n".join(str(line) for line in details), file=sys.stderr)
        return 1

    exec_globals = _build_globals(sleep_cap)

    _set_limits(memory_limit_mb, cpu_seconds)

    try:
        exec(byte_code, exec_globals, exec_globals)
    except SystemExit as exc:
        return exc.code if isinstance(exc.code, int) else 1
    except MemoryError:
        print("MemoryError: memory limit exceeded", file=sys.stderr)
        return 2
    except BaseException as exc:  # noqa: BLE001 - report any guest failure
        # Drop this module's frame so the traceback starts at guest code
        tb = exc.__traceback__.tb_next if exc.__traceback__ is not None else None
        traceback.print_exception(type(exc), exc, tb, file=sys.stderr)
        return 1
    finally:
        sys.stdout.flush()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
