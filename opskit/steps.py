# opskit/steps.py
"""
Ordered step runner.

Steps are registered under ``<prefix>::<name>`` keys and run in byte-wise
lexical order of the full key, so numbering names (``10-users``,
``20-packages``) fixes the order independently of registration order.

    steps = StepRegistry()

    @steps.step("setup")
    def a_packages(settings):
        ...

    steps.run("setup", settings=settings).raise_for_failure()
"""

from __future__ import annotations

import inspect
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from .errors import StepError

log = logging.getLogger(__name__)

SEP = "::"


def _filter_kwargs(func: Any, kwargs: dict[str, Any]) -> dict[str, Any]:
    """
    Keep only kwargs present in the called function's signature, so each
    step declares just the context it needs.
    """
    try:
        sig = inspect.signature(func)
    except (TypeError, ValueError):
        return {}
    if any(p.kind is inspect.Parameter.VAR_KEYWORD for p in sig.parameters.values()):
        return dict(kwargs)
    return {k: v for k, v in kwargs.items() if k in sig.parameters}


def _sort_key(name: str) -> bytes:
    return name.encode("utf-8")


@dataclass
class StepResult:
    name: str
    ok: bool
    duration: float
    error: Optional[BaseException] = None


@dataclass
class StepReport:
    prefix: str
    start: Optional[str] = None
    results: List[StepResult] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return all(r.ok for r in self.results)

    @property
    def names(self) -> List[str]:
        return [r.name for r in self.results]

    @property
    def failures(self) -> List[StepResult]:
        return [r for r in self.results if not r.ok]

    def raise_for_failure(self) -> None:
        for r in self.results:
            if not r.ok:
                raise StepError(f"step {r.name} failed: {r.error}") from r.error


class StepRegistry:
    def __init__(self) -> None:
        self._steps: Dict[str, Callable[..., Any]] = {}

    def register(self, prefix: str, name: str, func: Callable[..., Any]) -> Callable[..., Any]:
        key = f"{prefix}{SEP}{name}"
        if key in self._steps:
            raise StepError(f"step already registered: {key}")
        self._steps[key] = func
        return func

    def step(self, prefix: str, name: str | None = None):
        """Decorator form of ``register``; the name defaults to the function's."""

        def deco(func: Callable[..., Any]) -> Callable[..., Any]:
            return self.register(prefix, name or func.__name__, func)

        return deco

    def names(self, prefix: str, start: str | None = None) -> List[str]:
        head = f"{prefix}{SEP}"
        keys = sorted((k for k in self._steps if k.startswith(head)), key=_sort_key)
        if start is not None:
            floor = _sort_key(f"{head}{start}")
            keys = [k for k in keys if _sort_key(k) >= floor]
        return keys

    def run(
        self, prefix: str, start: str | None = None, *args: Any, fail_fast: bool = True, **context: Any
    ) -> StepReport:
        """
        Run every step under ``prefix`` in key order. Positional ``args`` go
        to every step unchanged; ``context`` kwargs are narrowed to the names
        each step declares.
        """
        if start is not None:
            log.warning("[STEPS] %s: starting at %s%s%s", prefix, prefix, SEP, start)
        report = StepReport(prefix=prefix, start=start)
        for key in self.names(prefix, start):
            func = self._steps[key]
            log.info("[STEP] %s", key)
            t0 = time.monotonic()
            try:
                func(*args, **_filter_kwargs(func, context))
            except Exception as e:
                elapsed = time.monotonic() - t0
                log.error("[STEP] %s failed after %.1fs: %s", key, elapsed, e)
                report.results.append(StepResult(key, False, elapsed, e))
                if fail_fast:
                    break
                continue
            report.results.append(StepResult(key, True, time.monotonic() - t0))
        return report

    def run_step(self, key: str, *args: Any, **context: Any) -> Any:
        """Dispatch a single step by its full ``prefix::name`` key."""
        func = self._steps.get(key)
        if func is None:
            valid = ", ".join(sorted(self._steps, key=_sort_key))
            raise StepError(f"Unknown step '{key}'. Valid: {valid}")
        log.info("[STEP] %s", key)
        return func(*args, **_filter_kwargs(func, context))

    def __contains__(self, key: str) -> bool:
        return key in self._steps

    def __len__(self) -> int:
        return len(self._steps)
