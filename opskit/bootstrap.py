# opskit/bootstrap.py
"""
Script runner and library loader.

``run_script`` is what ``opskit run`` and ``run_script.py`` call: it sets up
the process-wide cleanup scope first, then executes the target file as
``__main__`` with the remaining arguments in ``sys.argv``.
"""

from __future__ import annotations

import importlib
import importlib.util
import logging
import runpy
import sys
from pathlib import Path
from types import ModuleType
from typing import Iterable, Optional, Sequence

from .config import Settings
from .errors import LibraryNotFound, ScriptNotFound
from .scope import ResourceScope, init_scope

log = logging.getLogger(__name__)


def check_script(path: str | None) -> Path:
    if not path:
        raise ScriptNotFound("missing script path")
    p = Path(path)
    if not p.is_file():
        raise ScriptNotFound(f"not a regular file: {p}")
    return p


def run_script(path: str | None, args: Sequence[str] = (), *, scope: ResourceScope | None = None) -> dict:
    script = check_script(path)
    scope = scope or init_scope()
    log.debug("running %s %s (arena %s)", script, list(args), scope.arena)
    saved = sys.argv
    sys.argv = [str(script), *args]
    try:
        return runpy.run_path(str(script), run_name="__main__")
    finally:
        sys.argv = saved


def load_library(name: str, search_path: Optional[Iterable[Path]] = None) -> ModuleType:
    """
    Import ``opskit.<name>`` if bundled, otherwise ``<dir>/<name>.py`` from
    ``search_path`` (default: OPSKIT_LIB_PATH).
    """
    try:
        return importlib.import_module(f"{__package__}.{name}")
    except ModuleNotFoundError as e:
        if e.name != f"{__package__}.{name}":
            raise

    dirs = list(search_path) if search_path is not None else Settings.from_env().lib_path
    for d in dirs:
        candidate = Path(d) / f"{name}.py"
        if not candidate.is_file():
            continue
        mod_name = f"opskit_lib_{name}"
        if mod_name in sys.modules:
            return sys.modules[mod_name]
        spec = importlib.util.spec_from_file_location(mod_name, str(candidate))
        assert spec is not None and spec.loader is not None
        module = importlib.util.module_from_spec(spec)
        sys.modules[mod_name] = module
        try:
            spec.loader.exec_module(module)
        except BaseException:
            del sys.modules[mod_name]
            raise
        log.debug("loaded library %s from %s", name, candidate)
        return module

    searched = ", ".join(str(d) for d in dirs) or "<none>"
    raise LibraryNotFound(f"library '{name}' is not bundled and not found in: {searched}")
