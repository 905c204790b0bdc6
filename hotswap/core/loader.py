"""Application loader — resolves an artifact's request handler from a file.

An artifact's entrypoint is a Python source file.  The loader executes it as
a fresh module and looks for a request-handling capability, in order:

1. ``app`` / ``application`` exposing a callable ``fetch`` attribute
   (fetch-style handler);
2. ``app`` / ``application`` that is itself callable (a WSGI application,
   e.g. a Flask app);
3. a module-level callable ``fetch`` (fetch-style handler).

A fetch-style handler takes a ``werkzeug`` ``Request`` and returns a
``Response``, a ``str``/``bytes`` body, or an awaitable resolving to one of
those.  ``FetchAdapter`` turns it into a WSGI application so the supervisor
only ever serves WSGI.
"""

from __future__ import annotations

import asyncio
import importlib.util
import inspect
import logging
import re
import sys
import uuid
from collections.abc import Callable, Iterable
from pathlib import Path
from types import ModuleType
from typing import Any

from werkzeug.wrappers import Request, Response

from hotswap.core.errors import AppLoadError

logger = logging.getLogger(__name__)

WSGIApp = Callable[[dict[str, Any], Callable[..., Any]], Iterable[bytes]]

_APP_ATTRIBUTES = ("app", "application")
_MODULE_PREFIX = "hotswap_artifact_"


class FetchAdapter:
    """Expose a fetch-style handler as a WSGI application.

    Handler exceptions are logged and answered with a plain
    ``500 Internal Server Error``; they never reach the server loop.
    """

    def __init__(self, fetch: Callable[[Request], Any], *, name: str = "fetch") -> None:
        self._fetch = fetch
        self._name = name

    def __call__(self, environ: dict[str, Any], start_response: Callable[..., Any]) -> Iterable[bytes]:
        request = Request(environ)
        try:
            response = self._to_response(self._fetch(request))
        except Exception:
            logger.exception("Application error in %s handling %s %s",
                             self._name, request.method, request.path)
            response = Response("Internal Server Error", status=500, mimetype="text/plain")
        return response(environ, start_response)

    @staticmethod
    def _to_response(result: Any) -> Response:
        if inspect.isawaitable(result):
            result = asyncio.run(_await(result))
        if isinstance(result, Response):
            return result
        if isinstance(result, (str, bytes)):
            return Response(result)
        raise TypeError(
            f"fetch handler returned {type(result).__name__}, expected a Response"
        )


async def _await(awaitable: Any) -> Any:
    return await awaitable


def module_name_for(version: str) -> str:
    """Return a unique ``sys.modules`` key for an artifact of *version*."""
    slug = re.sub(r"\W", "_", version)
    return f"{_MODULE_PREFIX}{slug}_{uuid.uuid4().hex[:8]}"


def load_module(path: Path, module_name: str) -> ModuleType:
    """Execute the source file at *path* as a new module.

    The file's directory is placed at the front of ``sys.path`` while the
    module executes so it can import its sibling modules.

    Raises
    ------
    AppLoadError
        If the file cannot be imported.
    """
    spec = importlib.util.spec_from_file_location(module_name, path)
    if spec is None or spec.loader is None:
        raise AppLoadError(f"Cannot load {path} as a Python module")

    module = importlib.util.module_from_spec(spec)
    search_dir = str(path.parent)
    sys.modules[module_name] = module
    sys.path.insert(0, search_dir)
    try:
        spec.loader.exec_module(module)
    except Exception as exc:
        sys.modules.pop(module_name, None)
        raise AppLoadError(f"Failed to import {path}: {exc}") from exc
    finally:
        try:
            sys.path.remove(search_dir)
        except ValueError:
            pass
    return module


def resolve_handler(module: ModuleType) -> WSGIApp:
    """Find the request-handling capability exposed by *module*.

    Raises
    ------
    AppLoadError
        If the module exposes neither a WSGI application nor a fetch handler.
    """
    for attr in _APP_ATTRIBUTES:
        candidate = getattr(module, attr, None)
        if candidate is None:
            continue
        fetch = getattr(candidate, "fetch", None)
        if callable(fetch):
            return FetchAdapter(fetch, name=f"{module.__name__}.{attr}.fetch")
        if callable(candidate):
            return candidate

    fetch = getattr(module, "fetch", None)
    if callable(fetch):
        return FetchAdapter(fetch, name=f"{module.__name__}.fetch")

    raise AppLoadError(
        f"Module {module.__file__} exposes no request handler "
        f"(expected 'app', 'application' or 'fetch')"
    )


def unload_modules(root: Path) -> int:
    """Evict every module whose source file lives under *root*.

    Returns the number of modules removed from ``sys.modules``.
    """
    root = root.resolve()
    stale = []
    for name, module in list(sys.modules.items()):
        file = getattr(module, "__file__", None)
        if not file:
            continue
        try:
            Path(file).resolve().relative_to(root)
        except ValueError:
            continue
        stale.append(name)
    for name in stale:
        sys.modules.pop(name, None)
    if stale:
        logger.debug("Unloaded %d module(s) from %s", len(stale), root)
    return len(stale)
