"""Named serverless handlers, dispatched by the Flask app at /functions/<name>."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from peachhaus.errors import HandlerError


@dataclass(frozen=True)
class Handler:
    name: str
    func: Callable
    methods: tuple[str, ...] = ("POST",)


HANDLERS: dict[str, Handler] = {}


def handler(name: str, methods: tuple[str, ...] = ("POST",)):
    """Register ``func(c, body)`` under ``name``.

    The function receives an open database connection and the decoded JSON
    body (query args for GET). It returns a dict, a ``(dict, status)`` pair
    or a Flask response.
    """
    def register(func):
        if name in HANDLERS:
            raise ValueError(f"handler {name!r} registered twice")
        HANDLERS[name] = Handler(name, func, tuple(m.upper() for m in methods))
        return func
    return register


def require(body: dict, *keys: str):
    missing = [k for k in keys if body.get(k) in (None, "")]
    if missing:
        raise HandlerError(400, f"Missing required fields: {', '.join(missing)}")
