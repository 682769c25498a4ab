"""Process-wide hooks shared between ``main`` and the modular routers.

``main`` registers the connection factory and the session resolver at import
time; repositories and routes look them up lazily so they can be imported,
and tested, without the application module.
"""
from __future__ import annotations

from typing import Any, Callable, Dict

_hooks: Dict[str, Callable[..., Any]] = {}


def configure(
    *,
    get_conn: Callable[[], Any],
    get_current_user: Callable[..., Any],
) -> None:
    _hooks.update(get_conn=get_conn, get_current_user=get_current_user)


def reset() -> None:
    _hooks.clear()


def _hook(name: str) -> Callable[..., Any]:
    try:
        return _hooks[name]
    except KeyError:
        raise RuntimeError(f"Application context has not been configured yet: {name}") from None


def get_conn() -> Any:
    return _hook("get_conn")()


def get_current_user(*args: Any, **kwargs: Any) -> Any:
    return _hook("get_current_user")(*args, **kwargs)
