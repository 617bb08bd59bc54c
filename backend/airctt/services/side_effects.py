# Overview: Runner for best-effort work (CRM touchpoints, analytics events) that must never fail the caller.

"""
Best-effort side effects.

Primary operations (redemption, order submit, payment confirm) commit
first and then hand follow-up writes to run_best_effort(). Those writes run
on a small thread pool with their own app context (or inline when
SIDE_EFFECTS_ASYNC is off, as in tests). A failure is logged, rolled back
and written to side_effect_failures; it is never raised to the caller.
"""

from __future__ import annotations

import threading
from concurrent.futures import Future, ThreadPoolExecutor

from flask import Flask, current_app

from ..extensions import db
from ..models import SideEffectFailure

_EXTENSION_KEY = "airctt.side_effects"
_executor_lock = threading.Lock()


def _get_executor(app: Flask) -> ThreadPoolExecutor:
    with _executor_lock:
        executor = app.extensions.get(_EXTENSION_KEY)
        if executor is None:
            executor = ThreadPoolExecutor(
                max_workers=app.config.get("SIDE_EFFECTS_MAX_WORKERS", 4),
                thread_name_prefix="side-effect",
            )
            app.extensions[_EXTENSION_KEY] = executor
        return executor


def shutdown(app: Flask, wait: bool = True) -> None:
    """Drain and stop the worker pool (CLI teardown, tests)."""
    with _executor_lock:
        executor = app.extensions.pop(_EXTENSION_KEY, None)
    if executor is not None:
        executor.shutdown(wait=wait)


def _json_safe(value):
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, dict):
        return {str(k): _json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_json_safe(v) for v in value]
    return str(value)


def _record_failure(name: str, args: tuple, kwargs: dict, exc: BaseException) -> None:
    try:
        db.session.add(SideEffectFailure(
            name=name,
            payload={"args": _json_safe(args), "kwargs": _json_safe(kwargs)},
            error=f"{type(exc).__name__}: {exc}",
        ))
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Could not record side effect failure for %s", name)


def _execute(name: str, func, args: tuple, kwargs: dict) -> bool:
    try:
        func(*args, **kwargs)
        db.session.commit()
        return True
    except Exception as exc:
        db.session.rollback()
        current_app.logger.exception("Best-effort side effect %s failed", name)
        _record_failure(name, args, kwargs, exc)
        return False


def _execute_in_context(app: Flask, name: str, func, args: tuple, kwargs: dict) -> bool:
    with app.app_context():
        return _execute(name, func, args, kwargs)


def run_best_effort(name: str, func, *args, **kwargs) -> Future | bool:
    """
    Run func(*args, **kwargs) and commit its writes, swallowing and
    recording any failure.

    Call only after the primary transaction has committed: inline mode
    shares the request's session.
    """
    app = current_app._get_current_object()
    if not app.config.get("SIDE_EFFECTS_ASYNC", True):
        return _execute(name, func, args, kwargs)
    return _get_executor(app).submit(_execute_in_context, app, name, func, args, kwargs)


def list_failures(name: str | None = None, limit: int = 100) -> list[dict]:
    q = db.session.query(SideEffectFailure)
    if name:
        q = q.filter_by(name=name)
    rows = q.order_by(SideEffectFailure.id.desc()).limit(limit).all()
    return [r.to_dict() for r in rows]
