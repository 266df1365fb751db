"""Run correlation IDs for tracing one preview or import call through the logs.

Each call into the preview builder or the batch importer gets a short run id
stored in a context variable, so log lines emitted by the parser, expander
and collaborators during that call can be correlated even when several calls
interleave on one event loop.
"""

import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar

# Uses contextvars for async-safe propagation across awaits
run_id_var: ContextVar[str] = ContextVar("import_run_id", default="")


def new_run_id() -> str:
    """Generate a short run identifier."""
    return uuid.uuid4().hex[:12]


def get_run_id() -> str:
    """Get the current run correlation ID.

    Returns:
        Current run ID, or "no-run-id" outside of a preview/import call
    """
    run_id = run_id_var.get()
    return run_id if run_id else "no-run-id"


@contextmanager
def import_run(run_id: str | None = None) -> Iterator[str]:
    """Bind a run ID for the duration of a ``with`` block.

    An already-bound run ID is reused so nested calls (e.g. a URL preview
    that delegates to the ICS preview) log under one id.
    """
    existing = run_id_var.get()
    if existing and run_id is None:
        yield existing
        return

    token = run_id_var.set(run_id or new_run_id())
    try:
        yield run_id_var.get()
    finally:
        run_id_var.reset(token)
