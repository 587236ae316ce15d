# jobpush/core/handlers/__init__.py
"""
Trigger handlers.

Maps store change events (``jobs.created``, ``jobs.updated``) to the
dispatch functions. The hosting runtime, or the HTTP adapter in
``jobpush.transport.http_app``, builds a ``ChangeEvent`` and calls
``TriggerRegistry.dispatch``.
"""
from jobpush.core.handlers.registry import (
    ChangeEvent,
    TriggerContext,
    TriggerRegistry,
    build_default_registry,
)

__all__ = [
    "ChangeEvent",
    "TriggerContext",
    "TriggerRegistry",
    "build_default_registry",
]
