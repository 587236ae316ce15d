# jobpush/core/dispatch/__init__.py
"""
Dispatch Layer — push notifications reacting to job changes.

- ``workers``   — fan-out to every available worker on job creation
- ``customers`` — single push to the job's customer on status change
- ``outcome``   — result value shared by both flows

Each call is self-contained: no state survives between invocations and
no failure escapes to the caller.
"""
