"""Shared SQLite job queue for social content generation.

Workers coordinate only through conditional UPDATEs on the ``social_jobs``
table: claim is guarded by ``status = 'queued'``, finalize by ``status =
'running' AND locked_by = <worker>``. Any number of worker processes can run
against the same database file without a broker or a coordinator.
"""
