"""
Work Item Module
================

Lifecycle, SLA and audit tracking for tickets and alerts.

Both kinds share one model of a work item: a status machine with guarded
transitions, an SLA deadline classified at read time, and an append-only
history of every mutation.
"""
