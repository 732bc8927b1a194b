"""Multi-agent orchestration core for content generation.

Why not a task queue?
~~~~~~~~~~~~~~~~~~~~~
Everything here runs inside one process on one event loop. Workers are
in-memory records that hold at most one task, routing is a capability match
against the registry, and every generation request walks an ordered chain of
text-generation backends that ends in a deterministic mock. There is nothing
to persist between runs and nothing to coordinate across machines, so a
broker would add an operational dependency without removing any of the
routing, fallback or context-budgeting logic.
"""
