"""Server-side kanban ordering engine.

This package provides the task model, the file-backed board store, the
membership gate and the order commit service that persists column order.
"""
