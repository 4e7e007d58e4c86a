"""
Shared building blocks: settings, logging, database wiring and errors.
"""
