"""Rate limiting adapters.

A small abstraction layer: limiters talk to a counter store interface, and
the only store today is the per-process in-memory one.
"""
