"""Rate limiting adapters.

A small abstraction layer so the per-IP token budget can move to a shared
store later without changing the service or API layers.
"""
