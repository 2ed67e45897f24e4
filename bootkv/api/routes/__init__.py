from __future__ import annotations

from bootkv.api.routes.kv import router as kv_router

__all__ = ["kv_router"]
