"""路由模块导出集合。"""

from . import admin, api_keys, auth, debug, health, licenses, pages, public, statistics

__all__ = [
    "admin",
    "api_keys",
    "auth",
    "debug",
    "health",
    "licenses",
    "pages",
    "public",
    "statistics",
]
