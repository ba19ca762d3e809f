"""顶层路由注册。"""

from fastapi import APIRouter

from . import admin, api_keys, auth, debug, health, licenses, statistics

api_router = APIRouter()

# 固定注册顺序，便于在线接口文档展示和问题定位。
api_router.include_router(health.router)
api_router.include_router(auth.router)
api_router.include_router(admin.router)
api_router.include_router(licenses.router)
api_router.include_router(api_keys.router)
api_router.include_router(statistics.router)
api_router.include_router(debug.router)
