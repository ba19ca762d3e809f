"""FastAPI 应用入口点。"""

from fastapi import FastAPI

from roadpress_admin.api import pages, public
from roadpress_admin.api.router import api_router
from roadpress_admin.core.config import get_settings
from roadpress_admin.core.logging import setup_logging
from roadpress_admin.exceptions import register_exception_handlers
from roadpress_admin.middlewares import register_middlewares

settings = get_settings()


def create_app() -> FastAPI:
    """创建并配置 FastAPI 应用实例。"""
    setup_logging()
    app = FastAPI(
        title=settings.app_name,
        version="1.0.0",
        debug=settings.app_debug,
        description=(
            "RoadPress 许可证管理后台接口。\n\n"
            "所有业务接口统一返回：`{request_id, data, meta}`。\n"
            "后台接口使用会话 Cookie 或 Bearer 会话令牌认证；"
            "插件接口使用许可证 API 令牌或 `license_key` 认证。"
        ),
        openapi_tags=[
            {"name": "health", "description": "服务存活与就绪探针。"},
            {"name": "auth", "description": "登录、登出与双因子认证。"},
            {"name": "admin", "description": "首个管理员引导。"},
            {"name": "licenses", "description": "许可证管理与插件许可证校验。"},
            {"name": "api-keys", "description": "第三方服务密钥管理与插件下发。"},
            {"name": "statistics", "description": "插件用量上报。"},
            {"name": "debug", "description": "调试日志查询与清理。"},
        ],
    )

    register_middlewares(app)
    register_exception_handlers(app)
    app.include_router(api_router, prefix=settings.api_prefix)
    app.include_router(public.router)
    app.include_router(pages.router)
    return app


app = create_app()
