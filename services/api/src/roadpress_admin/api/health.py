"""探针接口，位于准入中间件的公开前缀下。"""

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy import text
from sqlalchemy.orm import Session

from roadpress_admin.core.security import session_store_backend
from roadpress_admin.db.session import get_db
from roadpress_admin.schemas.common import ErrorResponse, SuccessResponse
from roadpress_admin.utils.response import success

router = APIRouter(prefix="/health", tags=["health"])


@router.get("/live", summary="存活探针", response_model=SuccessResponse[dict[str, str]])
def live(request: Request):
    return success(request, {"status": "ok"})


@router.get(
    "/ready",
    summary="就绪探针",
    description="数据库可查询即就绪；同时返回会话状态存放位置（redis / local）。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[dict[str, str]],
    responses={500: {"model": ErrorResponse}},
)
def ready(request: Request, db: Session = Depends(get_db)):
    db.execute(text("select 1"))
    return success(request, {"status": "ready", "session_store": session_store_backend()})
