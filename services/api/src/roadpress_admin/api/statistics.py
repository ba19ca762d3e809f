"""插件用量上报接口。"""

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from roadpress_admin.db.session import get_db
from roadpress_admin.models.enums import LogCategory, StatChannel
from roadpress_admin.models.license import License, UsageStat
from roadpress_admin.schemas.common import ErrorResponse, SuccessResponse
from roadpress_admin.schemas.license import UsageStatsData, UsageStatsRequest
from roadpress_admin.services.debug_log import record_debug_log
from roadpress_admin.services.plugin_auth import require_plugin_license
from roadpress_admin.utils.response import success

router = APIRouter(prefix="/statistics", tags=["statistics"])


@router.post(
    "/update-stats",
    summary="插件上报邮件/短信用量",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[UsageStatsData],
    responses={401: {"model": ErrorResponse}, 403: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
def update_stats(
    payload: UsageStatsRequest,
    request: Request,
    license_row: License = Depends(require_plugin_license),
    db: Session = Depends(get_db),
):
    """按渠道写入用量记录；短信条数为 0 的国家忽略。"""
    rows: list[UsageStat] = []
    if payload.email_stats is not None:
        rows.append(UsageStat(license_id=license_row.id, channel=StatChannel.EMAIL, count=payload.email_stats))
    rows.extend(
        UsageStat(license_id=license_row.id, channel=StatChannel.SMS, country=item.country.upper(), count=item.sms_count)
        for item in payload.sms_stats
        if item.sms_count > 0
    )
    db.add_all(rows)
    record_debug_log(
        db, request, category=LogCategory.STATS, action="STATS_UPDATE",
        request_data={"email": payload.email_stats, "sms_countries": len(payload.sms_stats)},
        license_id=license_row.id, client_name=license_row.client_name,
    )
    db.commit()
    return success(request, {"recorded": len(rows)})
