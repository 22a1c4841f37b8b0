from fastapi import APIRouter, Depends

from database import get_db
from models.report import ReportCreate
from utils.security import get_current_user
from utils.report_service import create_report, list_reports_for_reporter, get_report
from utils.serializers import serialize_report

router = APIRouter(
    prefix="/reports",
    tags=["Reports"]
)


# -------------------------------------------------
# SUBMIT REPORT (ANY AUTHENTICATED USER)
# -------------------------------------------------

@router.post("", status_code=201)
async def submit_report(
    data: ReportCreate,
    user=Depends(get_current_user),
    db=Depends(get_db),
):
    report = await create_report(
        db,
        None if data.anonymous else user["_id"],
        data.target_type,
        data.target_id,
        data.reason,
        data.description,
    )
    return {
        "message": "Report submitted successfully",
        "report": serialize_report(report),
    }


@router.get("/mine")
async def my_reports(
    user=Depends(get_current_user),
    db=Depends(get_db),
):
    reports = await list_reports_for_reporter(db, user["_id"])
    return {"count": len(reports), "reports": [serialize_report(r) for r in reports]}


@router.get("/{report_id}")
async def report_detail(
    report_id: str,
    user=Depends(get_current_user),
    db=Depends(get_db),
):
    report = await get_report(db, user, report_id)
    return serialize_report(report)
