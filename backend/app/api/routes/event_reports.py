"""Post-event report uploads (PDF only) for completed events."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.envelope import success_envelope
from app.api.routes.users import get_current_user
from app.api.uploads import form_files, store_uploads
from app.core.config import get_settings
from app.core.database import get_db
from app.domain.events.state_machine import EventStatus
from app.models.user import User
from app.services.event_workflow_service import event_workflow_service
from app.services.file_storage import PDF_MIMETYPE, REPORTS_CATEGORY, file_storage

router = APIRouter(prefix="/event-reports", tags=["Event Reports"])
settings = get_settings()

# Form field name -> report slot.
REPORT_FIELDS = {
    "completionReport": "completion_report",
    "postActivityReport": "post_activity_report",
    "assessmentReport": "assessment_report",
    "feedbackForm": "feedback_form",
}


@router.post("/{event_id}/upload")
async def upload_reports(
    event_id: int,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    event = await event_workflow_service.get_event(db, event_id)
    if event.created_by != current_user.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only the event creator can upload reports")
    if event.status != EventStatus.COMPLETED.value:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Reports can only be uploaded for completed events")

    form = await request.form()
    reports: dict[str, dict] = {}
    try:
        for field, slot in REPORT_FIELDS.items():
            uploads = form_files(form, field)[:1]
            if not uploads:
                continue
            [meta] = await store_uploads(
                uploads,
                category=REPORTS_CATEGORY,
                field=field,
                max_bytes=settings.upload_max_report_mb * 1024 * 1024,
                allowed_extensions={".pdf"},
                allowed_mimetypes={PDF_MIMETYPE},
            )
            reports[slot] = {**meta, "file_url": f"/uploads/{REPORTS_CATEGORY}/{meta['filename']}"}
        if not reports:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No report files were uploaded")

        event = await event_workflow_service.attach_reports(
            db,
            actor=current_user,
            event_id=event_id,
            reports=reports,
        )
    except Exception:
        for meta in reports.values():
            file_storage.remove(REPORTS_CATEGORY, meta["filename"])
        raise

    return success_envelope(
        {
            "uploaded_reports": sorted(reports),
            "event_reports": event.event_reports,
            "reports_status": event.reports_status,
        },
        message=f"Successfully uploaded {len(reports)} report(s)",
    )


@router.get("/{event_id}")
async def get_reports(
    event_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    event = await event_workflow_service.get_event(db, event_id)
    if event.created_by != current_user.id and not current_user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You are not authorized to view reports for this event",
        )
    return success_envelope(
        {
            "event_reports": event.event_reports or {},
            "reports_status": event.reports_status,
        }
    )
