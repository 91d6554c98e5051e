"""
Application Routes

POST /application - Submit or update a department application
POST /send-thankyou-mail - Queue the "application received" email
"""

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from fastapi.responses import JSONResponse

from intake.api.deps import get_application_service, get_mail_service
from intake.schemas.schemas import ApplicationSubmit, ApplicationResult, MessageResponse, ThankYouMail
from intake.services.application_service import ApplicationService, CREATED, UNCHANGED
from intake.services.mail_service import MailService

router = APIRouter(tags=["Applications"])


@router.post("/application", response_model=ApplicationResult)
async def save_application(
    data: ApplicationSubmit,
    applications: ApplicationService = Depends(get_application_service)
):
    """
    Save an application.

    - 201 "Application saved" on the first submission for a department
    - 200 "No changes detected" when the answers are identical (no write)
    - 200 "Application updated" otherwise
    """
    status, app = applications.submit(data.model_dump())
    if status == CREATED:
        result = ApplicationResult(
            message="Application saved", lastHash=app["lastHash"], lastUpdated=app["lastUpdated"]
        )
        return JSONResponse(status_code=201, content=result.model_dump(mode="json"))
    if status == UNCHANGED:
        return ApplicationResult(message="No changes detected", lastHash=app.get("lastHash"))
    return ApplicationResult(
        message="Application updated", lastHash=app["lastHash"], lastUpdated=app["lastUpdated"]
    )


@router.post("/send-thankyou-mail", response_model=MessageResponse)
async def send_thankyou_mail(
    data: ThankYouMail,
    background_tasks: BackgroundTasks,
    mail: MailService = Depends(get_mail_service)
):
    """Send the confirmation email after the response has gone out."""
    if not data.email or not data.name:
        raise HTTPException(status_code=400, detail="Email and name are required")
    background_tasks.add_task(mail.send_quietly, data.email, data.name)
    return MessageResponse(message="Mail queued")
