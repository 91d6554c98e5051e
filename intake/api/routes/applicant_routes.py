"""
Applicant Admin Routes

GET /applicants/users - All users (cached snapshot)
GET /applicants/applications - All applications with user details (cached snapshot)
POST /applicants/send-unfilled-emails - Email a list of users, one outcome per user

Both GET endpoints take ?format=json|ndjson and send a gzip body when the
client's Accept-Encoding allows it.
"""

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response

from intake.api.deps import get_cache_service, get_mail_service
from intake.schemas.schemas import BatchResponse, ExportFormat, UserBatch
from intake.services.cache_service import APPLICATIONS, USERS, CacheService
from intake.services.mail_service import MailService

router = APIRouter(prefix="/applicants", tags=["Applicants"])


def accepts_gzip(request: Request) -> bool:
    header = request.headers.get("accept-encoding", "")
    for part in header.split(","):
        coding, _, params = part.partition(";")
        if coding.strip().lower() != "gzip":
            continue
        params = params.replace(" ", "")
        if params.startswith("q="):
            # "gzip;q=0" means the client refuses gzip
            try:
                return float(params[2:]) > 0
            except ValueError:
                return False
        return True
    return False


def cached_response(resource: str, fmt: ExportFormat, request: Request, cache: CacheService) -> Response:
    payload = cache.get(resource, fmt.value, accept_gzip=accepts_gzip(request))
    headers = {
        "X-Cache": "HIT" if payload.hit else "MISS",
        "Vary": "Accept-Encoding",
    }
    if payload.gzipped:
        headers["Content-Encoding"] = "gzip"
    return Response(content=payload.body, media_type=payload.media_type, headers=headers)


@router.get("/users")
async def get_users(
    request: Request,
    fmt: ExportFormat = Query(ExportFormat.json, alias="format"),
    cache: CacheService = Depends(get_cache_service)
):
    """All users, newest first. May lag the database by up to the cache TTL."""
    return cached_response(USERS, fmt, request, cache)


@router.get("/applications")
async def get_applications(
    request: Request,
    fmt: ExportFormat = Query(ExportFormat.json, alias="format"),
    cache: CacheService = Depends(get_cache_service)
):
    """All applications, most recently updated first, with `userDetails` attached."""
    return cached_response(APPLICATIONS, fmt, request, cache)


@router.post("/send-unfilled-emails", response_model=BatchResponse)
async def send_unfilled_emails(data: UserBatch, mail: MailService = Depends(get_mail_service)):
    """Email each user; a failed send is reported for that user only."""
    if not data.users:
        raise HTTPException(status_code=400, detail="No users provided")
    results = mail.send_unfilled_emails(data.users)
    return BatchResponse(success=True, results=results)
