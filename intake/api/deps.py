"""Shared API dependencies: services from the app's container."""

from fastapi import HTTPException, Request

from intake.core.container import ServiceContainer
from intake.services.application_service import ApplicationService
from intake.services.cache_service import CacheService
from intake.services.mail_service import MailService
from intake.services.sheet_export_service import SheetExportService
from intake.services.user_service import UserService
from intake.sync.scheduler import SyncScheduler


def get_container(request: Request) -> ServiceContainer:
    container: ServiceContainer = request.app.state.container
    return container


def get_user_service(request: Request) -> UserService:
    return get_container(request).users


def get_application_service(request: Request) -> ApplicationService:
    return get_container(request).applications


def get_cache_service(request: Request) -> CacheService:
    return get_container(request).cache


def get_mail_service(request: Request) -> MailService:
    return get_container(request).mail


def get_exporter(request: Request) -> SheetExportService:
    exporter = get_container(request).exporter
    if exporter is None:
        raise HTTPException(status_code=503, detail="Spreadsheet export is not configured")
    return exporter


def get_scheduler(request: Request) -> SyncScheduler:
    scheduler = get_container(request).scheduler
    if scheduler is None:
        raise HTTPException(status_code=503, detail="Sheet sync is not configured")
    return scheduler
