"""
Service container.

Backend clients (MongoDB, Google Sheets) are created once at startup and
handed to the services that need them. Tests build a container around
in-memory collections and a fake sheets client instead.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from pymongo.database import Database

from intake.core.config import Settings
from intake.db.mongodb import COLLECTIONS, get_mongo_db, init_mongo_indexes
from intake.services.application_service import ApplicationService
from intake.services.cache_service import APPLICATIONS, USERS, CacheService, KeyValueCache
from intake.services.checkpoint_service import CheckpointService
from intake.services.mail_service import MailService
from intake.services.sheet_export_service import SheetExportService
from intake.services.user_service import UserService
from intake.sheets.client import SheetsClient
from intake.sync.engine import SyncEngine
from intake.sync.scheduler import SyncScheduler

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    settings: Settings
    db: Database
    users: UserService
    applications: ApplicationService
    cache: CacheService
    mail: MailService
    checkpoints: CheckpointService
    sync_engine: Optional[SyncEngine] = None
    scheduler: Optional[SyncScheduler] = None
    exporter: Optional[SheetExportService] = None

    @classmethod
    def build(
        cls,
        settings: Settings,
        db: Database = None,
        sheets: SheetsClient = None,
        export_sheets: SheetsClient = None,
    ) -> "ServiceContainer":
        """
        Wire every service. Sheets-backed services are left out when no
        spreadsheet is configured.
        """
        if db is None:
            db = get_mongo_db()
        init_mongo_indexes(db)

        users = db[COLLECTIONS["users"]]
        applications = db[COLLECTIONS["applications"]]
        user_service = UserService(users)

        container = cls(
            settings=settings,
            db=db,
            users=user_service,
            applications=ApplicationService(applications, users),
            cache=CacheService(
                KeyValueCache(db[COLLECTIONS["cache"]]),
                users,
                applications,
                ttl_seconds={
                    USERS: settings.cache_users_ttl_seconds,
                    APPLICATIONS: settings.cache_applications_ttl_seconds,
                },
            ),
            mail=MailService(settings, user_service),
            checkpoints=CheckpointService(db[COLLECTIONS["sync_config"]]),
        )

        if sheets is None and settings.spreadsheet_id:
            sheets = SheetsClient.from_settings(settings)
        if sheets is None:
            logger.warning("SPREADSHEET_ID not set, sheet sync and export are disabled")
            return container

        container.sync_engine = SyncEngine(
            users,
            applications,
            sheets,
            container.checkpoints,
            unparseable_policy=settings.sync_unparseable_timestamp_policy,
        )
        container.scheduler = SyncScheduler(container.sync_engine, settings.sync_interval_minutes)

        if export_sheets is None:
            if settings.export_spreadsheet == sheets.spreadsheet_id:
                export_sheets = sheets
            else:
                export_sheets = SheetsClient.from_settings(settings, settings.export_spreadsheet)
        container.exporter = SheetExportService(export_sheets, users, settings.export_sheet_name)
        return container
