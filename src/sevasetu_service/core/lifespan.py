"""Application lifecycle management."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from sevasetu_service.clients.notification_client import NotificationClient
from sevasetu_service.config import get_settings
from sevasetu_service.core.state import init_app_state
from sevasetu_service.logging import get_logger, setup_logging
from sevasetu_service.services.blob_store import BlobStore
from sevasetu_service.services.camp_manager import CampManager
from sevasetu_service.services.database import Database
from sevasetu_service.services.directory_manager import DirectoryManager
from sevasetu_service.services.directory_store import DirectoryStore
from sevasetu_service.services.ledger import Ledger
from sevasetu_service.services.notification_dispatcher import NotificationDispatcher
from sevasetu_service.services.notification_inbox import NotificationInbox
from sevasetu_service.services.payout_engine import PayoutEngine
from sevasetu_service.services.task_lifecycle import TaskLifecycle
from sevasetu_service.services.task_store import TaskStore
from sevasetu_service.services.wallet_manager import WalletManager

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from fastapi import FastAPI

    from sevasetu_service.services.notification_dispatcher import NotificationSink


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    """Manage application lifecycle."""
    # === STARTUP ===
    settings = get_settings()

    setup_logging(settings.logging.level, settings.service.name, settings.logging.directory)
    logger = get_logger(__name__)

    state = init_app_state()

    database = Database(settings.database.path)
    state.database = database

    ledger = Ledger(database)
    directory_store = DirectoryStore(database)
    task_store = TaskStore(database)
    payout_engine = PayoutEngine(ledger)

    blob_store = BlobStore(
        root_path=settings.storage.path,
        max_file_size=settings.storage.max_file_size,
        max_files_per_request=settings.storage.max_files_per_request,
    )
    state.blob_store = blob_store

    # Inbox mode keeps notifications in the database; http mode relays them
    sink: NotificationSink
    if settings.notifications.mode == "http":
        sink = NotificationClient(
            base_url=str(settings.notifications.base_url),
            notify_path=str(settings.notifications.notify_path),
            timeout_seconds=int(settings.notifications.timeout_seconds or 0),
        )
    else:
        inbox = NotificationInbox(database)
        state.inbox = inbox
        sink = inbox

    dispatcher = NotificationDispatcher(sink, directory_store.list_admin_ids)
    state.dispatcher = dispatcher

    directory = DirectoryManager(database, directory_store, ledger, dispatcher)
    state.directory = directory
    for admin in settings.bootstrap.admins:
        directory.ensure_admin(admin.user_id, admin.name)

    state.task_lifecycle = TaskLifecycle(
        database=database,
        store=task_store,
        directory=directory_store,
        payout_engine=payout_engine,
        blob_store=blob_store,
        dispatcher=dispatcher,
    )
    state.wallet_manager = WalletManager(database, ledger, dispatcher)
    state.camp_manager = CampManager(database, directory_store, payout_engine, dispatcher)

    logger.info(
        "Service starting",
        extra={
            "service": settings.service.name,
            "version": settings.service.version,
            "port": settings.server.port,
            "db_path": settings.database.path,
            "storage_path": settings.storage.path,
            "notifications_mode": settings.notifications.mode,
        },
    )

    yield  # Application runs here

    # === SHUTDOWN ===
    logger.info("Service shutting down", extra={"uptime_seconds": state.uptime_seconds})

    await dispatcher.close()
    database.close()
