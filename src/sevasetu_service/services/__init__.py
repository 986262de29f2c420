"""Service layer components."""

from sevasetu_service.services.blob_store import BlobStore
from sevasetu_service.services.camp_manager import CampManager
from sevasetu_service.services.database import Database
from sevasetu_service.services.directory_manager import DirectoryManager
from sevasetu_service.services.ledger import Ledger
from sevasetu_service.services.notification_dispatcher import NotificationDispatcher
from sevasetu_service.services.payout_engine import PayoutEngine
from sevasetu_service.services.task_lifecycle import TaskLifecycle
from sevasetu_service.services.wallet_manager import WalletManager

__all__ = [
    "BlobStore",
    "CampManager",
    "Database",
    "DirectoryManager",
    "Ledger",
    "NotificationDispatcher",
    "PayoutEngine",
    "TaskLifecycle",
    "WalletManager",
]
