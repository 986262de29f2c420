"""Shared test helpers: a fully wired service graph and seed data."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING
from unittest.mock import AsyncMock

from sevasetu_service.services.blob_store import BlobStore, FileUpload
from sevasetu_service.services.camp_manager import CampManager
from sevasetu_service.services.database import Database
from sevasetu_service.services.directory_manager import DirectoryManager
from sevasetu_service.services.directory_store import DirectoryStore
from sevasetu_service.services.ledger import Ledger
from sevasetu_service.services.notification_dispatcher import NotificationDispatcher
from sevasetu_service.services.payout_engine import PayoutEngine
from sevasetu_service.services.task_lifecycle import TaskLifecycle
from sevasetu_service.services.task_store import TaskStore
from sevasetu_service.services.wallet_manager import WalletManager

if TYPE_CHECKING:
    from pathlib import Path

    from sevasetu_service.domain import Actor

ADMIN_ID = "u-admin"
CUSTOMER_ID = "u-customer"
VLE_ID = "u-vle"
OTHER_VLE_ID = "u-vle-2"
GOVERNMENT_ID = "u-gov"

FIXED_SERVICE_ID = "svc-income"
VARIABLE_SERVICE_ID = "svc-land"

# Fixed-rate income certificate: customer pays 500, VLE earns 300 + 100 fee.
CUSTOMER_RATE = 500
VLE_RATE = 300
GOVERNMENT_FEE = 100


@dataclass
class ServiceGraph:
    """Every collaborator the lifespan builds, wired against one database."""

    database: Database
    ledger: Ledger
    directory_store: DirectoryStore
    task_store: TaskStore
    payout_engine: PayoutEngine
    blob_store: BlobStore
    sink: AsyncMock
    dispatcher: NotificationDispatcher
    directory: DirectoryManager
    lifecycle: TaskLifecycle
    wallets: WalletManager
    camps: CampManager

    def actor(self, user_id: str) -> Actor:
        actor = self.directory.get_actor(user_id)
        assert actor is not None
        return actor

    def balance(self, user_id: str) -> int:
        account = self.ledger.get_account(user_id)
        assert account is not None
        return int(account["balance"])  # type: ignore[call-overload]

    def fund(self, user_id: str, amount: int) -> None:
        with self.database.transaction() as conn:
            self.ledger.credit(conn, user_id, amount, f"test-topup:{uuid.uuid4()}")

    def titles_sent_to(self, user_id: str) -> list[str]:
        return [c.args[1] for c in self.sink.send.await_args_list if c.args[0] == user_id]


def build_graph(tmp_path: Path) -> ServiceGraph:
    """Build the service graph on a temp database with a mocked notification sink."""
    database = Database(str(tmp_path / "sevasetu.db"))
    ledger = Ledger(database)
    directory_store = DirectoryStore(database)
    task_store = TaskStore(database)
    payout_engine = PayoutEngine(ledger)
    blob_store = BlobStore(
        root_path=str(tmp_path / "files"),
        max_file_size=1024,
        max_files_per_request=3,
    )
    sink = AsyncMock()
    dispatcher = NotificationDispatcher(sink, directory_store.list_admin_ids)
    directory = DirectoryManager(database, directory_store, ledger, dispatcher)
    lifecycle = TaskLifecycle(
        database=database,
        store=task_store,
        directory=directory_store,
        payout_engine=payout_engine,
        blob_store=blob_store,
        dispatcher=dispatcher,
    )
    return ServiceGraph(
        database=database,
        ledger=ledger,
        directory_store=directory_store,
        task_store=task_store,
        payout_engine=payout_engine,
        blob_store=blob_store,
        sink=sink,
        dispatcher=dispatcher,
        directory=directory,
        lifecycle=lifecycle,
        wallets=WalletManager(database, ledger, dispatcher),
        camps=CampManager(database, directory_store, payout_engine, dispatcher),
    )


async def seed(graph: ServiceGraph) -> None:
    """Admin, customer, two approved VLEs, a government viewer and two services."""
    graph.directory.ensure_admin(ADMIN_ID, "Admin")
    admin = graph.actor(ADMIN_ID)

    graph.directory.add_service(
        admin,
        name="Income Certificate",
        customer_rate=CUSTOMER_RATE,
        vle_rate=VLE_RATE,
        government_fee=GOVERNMENT_FEE,
        is_variable=False,
        service_id=FIXED_SERVICE_ID,
    )
    graph.directory.add_service(
        admin,
        name="Land Mutation",
        customer_rate=0,
        vle_rate=200,
        government_fee=50,
        is_variable=True,
        service_id=VARIABLE_SERVICE_ID,
    )

    await graph.directory.register_user(None, "Asha", "customer", user_id=CUSTOMER_ID)
    await graph.directory.register_user(
        admin, "Records Office", "government", user_id=GOVERNMENT_ID
    )
    for vle_id, name in ((VLE_ID, "Ravi"), (OTHER_VLE_ID, "Meena")):
        await graph.directory.register_user(
            None,
            name,
            "vle",
            offered_services=[FIXED_SERVICE_ID, VARIABLE_SERVICE_ID],
            user_id=vle_id,
        )
        await graph.directory.approve_vle(admin, vle_id)
    graph.sink.send.reset_mock()


def doc(name: str = "aadhaar.pdf", content: bytes = b"%PDF-1.4 test") -> FileUpload:
    return FileUpload(name=name, content=content)


async def create_fixed_task(graph: ServiceGraph, creator_id: str = CUSTOMER_ID) -> str:
    """Create a fixed-rate task, funding the creator first."""
    graph.fund(creator_id, CUSTOMER_RATE)
    task = await graph.lifecycle.create_task(
        graph.actor(creator_id),
        service_id=FIXED_SERVICE_ID,
        customer="Asha Naik",
        customer_contact="9800000000",
        files=[doc()],
    )
    return str(task["task_id"])


async def assigned_task(graph: ServiceGraph, vle_id: str = VLE_ID) -> str:
    """A fixed-rate task accepted by the given VLE."""
    task_id = await create_fixed_task(graph)
    await graph.lifecycle.assign_vle(graph.actor(ADMIN_ID), task_id, vle_id)
    await graph.lifecycle.accept_task(graph.actor(vle_id), task_id)
    return task_id


async def completed_task(graph: ServiceGraph, vle_id: str = VLE_ID) -> str:
    task_id = await assigned_task(graph, vle_id)
    await graph.lifecycle.upload_final_certificate(
        graph.actor(vle_id), task_id, doc("certificate.pdf")
    )
    return task_id
