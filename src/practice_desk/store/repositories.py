"""Read and write access to the firm's reference and client data."""

from __future__ import annotations

from collections.abc import Sequence

import structlog

from practice_desk.analytics.staff import with_derived_hourly_cost
from practice_desk.models import (
    Client,
    FeeGroup,
    InsurancePolicy,
    Staff,
    Task,
    TurnoverBracket,
)
from practice_desk.store.client import StoreClient, in_filter
from practice_desk.store.errors import StoreError
from practice_desk.store.mappers import (
    bracket_from_row,
    bracket_to_row,
    client_from_row,
    client_to_row,
    fee_group_from_row,
    policy_from_row,
    policy_to_row,
    staff_from_row,
    staff_to_row,
    task_from_row,
    task_to_row,
)

logger = structlog.get_logger(__name__)


class PracticeRepository:
    """Typed access to the store tables used by the analytics."""

    def __init__(self, client: StoreClient):
        self._client = client
        self._logger = logger.bind(component="practice_repository")

    # === Staff ===

    async def list_staff(self) -> list[Staff]:
        rows = await self._client.select("staff")
        return [staff_from_row(row) for row in rows]

    async def upsert_staff(self, member: Staff) -> Staff:
        """Save a staff member with the hourly cost derived from their pay."""
        rows = await self._client.upsert("staff", [staff_to_row(with_derived_hourly_cost(member))])
        if not rows:
            raise StoreError("Staff upsert returned no row", details={"id": member.id})
        return staff_from_row(rows[0])

    # === Clients ===

    async def list_clients(self, roster: Sequence[Staff] = ()) -> list[Client]:
        """Load clients, resolving manager references against ``roster``."""
        known_ids = [s.id for s in roster]
        rows = await self._client.select("clients")
        return [client_from_row(row, known_ids) for row in rows]

    async def upsert_client(self, client: Client, roster: Sequence[Staff] = ()) -> Client:
        rows = await self._client.upsert("clients", [client_to_row(client)])
        if not rows:
            raise StoreError("Client upsert returned no row", details={"id": client.id})
        self._logger.info("client_saved", client_id=client.id)
        return client_from_row(rows[0], [s.id for s in roster])

    async def bulk_upsert_clients(self, clients: Sequence[Client]) -> int:
        """Save many clients in one id-keyed call and return the row count."""
        if not clients:
            return 0
        result = await self._client.rpc(
            "bulk_upsert_clients_jsonb",
            {"p_clients": [client_to_row(c) for c in clients]},
        )
        count = result if isinstance(result, int) else len(clients)
        self._logger.info("clients_bulk_saved", count=count)
        return count

    # === Catalog ===

    async def list_tasks(self) -> list[Task]:
        rows = await self._client.select("app_tasks", order="id")
        return [task_from_row(row) for row in rows]

    async def upsert_tasks(self, tasks: Sequence[Task]) -> None:
        await self._client.upsert("app_tasks", [task_to_row(t) for t in tasks])

    async def list_turnover_brackets(self) -> list[TurnoverBracket]:
        rows = await self._client.select("turnover_brackets", order="min_turnover")
        return [bracket_from_row(row) for row in rows]

    async def replace_turnover_brackets(self, brackets: Sequence[TurnoverBracket]) -> None:
        """Make the stored brackets exactly ``brackets``."""
        existing = await self._client.select("turnover_brackets", columns="id")
        keep = {b.id for b in brackets}
        stale = [str(row["id"]) for row in existing if str(row["id"]) not in keep]
        if stale:
            await self._client.delete("turnover_brackets", {"id": in_filter(stale)})
        await self._client.upsert("turnover_brackets", [bracket_to_row(b) for b in brackets])
        self._logger.info("brackets_replaced", kept=len(keep), deleted=len(stale))

    async def list_fee_groups(self) -> list[FeeGroup]:
        rows = await self._client.select("fee_groups")
        return [fee_group_from_row(row) for row in rows]

    # === Insurance ===

    async def list_policies(self) -> list[InsurancePolicy]:
        rows = await self._client.select("insurance_policies", order="policy_date.desc")
        return [policy_from_row(row) for row in rows]

    async def upsert_policy(self, policy: InsurancePolicy) -> InsurancePolicy:
        rows = await self._client.upsert("insurance_policies", [policy_to_row(policy)])
        if not rows:
            raise StoreError("Policy upsert returned no row", details={"id": policy.id})
        return policy_from_row(rows[0])
