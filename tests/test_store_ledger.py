"""Tests for the store-backed ledger and repository."""

from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from practice_desk.cashier import CloseRequest
from practice_desk.models import CashPayment, PaymentMethod, ReportLine, Staff, TurnoverBracket
from practice_desk.store import PracticeRepository, StoreCashLedger, StoreClient, StoreError
from practice_desk.store.ledger import close_request_args


@pytest.fixture
def store():
    """Create a mocked StoreClient."""
    return AsyncMock(spec=StoreClient)


def _request() -> CloseRequest:
    return CloseRequest(
        deposited_amount=Decimal("200"),
        mbway_deposited_amount=Decimal("50"),
        spent_amount=Decimal("46"),
        adjustment_amount=Decimal("0"),
        spent_description="Correio: 46.00€",
        report_details=(
            ReportLine("c1", "Cliente", PaymentMethod.CASH, ("Jan", "Fev"), Decimal("246")),
        ),
        payment_ids=("p1", "p2"),
        expense_ids=("e1",),
    )


class TestStoreCashLedger:
    """Tests for StoreCashLedger."""

    def test_close_request_args(self):
        """Test the arguments of the atomic close procedure."""
        args = close_request_args(_request())

        assert args["p_deposited_amount"] == 200.0
        assert args["p_mbway_deposited_amount"] == 50.0
        assert args["p_spent_amount"] == 46.0
        assert args["p_payment_ids"] == ["p1", "p2"]
        assert args["p_session_expense_ids"] == ["e1"]
        assert args["p_report_details"] == [
            {
                "clientId": "c1",
                "clientName": "Cliente",
                "method": "Numerário",
                "months": ["Jan", "Fev"],
                "total": 246.0,
            }
        ]

    @pytest.mark.asyncio
    async def test_close_register_parses_operation(self, store):
        """Test that the procedure's row becomes a CashOperation."""
        store.rpc.return_value = [
            {
                "id": "op-1",
                "created_at": "2026-03-31T18:00:00Z",
                "deposited_amount": 200,
                "spent_amount": 46,
                "report_details": [{"clientId": "c1", "method": "MB Way", "total": 61.5}],
            }
        ]
        ledger = StoreCashLedger(store)

        operation = await ledger.close_register(_request())

        store.rpc.assert_called_once()
        assert store.rpc.call_args.args[0] == "close_cash_register_atomic"
        assert operation.id == "op-1"
        assert operation.created_at == datetime(2026, 3, 31, 18, tzinfo=timezone.utc)
        assert operation.report_details[0].method is PaymentMethod.MBWAY

    @pytest.mark.asyncio
    async def test_close_register_without_operation(self, store):
        """Test that an empty procedure result is an error."""
        store.rpc.return_value = []

        with pytest.raises(StoreError):
            await StoreCashLedger(store).close_register(_request())

    @pytest.mark.asyncio
    async def test_delete_protects_processed_rows(self, store):
        """Test that deletions only target unprocessed payments."""
        await StoreCashLedger(store).delete_payments(["p1", "p2"])

        table, filters = store.delete.call_args.args
        assert table == "cash_payments"
        assert filters == {"id": "in.(p1,p2)", "cash_operation_id": "is.null"}

    @pytest.mark.asyncio
    async def test_delete_nothing(self, store):
        """Test that no request is made for an empty deletion."""
        await StoreCashLedger(store).delete_payments([])

        store.delete.assert_not_called()

    @pytest.mark.asyncio
    async def test_upsert_payments(self, store):
        """Test that payments are written as rows."""
        payment = CashPayment(
            id="p1", client_id="c1", payment_year=2026, payment_month=3,
            amount_paid=Decimal("123.00"), payment_method=PaymentMethod.MBWAY,
        )

        await StoreCashLedger(store).upsert_payments([payment])

        table, rows = store.upsert.call_args.args
        assert table == "cash_payments"
        assert rows[0]["amount_paid"] == 123.0
        assert rows[0]["payment_method"] == "MB Way"
        assert rows[0]["cash_operation_id"] is None


class TestPracticeRepository:
    """Tests for PracticeRepository."""

    @pytest.mark.asyncio
    async def test_replace_turnover_brackets(self, store):
        """Test that stale brackets are deleted before the upsert."""
        store.select.return_value = [{"id": "tb1"}, {"id": "old"}]
        brackets = [
            TurnoverBracket("tb1", Decimal("0"), Decimal("10000"), Decimal("1"), Decimal("2"))
        ]

        await PracticeRepository(store).replace_turnover_brackets(brackets)

        store.delete.assert_called_once_with("turnover_brackets", {"id": "in.(old)"})
        table, rows = store.upsert.call_args.args
        assert table == "turnover_brackets"
        assert [r["id"] for r in rows] == ["tb1"]

    @pytest.mark.asyncio
    async def test_upsert_staff_derives_hourly_cost(self, store):
        """Test that the stored hourly cost comes from the pay inputs."""
        store.upsert.side_effect = lambda table, rows: rows
        member = Staff(
            id="s1",
            name="Ana",
            base_salary=Decimal("2000"),
            social_charges_percent=Decimal("23.75"),
            meal_allowance=Decimal("150"),
            other_monthly_costs=Decimal("100"),
            capacity_hours_per_month=Decimal("140"),
        )

        saved = await PracticeRepository(store).upsert_staff(member)

        assert saved.hourly_cost == Decimal("19.46")

    @pytest.mark.asyncio
    async def test_list_clients_resolves_roster_ids(self, store, roster):
        """Test that manager references matching the roster become ids."""
        store.select.return_value = [
            {"id": "c1", "nome": "Padaria", "responsavel": "s-legacy"},
        ]
        legacy = Staff(id="s-legacy", name="Rui")

        clients = await PracticeRepository(store).list_clients([*roster, legacy])

        assert clients[0].name == "Padaria"
        assert clients[0].responsible_staff.kind == "id"
