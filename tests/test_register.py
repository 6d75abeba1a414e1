"""Tests for the cash register state machine."""

from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from practice_desk.cashier import (
    CashierError,
    CashierValidationError,
    CashRegister,
    CellState,
    DeletePayment,
    InMemoryCashLedger,
    LedgerConflictError,
    PaymentLockedError,
    PendingChangeSet,
    UpsertPayment,
    cash_group_clients,
    commit,
)
from practice_desk.cashier.agreements import new_agreement
from practice_desk.models import (
    AgreementStatus,
    CashPayment,
    FeeGroup,
    PaymentMethod,
)

YEAR = 2026


def _register(ledger, cash_clients, expense_book) -> CashRegister:
    return CashRegister(ledger, cash_clients, expenses=expense_book, vat_rate=Decimal("0.23"))


def _processed_payment() -> CashPayment:
    return CashPayment(
        id="p-closed",
        client_id="c1",
        payment_year=YEAR,
        payment_month=1,
        amount_paid=Decimal("123.00"),
        cash_operation_id="op-1",
    )


class TestToggle:
    """Tests for toggling register cells."""

    def test_pending_to_paid(self, register):
        """Test that paying a month records an upsert at fee plus VAT."""
        state = register.toggle("c1", YEAR, 3)

        assert state is CellState.PAID_CASH
        op = register.pending.get(("c1", YEAR, 3))
        assert isinstance(op, UpsertPayment)
        assert op.payment.amount_paid == Decimal("123.00")
        assert op.payment.payment_method is PaymentMethod.CASH

    def test_payment_mode_sets_method(self, register):
        """Test that the selected payment mode is used for new payments."""
        register.payment_mode = PaymentMethod.MBWAY

        assert register.toggle("c2", YEAR, 1) is CellState.PAID_MBWAY
        assert register.pending.get(("c2", YEAR, 1)).payment.amount_paid == Decimal("61.50")

    def test_unsaved_payment_toggled_back_leaves_nothing(self, register):
        """Test that undoing an unsaved payment removes the pending change."""
        register.toggle("c1", YEAR, 3)
        state = register.toggle("c1", YEAR, 3)

        assert state is CellState.PENDING
        assert len(register.pending) == 0

    @pytest.mark.asyncio
    async def test_round_trip_leaves_no_residue(self, register, ledger):
        """Test that paying, saving, unpaying and saving restores the ledger."""
        register.toggle("c1", YEAR, 3)
        await register.save_changes()
        assert len(await ledger.list_payments()) == 1

        register.toggle("c1", YEAR, 3)
        assert isinstance(register.pending.get(("c1", YEAR, 3)), DeletePayment)
        assert register.cell_state("c1", YEAR, 3) is CellState.PENDING

        await register.save_changes()

        assert await ledger.list_payments() == []
        assert len(register.pending) == 0
        assert register.payments == []

    @pytest.mark.asyncio
    async def test_repaying_a_deleted_payment_cancels_the_delete(self, register):
        """Test that re-toggling a marked payment restores it without writes."""
        register.toggle("c1", YEAR, 3)
        await register.save_changes()

        register.toggle("c1", YEAR, 3)
        state = register.toggle("c1", YEAR, 3)

        assert state is CellState.PAID_CASH
        assert len(register.pending) == 0

    @pytest.mark.asyncio
    async def test_processed_cell_is_locked(self, cash_clients, expense_book):
        """Test that closed payments cannot be toggled."""
        ledger = InMemoryCashLedger(payments=[_processed_payment()])
        register = _register(ledger, cash_clients, expense_book)
        await register.refresh()

        assert register.cell_state("c1", YEAR, 1) is CellState.PROCESSED
        with pytest.raises(PaymentLockedError):
            register.toggle("c1", YEAR, 1)

    @pytest.mark.asyncio
    async def test_agreement_cells_are_locked(self, cash_clients, expense_book):
        """Test that months under a payment plan cannot be toggled."""
        plan = new_agreement("c1", YEAR, 6, Decimal("100"))
        ledger = InMemoryCashLedger(agreements=[plan])
        register = _register(ledger, cash_clients, expense_book)
        await register.refresh()

        assert register.cell_state("c1", YEAR, 6) is CellState.AGREEMENT
        assert register.cell_state("c1", YEAR, 7) is CellState.PENDING
        with pytest.raises(PaymentLockedError):
            register.toggle("c1", YEAR, 2)

        await register.cancel_agreement(plan.id)

        assert register.cell_state("c1", YEAR, 2) is CellState.AGREEMENT_CANCELLED
        with pytest.raises(PaymentLockedError):
            register.toggle("c1", YEAR, 2)

    def test_unknown_client(self, register):
        """Test that clients outside the register are rejected."""
        with pytest.raises(CashierValidationError):
            register.toggle("stranger", YEAR, 1)


class TestSaveChanges:
    """Tests for persisting the pending buffer."""

    @pytest.mark.asyncio
    async def test_failed_save_keeps_pending_changes(self, register, ledger):
        """Test that a failing ledger leaves the buffer exactly as it was."""
        register.toggle("c1", YEAR, 1)
        register.toggle("c2", YEAR, 1)
        before = register.pending

        with patch.object(
            ledger, "upsert_payments", AsyncMock(side_effect=LedgerConflictError("boom"))
        ):
            with pytest.raises(LedgerConflictError):
                await register.save_changes()

        assert register.pending is before
        assert register.payments == []

    @pytest.mark.asyncio
    async def test_deletes_applied_before_upserts(self):
        """Test the order of ledger calls in a commit."""
        payment = CashPayment(
            id="p1", client_id="c1", payment_year=YEAR, payment_month=1, amount_paid=Decimal("1")
        )
        other = CashPayment(
            id="p2", client_id="c1", payment_year=YEAR, payment_month=2, amount_paid=Decimal("1")
        )
        changes = (
            PendingChangeSet()
            .with_op(("c1", YEAR, 2), UpsertPayment(other))
            .with_op(("c1", YEAR, 1), DeletePayment(payment))
        )
        ledger = MagicMock()
        ledger.delete_payments = AsyncMock()
        ledger.upsert_payments = AsyncMock()
        ledger.list_payments = AsyncMock(return_value=[other])
        calls = MagicMock()
        calls.attach_mock(ledger.delete_payments, "delete")
        calls.attach_mock(ledger.upsert_payments, "upsert")

        result = await commit(ledger, changes)

        assert result == [other]
        assert [c[0] for c in calls.mock_calls] == ["delete", "upsert"]
        ledger.delete_payments.assert_awaited_once_with(["p1"])

    def test_change_set_is_copy_on_write(self):
        """Test that edits return new change sets."""
        empty = PendingChangeSet()
        payment = CashPayment(
            id="p1", client_id="c1", payment_year=YEAR, payment_month=1, amount_paid=Decimal("1")
        )

        changed = empty.with_op(("c1", YEAR, 1), UpsertPayment(payment))

        assert len(empty) == 0
        assert len(changed) == 1
        assert len(changed.without(("c1", YEAR, 1))) == 0


class TestCloseRegister:
    """Tests for closing the register."""

    @pytest.mark.asyncio
    async def test_close_balanced(self, register, ledger):
        """Test a balanced close over cash and MB Way payments with an expense."""
        register.toggle("c1", YEAR, 1)
        register.toggle("c1", YEAR, 2)
        register.payment_mode = PaymentMethod.MBWAY
        register.toggle("c2", YEAR, 1)
        register.expenses.add(Decimal("46"), "Correio")

        outcome = await register.close_register(
            Decimal("200"), mbway_deposited_amount=Decimal("61.50")
        )

        assert outcome.closed
        assert outcome.mismatch is None
        operation = outcome.operation
        assert operation.spent_amount == Decimal("46")
        assert operation.spent_description == "Correio: 46.00€"
        assert operation.received(PaymentMethod.CASH) == Decimal("246.00")
        assert operation.received(PaymentMethod.MBWAY) == Decimal("61.50")

        lines = {(line.client_id, line.method): line for line in operation.report_details}
        assert lines[("c1", PaymentMethod.CASH)].months == ("Jan", "Fev")
        assert lines[("c1", PaymentMethod.CASH)].client_name == "Padaria Central"

        payments = await ledger.list_payments()
        assert all(p.cash_operation_id == operation.id for p in payments)
        assert await ledger.list_operations() == [operation]
        assert len(register.expenses) == 0
        assert register.cash_in_hand().cash == 0

    @pytest.mark.asyncio
    async def test_mismatch_requires_confirmation(self, register, ledger):
        """Test that an unbalanced close is aborted unless confirmed."""
        register.toggle("c1", YEAR, 1)

        outcome = await register.close_register(Decimal("100"))

        assert not outcome.closed
        assert outcome.mismatch.difference == Decimal("23.00")
        assert all(not p.is_processed for p in await ledger.list_payments())
        assert await ledger.list_operations() == []

        confirm = MagicMock(return_value=True)
        outcome = await register.close_register(Decimal("100"), confirm_mismatch=confirm)

        confirm.assert_called_once()
        assert outcome.closed
        assert outcome.mismatch is not None

    @pytest.mark.asyncio
    async def test_adjustment_balances_the_drawer(self, register):
        """Test that the adjustment counts toward the declared total."""
        register.toggle("c1", YEAR, 1)

        outcome = await register.close_register(Decimal("120"), adjustment_amount=Decimal("3"))

        assert outcome.closed
        assert outcome.operation.adjustment_amount == Decimal("3")

    @pytest.mark.asyncio
    async def test_nothing_to_close(self, register):
        """Test that an empty register cannot be closed."""
        with pytest.raises(CashierValidationError):
            await register.close_register(Decimal("0"))

    @pytest.mark.asyncio
    async def test_expenses_alone_can_be_closed(self, register):
        """Test a close with expenses but no payments."""
        register.expenses.add("10", "Café")

        outcome = await register.close_register(Decimal("0"), adjustment_amount=Decimal("-10"))

        assert outcome.closed
        assert outcome.operation.report_details == ()

    @pytest.mark.asyncio
    async def test_failed_save_blocks_close(self, register, ledger):
        """Test that the close is refused when pending changes cannot be saved."""
        register.toggle("c1", YEAR, 1)

        with patch.object(ledger, "upsert_payments", AsyncMock(side_effect=RuntimeError("down"))):
            with pytest.raises(CashierError):
                await register.close_register(Decimal("123"))

        assert len(register.pending) == 1
        assert await ledger.list_operations() == []

    @pytest.mark.asyncio
    async def test_close_is_atomic(self, register, ledger):
        """Test that a failure before the operation is recorded changes nothing."""
        register.toggle("c1", YEAR, 1)
        register.toggle("c2", YEAR, 1)
        register.expenses.add("5", "Selos")

        def fail():
            raise RuntimeError("connection lost")

        ledger.before_operation_created = fail

        with pytest.raises(RuntimeError):
            await register.close_register(Decimal("179.50"))

        payments = await ledger.list_payments()
        assert len(payments) == 2
        assert all(p.cash_operation_id is None for p in payments)
        assert await ledger.list_operations() == []
        assert len(register.expenses) == 1

        ledger.before_operation_created = None
        outcome = await register.close_register(Decimal("179.50"))

        assert outcome.closed
        operations = await ledger.list_operations()
        assert len(operations) == 1
        total = sum(line.total for line in operations[0].report_details)
        assert total == sum(p.amount_paid for p in await ledger.list_payments())


class TestInstallments:
    """Tests for paying down a payment plan."""

    @pytest.mark.asyncio
    async def test_debt_is_capped_and_plan_completes(self, cash_clients, expense_book):
        """Test installments of 150, 100, 100 then 200 against a debt of 500."""
        plan = new_agreement("c1", YEAR, 6, Decimal("100"), debt_amount=Decimal("500"))
        ledger = InMemoryCashLedger(agreements=[plan])
        register = _register(ledger, cash_clients, expense_book)
        await register.refresh()

        for amount in ("150", "100", "100"):
            await register.record_installment("c1", YEAR, Decimal(amount))
        assert register.remaining_debt(plan) == Decimal("150")

        last = await register.record_installment("c1", YEAR, Decimal("200"))

        assert last.amount_paid == Decimal("150")
        assert last.payment_month == 4
        assert register.remaining_debt(plan) == 0
        assert register.agreement_status(plan) is AgreementStatus.COMPLETED
        assert plan.status is AgreementStatus.ACTIVE

        with pytest.raises(CashierValidationError):
            await register.record_installment("c1", YEAR, Decimal("10"))

    @pytest.mark.asyncio
    async def test_installment_requires_plan(self, register):
        """Test that clients without a plan cannot pay installments."""
        with pytest.raises(CashierValidationError):
            await register.record_installment("c1", YEAR, Decimal("50"))

    @pytest.mark.asyncio
    async def test_installment_must_be_positive(self, register):
        """Test that a zero installment is rejected."""
        with pytest.raises(CashierValidationError):
            await register.record_installment("c1", YEAR, Decimal("0"))

    @pytest.mark.asyncio
    async def test_plan_price_has_no_vat(self, cash_clients, expense_book):
        """Test month prices inside and outside a plan."""
        plan = new_agreement("c1", YEAR, 3, Decimal("90"))
        ledger = InMemoryCashLedger(agreements=[plan])
        register = _register(ledger, cash_clients, expense_book)
        await register.refresh()

        assert register.month_price("c1", YEAR, 2) == Decimal("90")
        assert register.month_price("c1", YEAR, 4) == Decimal("123.00")


class TestAgreementMaintenance:
    """Tests for editing payment plans."""

    @pytest.mark.asyncio
    async def test_cancel_and_reactivate(self, register):
        """Test explicit status changes."""
        plan = await register.save_agreement(new_agreement("c2", YEAR, 4, Decimal("40")))

        cancelled = await register.cancel_agreement(plan.id)
        assert register.agreement_status(cancelled) is AgreementStatus.CANCELLED

        reactivated = await register.reactivate_agreement(plan.id)
        assert register.agreement_status(reactivated) is AgreementStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_follow_up_flags(self, register):
        """Test setting the called and letter-sent flags."""
        plan = await register.save_agreement(new_agreement("c2", YEAR, 4, Decimal("40")))

        updated = await register.set_agreement_flags(plan.id, called=True)
        assert updated.called and not updated.letter_sent

        updated = await register.set_agreement_flags(plan.id, letter_sent=True)
        assert updated.called and updated.letter_sent

    @pytest.mark.asyncio
    async def test_one_plan_per_client_and_year(self, register):
        """Test that a second plan for the same year is refused."""
        await register.save_agreement(new_agreement("c2", YEAR, 4, Decimal("40")))

        with pytest.raises(CashierValidationError):
            await register.save_agreement(new_agreement("c2", YEAR, 2, Decimal("60")))

    @pytest.mark.asyncio
    async def test_failed_save_keeps_local_plans(self, register, ledger):
        """Test that a ledger failure leaves the local plans unchanged."""
        with patch.object(ledger, "upsert_agreement", AsyncMock(side_effect=RuntimeError("x"))):
            with pytest.raises(RuntimeError):
                await register.save_agreement(new_agreement("c2", YEAR, 4, Decimal("40")))

        assert register.agreements == []


class TestCashInHand:
    """Tests for the drawer summary."""

    @pytest.mark.asyncio
    async def test_includes_pending_and_excludes_deletions(self, register):
        """Test totals over saved and pending payments."""
        register.toggle("c1", YEAR, 1)
        await register.save_changes()
        register.toggle("c3", YEAR, 1)
        register.payment_mode = PaymentMethod.MBWAY
        register.toggle("c2", YEAR, 1)

        summary = register.cash_in_hand()
        assert summary.cash == Decimal("221.40")
        assert summary.mbway == Decimal("61.50")

        register.payment_mode = PaymentMethod.CASH
        register.toggle("c1", YEAR, 1)

        assert register.cash_in_hand().cash == Decimal("98.40")


class TestCashGroup:
    """Tests for choosing the register's clients."""

    def test_group_name_is_case_insensitive(self, cash_clients):
        """Test that the cash group is found regardless of case."""
        groups = [
            FeeGroup(id="g1", name="Transferência"),
            FeeGroup(id="g2", name="Pagamento Numerário", client_ids=("c1", "c3")),
        ]

        members = cash_group_clients(groups, cash_clients)

        assert [c.id for c in members] == ["c1", "c3"]

    def test_missing_group(self, cash_clients):
        """Test that the register refuses to run without the group."""
        with pytest.raises(CashierValidationError):
            cash_group_clients([FeeGroup(id="g1", name="Outros")], cash_clients)


class TestDefaults:
    """Tests for settings-driven defaults."""

    @pytest.fixture
    def expenses_path(self, tmp_path, monkeypatch):
        """Point the expense file setting at a temporary path."""
        from practice_desk.config import get_settings

        path = tmp_path / "desk" / "expenses.json"
        monkeypatch.setenv("CASH_EXPENSES_PATH", str(path))
        get_settings.cache_clear()
        yield path
        get_settings.cache_clear()

    def test_expenses_survive_a_new_register(self, expenses_path, cash_clients):
        """Test that a reopened register sees the session expenses."""
        first = CashRegister(InMemoryCashLedger(), cash_clients)
        first.expenses.add(Decimal("5"), "Selos")

        second = CashRegister(InMemoryCashLedger(), cash_clients)

        assert len(second.expenses) == 1
        assert second.expenses.total == Decimal("5")
        assert expenses_path.exists()

    def test_vat_from_settings(self, expenses_path, cash_clients):
        """Test that the VAT rate defaults to the configured one."""
        register = CashRegister(InMemoryCashLedger(), cash_clients)

        assert register.vat_rate == Decimal("0.23")
