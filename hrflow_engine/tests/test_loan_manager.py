from datetime import date
from decimal import Decimal

import pytest

from hrflow.core.errors import InvalidTransition, RecordNotFound
from hrflow.core.schemas import InstallmentStatus
from hrflow.db.models import Employee, Loan
from hrflow.loans.manager import LoanManager


def _loan(session, **kw):
    fields = dict(id="LN1", employee_id="E1", principal=Decimal("1200"), currency="BHD",
                  duration_months=12, start_date=date(2025, 1, 28))
    fields.update(kw)
    session.add_all([Employee(id="E1", base_salary=1000), Loan(**fields)])
    session.commit()


def test_approval_disburses_schedule(session, audit):
    _loan(session)
    lm = LoanManager(session, "test", audit)
    assert lm.apply_decision("LN1", "approved", actor_id="user-hr") == "active"
    schedule = lm.repository.schedule("LN1")
    assert len(schedule) == 12
    assert sum(i.amount for i in schedule) == Decimal("1200")
    assert schedule[1].due_date == date(2025, 2, 28)
    loan = session.get(Loan, "LN1")
    assert loan.approved_by == "user-hr"
    assert loan.approved_at is not None
    assert [e.event_type for e in lm.repository.events("LN1")] == ["disburse"]
    with pytest.raises(InvalidTransition):
        lm.disburse("LN1")


def test_rejected_loan_is_not_scheduled(session, audit):
    _loan(session)
    lm = LoanManager(session, "test", audit)
    assert lm.apply_decision("LN1", "rejected") == "rejected"
    assert lm.repository.schedule("LN1") == []
    with pytest.raises(InvalidTransition):
        lm.skip_installment("LN1", 1)


def test_disburse_by_installment_amount(session, audit):
    _loan(session, duration_months=None, installment_amount=Decimal("500"))
    lm = LoanManager(session, "test", audit)
    schedule = lm.disburse("LN1")
    assert [i.amount for i in schedule] == [Decimal("500"), Decimal("500"), Decimal("200")]
    assert session.get(Loan, "LN1").duration_months == 3


def test_skip_extends_duration_and_logs_event(session, audit):
    _loan(session, principal=Decimal("400"), duration_months=4, start_date=date(2025, 1, 1))
    lm = LoanManager(session, "test", audit)
    lm.disburse("LN1")
    result = lm.skip_installment("LN1", 2, reason="Medical leave", actor_id="user-hr")
    assert result.appended.installment_number == 5
    assert result.appended.due_date == date(2025, 5, 1)
    loan = session.get(Loan, "LN1")
    assert loan.duration_months == 5
    statuses = {i.installment_number: i.status for i in lm.repository.schedule("LN1")}
    assert statuses[2] == InstallmentStatus.SKIPPED
    assert statuses[5] == InstallmentStatus.DUE
    events = lm.repository.events("LN1")
    assert events[-1].event_type == "skip_installment"
    assert events[-1].notes == "Medical leave"
    assert lm.outstanding_balance("LN1") == Decimal("400")
    history = audit.get_change_history("loan", "LN1")
    assert [h["operation"] for h in history] == ["disburse", "skip_installment"]


def test_restructure_with_top_up(session, audit):
    _loan(session, start_date=date(2025, 1, 1))
    lm = LoanManager(session, "test", audit)
    lm.disburse("LN1")
    for n in (1, 2, 3):
        lm.mark_paid("LN1", n)
    result = lm.restructure("LN1", date(2025, 4, 1), top_up=300, months=6, notes="School fees")
    assert result.installment_amount == Decimal("200")
    loan = session.get(Loan, "LN1")
    assert loan.principal == Decimal("1500")
    assert loan.installment_amount == Decimal("200")
    assert loan.duration_months == 9
    assert lm.outstanding_balance("LN1") == Decimal("1200")
    kinds = [e.event_type for e in lm.repository.events("LN1")]
    assert kinds == ["disburse", "manual_payment", "manual_payment", "manual_payment", "top_up", "restructure"]


def test_paying_last_installment_closes_loan(session, audit):
    _loan(session, principal=Decimal("200"), duration_months=2)
    lm = LoanManager(session, "test", audit)
    lm.disburse("LN1")
    lm.mark_paid("LN1", 1)
    lm.mark_paid("LN1", 2, manual=False, period="2025-02")
    assert session.get(Loan, "LN1").status == "closed"
    assert lm.schedule_frame("LN1")["status"].tolist() == ["paid", "paid"]


def test_unknown_loan(session, audit):
    lm = LoanManager(session, "test", audit)
    with pytest.raises(RecordNotFound):
        lm.disburse("missing")
