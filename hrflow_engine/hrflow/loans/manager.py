"""
Loan lifecycle over the store: disbursement, skips, restructures and
repayments. Every schedule change is kept as a LoanEvent row and in the
tenant audit trail.
"""
from datetime import date, datetime, timezone
from typing import List, Optional

import pandas as pd
from sqlalchemy.orm import Session

from hrflow.core.audit import AuditLogger
from hrflow.core.errors import InvalidTransition
from hrflow.core.repositories import LoansRepository
from hrflow.core.schemas import Installment, InstallmentStatus
from hrflow.core.utils import Number, setup_logging, to_decimal
from hrflow.loans.scheduler import LoanInstallmentScheduler, RestructureResult, SkipResult

REQUESTED = "requested"
APPROVED = "approved"
ACTIVE = "active"
CLOSED = "closed"
REJECTED = "rejected"


class LoanManager:
    def __init__(self, session: Session, tenant_id: str = "system", audit: AuditLogger = None):
        self.session = session
        self.tenant_id = tenant_id
        self.audit = audit or AuditLogger(tenant_id)
        self.logger = setup_logging(tenant_id)
        self.repository = LoansRepository(session, tenant_id)

    def scheduler_for(self, loan) -> LoanInstallmentScheduler:
        return LoanInstallmentScheduler(loan.currency)

    def apply_decision(self, loan_id: str, status: str, actor_id: Optional[str] = None) -> str:
        """Carry a finished approval over to the loan: approved loans are disbursed."""
        loan = self.repository.get_row(loan_id)
        if status == APPROVED:
            loan.approved_by = actor_id
            loan.approved_at = datetime.now(timezone.utc)
            self.disburse(loan_id, actor_id=actor_id)
        elif status == REJECTED:
            loan.status = REJECTED
            self.session.commit()
        return loan.status

    def disburse(self, loan_id: str, actor_id: Optional[str] = None) -> List[Installment]:
        loan = self.repository.get_row(loan_id)
        if loan.status not in (REQUESTED, APPROVED):
            raise InvalidTransition(loan.status, "disburse")
        schedule = self.scheduler_for(loan).build_schedule(
            loan.principal,
            loan.start_date,
            months=loan.duration_months,
            installment_amount=loan.installment_amount,
        )
        self.repository.save_schedule(loan_id, schedule)
        loan.status = ACTIVE
        loan.duration_months = len(schedule)
        loan.installment_amount = schedule[0].amount
        self.repository.add_event(loan_id, "disburse", loan.start_date, created_by=actor_id,
                                  amount_delta=loan.principal,
                                  new_installment_amount=schedule[0].amount,
                                  new_duration_months=len(schedule))
        self.session.commit()
        self.logger.info("Loan %s disbursed: %s over %d installments", loan_id, loan.principal, len(schedule))
        self.audit.log_event("loan", "disburse", loan_id, {
            "principal": loan.principal, "installments": len(schedule),
        }, user_id=actor_id)
        return schedule

    def skip_installment(self, loan_id: str, installment_number: int, reason: Optional[str] = None,
                         actor_id: Optional[str] = None) -> SkipResult:
        loan = self._active(loan_id, "skip")
        result = self.scheduler_for(loan).skip(self.repository.schedule(loan_id), installment_number, reason)
        self.repository.save_schedule(loan_id, result.schedule)
        loan.duration_months = (loan.duration_months or 0) + 1
        self.repository.add_event(loan_id, "skip_installment", result.skipped.due_date, created_by=actor_id,
                                  affected_installment_number=installment_number,
                                  new_duration_months=loan.duration_months,
                                  notes=result.skipped.skipped_reason)
        self.session.commit()
        self.audit.log_event("loan", "skip_installment", loan_id, {
            "installment": installment_number,
            "appended": result.appended.installment_number,
            "due_date": result.appended.due_date,
            "reason": result.skipped.skipped_reason,
        }, user_id=actor_id)
        return result

    def restructure(self, loan_id: str, effective_date: date, top_up: Number = 0,
                    months: Optional[int] = None, installment_amount: Optional[Number] = None,
                    actor_id: Optional[str] = None, notes: Optional[str] = None) -> RestructureResult:
        loan = self._active(loan_id, "restructure")
        top_up = to_decimal(top_up)
        result = self.scheduler_for(loan).restructure(
            self.repository.schedule(loan_id), effective_date,
            top_up=top_up, months=months, installment_amount=installment_amount,
        )
        self.repository.save_schedule(loan_id, result.schedule)
        if top_up:
            loan.principal = to_decimal(loan.principal) + top_up
            self.repository.add_event(loan_id, "top_up", effective_date, created_by=actor_id,
                                      amount_delta=top_up, notes=notes)
        loan.installment_amount = result.installment_amount
        loan.duration_months = sum(1 for i in result.schedule if i.status != InstallmentStatus.SKIPPED)
        self.repository.add_event(loan_id, "restructure", effective_date, created_by=actor_id,
                                  new_installment_amount=result.installment_amount,
                                  new_duration_months=result.duration_months,
                                  notes=notes)
        self.session.commit()
        self.logger.info("Loan %s restructured from %s: %s over %d installments",
                         loan_id, effective_date, result.new_principal, result.duration_months)
        self.audit.log_event("loan", "restructure", loan_id, {
            "effective_date": effective_date,
            "top_up": top_up,
            "new_principal": result.new_principal,
            "installment_amount": result.installment_amount,
            "duration_months": result.duration_months,
        }, user_id=actor_id)
        return result

    def mark_paid(self, loan_id: str, installment_number: int, actor_id: Optional[str] = None,
                  period: Optional[str] = None, manual: bool = True) -> List[Installment]:
        """Record one repayment. Manual payments also get a LoanEvent; payroll ones only the audit entry."""
        loan = self._active(loan_id, "pay")
        scheduler = self.scheduler_for(loan)
        schedule = scheduler.mark_paid(self.repository.schedule(loan_id), installment_number)
        self.repository.save_schedule(loan_id, schedule, paid_in_period=period)
        paid = next(i for i in schedule if i.installment_number == installment_number)
        if manual:
            self.repository.add_event(loan_id, "manual_payment", date.today(), created_by=actor_id,
                                      amount_delta=-paid.amount,
                                      affected_installment_number=installment_number)
        if scheduler.outstanding_balance(schedule) == 0:
            loan.status = CLOSED
            self.logger.info("Loan %s fully repaid", loan_id)
        self.session.commit()
        self.audit.log_event("loan", "manual_payment" if manual else "payroll_deduction", loan_id, {
            "installment": installment_number, "amount": paid.amount, "period": period,
        }, user_id=actor_id)
        return schedule

    def outstanding_balance(self, loan_id: str):
        loan = self.repository.get_row(loan_id)
        return self.scheduler_for(loan).outstanding_balance(self.repository.schedule(loan_id))

    def schedule_frame(self, loan_id: str) -> pd.DataFrame:
        loan = self.repository.get_row(loan_id)
        return self.scheduler_for(loan).to_frame(self.repository.schedule(loan_id))

    def _active(self, loan_id: str, action: str):
        loan = self.repository.get_row(loan_id)
        if loan.status != ACTIVE:
            raise InvalidTransition(loan.status, action)
        return loan
