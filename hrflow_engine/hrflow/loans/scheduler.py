"""
Loan installment schedules.

Installments are monthly. Regular installments are rounded down to the
currency's minor unit and the last one absorbs the remainder, so the
installments of a schedule always add up to the principal exactly.
"""
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, ROUND_CEILING
from typing import List, Optional

import pandas as pd
from dateutil.relativedelta import relativedelta

from hrflow.core.config import settings
from hrflow.core.errors import InvalidTransition
from hrflow.core.schemas import Installment, InstallmentStatus
from hrflow.core.utils import Number, floor_money, to_decimal

ZERO = Decimal("0")


@dataclass
class SkipResult:
    schedule: List[Installment]
    skipped: Installment
    appended: Installment


@dataclass
class RestructureResult:
    schedule: List[Installment]
    new_principal: Decimal
    installment_amount: Decimal
    duration_months: int


class LoanInstallmentScheduler:
    def __init__(self, currency: str = None):
        self.currency = currency or settings.DEFAULT_CURRENCY

    # -- sizing ----------------------------------------------------------------

    def schedule_by_duration(self, principal: Number, months: int) -> Decimal:
        """Regular installment amount for a schedule of `months` installments."""
        principal = self._positive(principal, "principal")
        if months < 1:
            raise ValueError("months must be at least 1")
        regular = floor_money(principal / months, self.currency)
        if not regular:
            raise ValueError(f"principal {principal} is too small to spread over {months} months")
        return regular

    def schedule_by_amount(self, principal: Number, amount: Number) -> int:
        """Number of installments needed to repay `principal` at `amount` each."""
        principal = self._positive(principal, "principal")
        amount = self._installment_amount(amount)
        return int((principal / amount).to_integral_value(rounding=ROUND_CEILING))

    def amounts_by_duration(self, principal: Number, months: int) -> List[Decimal]:
        regular = self.schedule_by_duration(principal, months)
        return self._with_remainder(to_decimal(principal), regular, months)

    def amounts_by_amount(self, principal: Number, amount: Number) -> List[Decimal]:
        count = self.schedule_by_amount(principal, amount)
        return self._with_remainder(to_decimal(principal), self._installment_amount(amount), count)

    def _installment_amount(self, amount: Number) -> Decimal:
        amount = floor_money(self._positive(amount, "installment amount"), self.currency)
        if not amount:
            raise ValueError(f"installment amount is below one minor unit of {self.currency}")
        return amount

    def _with_remainder(self, principal: Decimal, regular: Decimal, count: int) -> List[Decimal]:
        amounts = [regular] * (count - 1)
        amounts.append(principal - regular * (count - 1))
        return amounts

    # -- schedules -------------------------------------------------------------

    def build_schedule(
        self,
        principal: Number,
        start_date: date,
        months: Optional[int] = None,
        installment_amount: Optional[Number] = None,
        first_number: int = 1,
        schedule_version: int = 1,
    ) -> List[Installment]:
        if installment_amount:
            amounts = self.amounts_by_amount(principal, installment_amount)
        elif months:
            amounts = self.amounts_by_duration(principal, months)
        else:
            raise ValueError("Either installment amount or duration must be provided")
        return [
            Installment(
                installment_number=first_number + i,
                due_date=start_date + relativedelta(months=i),
                amount=amount,
                schedule_version=schedule_version,
            )
            for i, amount in enumerate(amounts)
        ]

    def skip(self, schedule: List[Installment], installment_number: int, reason: str = None) -> SkipResult:
        """Skip one due installment and append a replacement after the last due date."""
        current = self._find(schedule, installment_number)
        if current.status != InstallmentStatus.DUE:
            raise InvalidTransition(current.status.value, "skip")

        due = [i for i in schedule if i.status == InstallmentStatus.DUE]
        last_due_date = max(i.due_date for i in due)
        skipped = current.model_copy(update={
            "status": InstallmentStatus.SKIPPED,
            "skipped_reason": reason or settings.DEFAULT_SKIP_REASON,
        })
        appended = Installment(
            installment_number=max(i.installment_number for i in schedule) + 1,
            due_date=last_due_date + relativedelta(months=1),
            amount=current.amount,
            rescheduled_from=current.installment_number,
            schedule_version=max(i.schedule_version for i in schedule) + 1,
        )
        updated = [skipped if i.installment_number == installment_number else i for i in schedule]
        updated.append(appended)
        return SkipResult(schedule=updated, skipped=skipped, appended=appended)

    def restructure(
        self,
        schedule: List[Installment],
        effective_date: date,
        top_up: Number = 0,
        months: Optional[int] = None,
        installment_amount: Optional[Number] = None,
    ) -> RestructureResult:
        """
        Reschedule everything still due on or after `effective_date`, plus an
        optional top-up, as a new schedule starting on `effective_date`.
        Earlier unpaid installments stay as they are.
        """
        if not installment_amount and not months:
            raise ValueError("Either new installment amount or duration must be provided")
        rescheduled = [i for i in schedule
                       if i.status == InstallmentStatus.DUE and i.due_date >= effective_date]
        moved = {i.installment_number for i in rescheduled}
        new_principal = sum((i.amount for i in rescheduled), ZERO) + to_decimal(top_up)

        updated = [
            i.model_copy(update={"status": InstallmentStatus.SKIPPED,
                                 "skipped_reason": settings.RESTRUCTURE_SKIP_REASON})
            if i.installment_number in moved else i
            for i in schedule
        ]
        fresh = self.build_schedule(
            new_principal,
            effective_date,
            months=months,
            installment_amount=installment_amount,
            first_number=max((i.installment_number for i in schedule), default=0) + 1,
            schedule_version=max((i.schedule_version for i in schedule), default=1) + 1,
        )
        return RestructureResult(
            schedule=updated + fresh,
            new_principal=new_principal,
            installment_amount=fresh[0].amount,
            duration_months=len(fresh),
        )

    def mark_paid(self, schedule: List[Installment], installment_number: int) -> List[Installment]:
        current = self._find(schedule, installment_number)
        if current.status != InstallmentStatus.DUE:
            raise InvalidTransition(current.status.value, "pay")
        paid = current.model_copy(update={"status": InstallmentStatus.PAID})
        return [paid if i.installment_number == installment_number else i for i in schedule]

    # -- queries ---------------------------------------------------------------

    def outstanding_balance(self, schedule: List[Installment]) -> Decimal:
        return sum((i.amount for i in schedule if i.status == InstallmentStatus.DUE), ZERO)

    def total_scheduled(self, schedule: List[Installment]) -> Decimal:
        """Sum over paid and due installments; skipped ones have been moved elsewhere."""
        return sum((i.amount for i in schedule if i.status != InstallmentStatus.SKIPPED), ZERO)

    def due_in_period(self, schedule: List[Installment], start: date, end: date) -> List[Installment]:
        return [i for i in schedule
                if i.status == InstallmentStatus.DUE and start <= i.due_date <= end]

    def to_frame(self, schedule: List[Installment]) -> pd.DataFrame:
        rows = [{
            "installment_number": i.installment_number,
            "due_date": i.due_date,
            "amount": float(i.amount),
            "status": i.status.value,
            "schedule_version": i.schedule_version,
            "rescheduled_from": i.rescheduled_from,
        } for i in sorted(schedule, key=lambda x: x.installment_number)]
        return pd.DataFrame(rows, columns=["installment_number", "due_date", "amount", "status",
                                           "schedule_version", "rescheduled_from"])

    # -- helpers ---------------------------------------------------------------

    def _find(self, schedule: List[Installment], installment_number: int) -> Installment:
        for inst in schedule:
            if inst.installment_number == installment_number:
                return inst
        raise KeyError(f"installment {installment_number} not in schedule")

    @staticmethod
    def _positive(value: Number, label: str) -> Decimal:
        value = to_decimal(value)
        if value <= 0:
            raise ValueError(f"{label} must be positive")
        return value
