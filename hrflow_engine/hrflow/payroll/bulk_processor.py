"""
Payroll runs over many employees, with loan deductions, a register and summary.
"""
import pandas as pd
from pathlib import Path
from typing import Dict, List, Any, Optional, Sequence, Union
from datetime import date
from decimal import Decimal

from sqlalchemy.orm import Session

from ..core.audit import AuditLogger
from ..core.repositories import (
    AllowancesRepository, DeductionsRepository, EmployeesRepository, LoansRepository, WorkLocationsRepository
)
from ..core.utils import round_money, setup_logging
from ..loans.manager import LoanManager
from .engine import PayrollEngine, Payslip

REGISTER_COLUMNS = [
    'employee_id', 'name', 'currency', 'base_salary', 'allowances', 'gross', 'deductions',
    'gosi', 'gosi_employer', 'loan', 'net', 'degraded'
]

class PayrollBulkProcessor:
    """Computes payslips for a pay period and, when finalized, settles the loan installments they deduct."""

    def __init__(self, session: Session, tenant_id: str = "system", audit: AuditLogger = None,
                 engine: PayrollEngine = None):
        self.session = session
        self.tenant_id = tenant_id
        self.audit = audit or AuditLogger(tenant_id)
        self.logger = setup_logging(tenant_id)
        self.engine = engine or PayrollEngine(tenant_id)
        self.employees = EmployeesRepository(session, tenant_id)
        self.locations = WorkLocationsRepository(session, tenant_id)
        self.allowances = AllowancesRepository(session, tenant_id)
        self.deductions = DeductionsRepository(session, tenant_id)
        self.loans = LoansRepository(session, tenant_id)
        self.loan_manager = LoanManager(session, tenant_id, self.audit)
        self.payslips: List[Payslip] = []
        self.period: Optional[str] = None

    def run(
        self,
        period_start: date,
        period_end: date,
        employee_ids: Optional[Sequence[str]] = None,
        finalize: bool = False
    ) -> Dict[str, Any]:
        """
        Compute payslips for every active employee (or the given ids).

        Args:
            period_start, period_end: inclusive pay period; assignments are
                evaluated as of period_end and loan installments due inside
                the period are deducted.
            finalize: mark the deducted installments paid.
        """
        period = period_start.strftime('%Y-%m')
        payslips = []
        for employee in self.employees.get_active(employee_ids):
            slip = self.engine.compute_payslip(
                employee,
                self.allowances.for_employee(employee.id),
                self.deductions.for_employee(employee.id),
                self.locations.find(employee.work_location_id),
                period_start,
                period_end,
                loan_schedules=self.loans.active_schedules_for(employee.id),
            )
            if slip.compensation.degraded:
                self.logger.warning("Payslip %s %s degraded: %s", period, employee.id,
                                    ",".join(slip.compensation.degraded))
                self.audit.log_event("payroll", "degraded", employee.id, {
                    'period': period, 'reasons': slip.compensation.degraded,
                })
            payslips.append(slip)

        self.payslips = payslips
        self.period = period

        settled = 0
        if finalize:
            for slip in payslips:
                for loan_id, number in slip.loan_installments:
                    self.loan_manager.mark_paid(loan_id, number, period=period, manual=False)
                    settled += 1
            self.audit.log_event("payroll", "finalize", period, {
                'employees': len(payslips), 'installments_settled': settled,
            })

        self.logger.info("Payroll %s computed for %d employee(s)%s", period, len(payslips),
                         " and finalized" if finalize else "")
        return {
            'success': True,
            'period': period,
            'finalized': finalize,
            'installments_settled': settled,
            'summary': self._generate_payroll_summary(payslips, period),
        }

    def _generate_payroll_summary(self, payslips: List[Payslip], period: str) -> Dict[str, Any]:
        """Totals per currency plus one line per employee."""
        if not payslips:
            return {'period': period, 'total_employees': 0}

        totals: Dict[str, Dict[str, Decimal]] = {}
        for slip in payslips:
            c = slip.compensation
            t = totals.setdefault(c.currency, {
                'gross': Decimal(0), 'deductions': Decimal(0), 'gosi': Decimal(0),
                'gosi_employer': Decimal(0), 'loan': Decimal(0), 'net': Decimal(0), 'employees': 0,
            })
            t['gross'] += c.gross_pay
            t['deductions'] += c.total_deductions
            t['gosi'] += c.gosi_deduction
            t['gosi_employer'] += c.gosi_employer_contribution
            t['loan'] += slip.loan_deduction
            t['net'] += slip.net_pay
            t['employees'] += 1

        by_currency = {}
        for currency, t in totals.items():
            count = t.pop('employees')
            rounded = {k: float(round_money(v, currency)) for k, v in t.items()}
            rounded['average_net'] = float(round_money(t['net'] / count, currency))
            rounded['employees'] = count
            by_currency[currency] = rounded

        return {
            'period': period,
            'total_employees': len(payslips),
            'totals': by_currency,
            'degraded_employees': [s.employee_id for s in payslips if s.compensation.degraded],
            'employee_details': [s.to_row() for s in payslips]
        }

    def register_frame(self) -> pd.DataFrame:
        """Payroll register of the last run."""
        return pd.DataFrame([s.to_row() for s in self.payslips], columns=REGISTER_COLUMNS)

    def export_register(self, file_path: Union[str, Path]) -> bool:
        """Write the register of the last run to .csv or .xlsx."""
        if not self.payslips:
            return False
        path = Path(file_path)
        df = self.register_frame()
        if path.suffix.lower() == '.csv':
            df.to_csv(path, index=False)
        elif path.suffix.lower() == '.xlsx':
            df.to_excel(path, index=False, sheet_name=self.period or 'payroll')
        else:
            raise ValueError(f"Unsupported register format: {path.suffix}")
        return True
