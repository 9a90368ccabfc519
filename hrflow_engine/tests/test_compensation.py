import itertools
from datetime import date
from decimal import Decimal

from hrflow.core.errors import DegradedReason
from hrflow.core.schemas import (
    AllowanceAssignment, DeductionAssignment, Employee, LineTemplate, WorkLocation
)
from hrflow.payroll.engine import CompensationCalculator

def _flat(amount, name="Flat"):
    return LineTemplate(name=name, amount=amount)

def _pct(amount, of="base_salary", name="Pct"):
    return LineTemplate(name=name, amount=amount, amount_type="percentage", percentage_of=of)

def test_percentage_and_custom_amount():
    calc = CompensationCalculator()
    a = AllowanceAssignment(template=_pct(10))
    assert calc.resolve_line_amount(a, 1000) == Decimal("100")
    a = AllowanceAssignment(template=_pct(10), custom_amount=50)
    assert calc.resolve_line_amount(a, 1000) == Decimal("50")

def test_custom_amount_zero_still_wins():
    calc = CompensationCalculator()
    a = AllowanceAssignment(template=_flat(300), custom_amount=0)
    assert calc.resolve_line_amount(a, 1000) == Decimal("0")

def test_assignment_percentage_before_template():
    calc = CompensationCalculator()
    a = AllowanceAssignment(template=_flat(300), percentage=25)
    assert calc.resolve_line_amount(a, 2000) == Decimal("500")
    # zero percentage means "not set"
    a = AllowanceAssignment(template=_flat(300), percentage=0)
    assert calc.resolve_line_amount(a, 2000) == Decimal("300")

def test_degraded_lines_resolve_to_zero():
    calc = CompensationCalculator()
    missing = calc.resolve_line(AllowanceAssignment(), 1000)
    assert missing.amount == 0
    assert missing.reason == DegradedReason.MISSING_TEMPLATE
    odd = calc.resolve_line(AllowanceAssignment(template=_pct(10, of="gross")), 1000)
    assert odd.amount == 0
    assert odd.reason == DegradedReason.UNSUPPORTED_PERCENTAGE_BASE
    unset = calc.resolve_line(AllowanceAssignment(template=_pct(10, of=None)), 1000)
    assert unset.reason == DegradedReason.UNSUPPORTED_PERCENTAGE_BASE

def test_totals_are_order_independent():
    calc = CompensationCalculator()
    lines = [
        AllowanceAssignment(template=_flat("0.1")),
        AllowanceAssignment(template=_flat("0.2")),
        AllowanceAssignment(template=_pct("7.5")),
        AllowanceAssignment(custom_amount="33.333"),
    ]
    totals = {calc.total_allowances(p, "1234.567") for p in itertools.permutations(lines)}
    assert len(totals) == 1

def test_scenario_flat_allowance_and_percentage_deduction():
    calc = CompensationCalculator()
    emp = Employee(id="E1", base_salary=5000)
    allowances = [AllowanceAssignment(template=_flat(300, "Transport"))]
    deductions = [DeductionAssignment(template=_pct(5, name="Pension"))]
    loc = WorkLocation(id="L1", gosi_enabled=False)
    assert calc.compute_gross_pay(emp, allowances) == Decimal("5300")
    assert calc.total_deductions(deductions, emp.base_salary) == Decimal("250")
    assert calc.compute_gosi_deduction(emp, loc) == 0
    b = calc.breakdown(emp, allowances, deductions, loc)
    assert b.gross_pay == Decimal("5300")
    assert b.total_deductions == Decimal("250")
    assert b.gosi_deduction == 0
    assert b.net_pay == Decimal("5050")
    assert b.degraded == []
    assert [(l.name, l.kind) for l in b.lines] == [("Transport", "allowance"), ("Pension", "deduction")]

def test_negative_net_pay_is_reported_not_clamped():
    calc = CompensationCalculator()
    emp = Employee(id="E1", base_salary=100)
    b = calc.breakdown(emp, [], [DeductionAssignment(custom_amount=150)])
    assert b.net_pay == Decimal("-50")
    assert DegradedReason.NEGATIVE_NET_PAY.value in b.degraded

def test_assignments_outside_window_are_ignored():
    calc = CompensationCalculator()
    lines = [
        AllowanceAssignment(custom_amount=100, effective_date=date(2025, 1, 1)),
        AllowanceAssignment(custom_amount=200, end_date=date(2024, 12, 31)),
        AllowanceAssignment(custom_amount=400, effective_date=date(2025, 3, 1)),
    ]
    assert calc.total_allowances(lines, 1000, as_of=date(2025, 1, 31)) == Decimal("100")
    assert calc.total_allowances(lines, 1000) == Decimal("700")

def test_breakdown_currency_and_degraded_codes():
    calc = CompensationCalculator()
    emp = Employee(id="E1", base_salary=1000, is_subject_to_gosi=True)
    b = calc.breakdown(emp, [AllowanceAssignment()], [])
    assert b.currency == "BHD"
    assert b.degraded == [DegradedReason.MISSING_TEMPLATE.value, DegradedReason.MISSING_WORK_LOCATION.value]
    loc = WorkLocation(id="L1", currency="SAR")
    assert calc.breakdown(emp, [], [], loc).currency == "SAR"
    emp = Employee(id="E2", salary_currency_code="USD")
    assert calc.breakdown(emp, [], [], loc).currency == "USD"
