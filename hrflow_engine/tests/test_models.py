from datetime import date
from decimal import Decimal

import pytest

from hrflow.core.errors import RecordNotFound
from hrflow.core.repositories import (
    AllowancesRepository, DeductionsRepository, EmployeesRepository, LoansRepository,
    WorkflowsRepository, WorkLocationsRepository
)
from hrflow.core.schemas import (
    ApprovalStep, ApprovalWorkflow, AllowanceAssignment, DeductionAssignment, Installment,
    InstallmentStatus, RequestType
)
from hrflow.db.models import (
    AllowanceTemplate, DeductionTemplate, Employee, EmployeeAllowance, EmployeeDeduction, Loan, UserRole,
    WorkLocation, ApprovalWorkflow as WorkflowRow
)

def test_employee_rows_become_records(session):
    session.add_all([
        Employee(id="M1", user_id="user-m1", full_name="Manager", base_salary=Decimal("2000")),
        Employee(id="E1", full_name="Employee", manager_id="M1", base_salary=Decimal("750.5"),
                 nationality="BH", is_subject_to_gosi=True),
    ])
    session.commit()
    repo = EmployeesRepository(session)
    emp = repo.get("E1")
    assert emp.manager_id == "M1"
    assert emp.base_salary == Decimal("750.5")
    assert emp.is_subject_to_gosi is True
    assert repo.manager_user_id("M1") == "user-m1"
    assert repo.manager_user_id("missing") is None

    session.get(Employee, "E1").status = "terminated"
    session.commit()
    assert [e.id for e in repo.get_active()] == ["M1"]
    with pytest.raises(RecordNotFound):
        repo.get("nobody")

def test_work_location_rates_from_json(session):
    session.add(WorkLocation(id="L1", name="Manama", currency="BHD", gosi_enabled=True,
                             gosi_nationality_rates=[{"nationality": "BH", "employeeRate": 8, "employerRate": 12}]))
    session.commit()
    repo = WorkLocationsRepository(session)
    loc = repo.find("L1")
    assert loc.gosi_nationality_rates[0].employee_rate == Decimal("8")
    assert loc.gosi_nationality_rates[0].employer_rate == Decimal("12")
    assert repo.find(None) is None
    assert repo.find("L2") is None

def test_assignments_carry_templates(session):
    session.add_all([
        Employee(id="E1", base_salary=1000),
        AllowanceTemplate(id="T-HOUSING", name="Housing", amount=25, amount_type="percentage",
                          percentage_of="base_salary"),
        DeductionTemplate(id="T-UNION", name="Union fee", amount=5),
        EmployeeAllowance(id="A1", employee_id="E1", template_id="T-HOUSING"),
        EmployeeAllowance(id="A2", employee_id="E1", custom_name="Phone", custom_amount=15,
                          effective_date=date(2025, 1, 1)),
        EmployeeDeduction(id="D1", employee_id="E1", template_id="T-UNION"),
    ])
    session.commit()
    allowances = AllowancesRepository(session).for_employee("E1")
    assert all(isinstance(a, AllowanceAssignment) for a in allowances)
    assert allowances[0].template.name == "Housing"
    assert allowances[1].template is None
    assert allowances[1].name == "Phone"
    deductions = DeductionsRepository(session).for_employee("E1")
    assert isinstance(deductions[0], DeductionAssignment)
    assert deductions[0].template.amount == Decimal("5")

def test_workflow_save_and_hr_users(session):
    session.add_all([
        UserRole(user_id="user-admin", role="admin"),
        UserRole(user_id="user-emp", role="employee"),
    ])
    session.commit()
    repo = WorkflowsRepository(session)
    assert repo.get_for_type(RequestType.LOAN) is None
    saved = repo.save(ApprovalWorkflow(request_type=RequestType.LOAN, steps=[
        ApprovalStep(step=1, approver="hr"),
    ], default_hr_approver_id="user-hr"), updated_by="user-admin")
    session.commit()
    assert saved.steps[0].approver.value == "hr"
    loaded = repo.get_for_type("loan")
    assert loaded.default_hr_approver_id == "user-hr"
    assert loaded.updated_by == "user-admin"
    repo.save(loaded.model_copy(update={"is_active": False}))
    session.commit()
    assert session.query(WorkflowRow).count() == 1
    assert repo.get_for_type(RequestType.LOAN).is_active is False
    assert repo.hr_user_ids() == ["user-admin"]

def test_loan_schedule_round_trip(session):
    session.add(Loan(id="LN1", employee_id="E1", principal=300, start_date=date(2025, 1, 1), status="active"))
    session.commit()
    repo = LoansRepository(session)
    schedule = [
        Installment(installment_number=n, due_date=date(2025, n, 1), amount=Decimal("100"))
        for n in (1, 2, 3)
    ]
    repo.save_schedule("LN1", schedule)
    session.commit()
    paid = [i.model_copy(update={"status": InstallmentStatus.PAID}) if i.installment_number == 1 else i
            for i in repo.schedule("LN1")]
    repo.save_schedule("LN1", paid, paid_in_period="2025-01")
    session.commit()
    loaded = repo.schedule("LN1")
    assert [i.status for i in loaded] == [InstallmentStatus.PAID, InstallmentStatus.DUE, InstallmentStatus.DUE]
    assert sum(i.amount for i in loaded) == Decimal("300")
    assert list(repo.active_schedules_for("E1")) == ["LN1"]
