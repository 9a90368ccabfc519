from sqlalchemy import (
    Column, String, Integer, Numeric, ForeignKey, Date, DateTime, Boolean, JSON, Text, UniqueConstraint
)
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
from hrflow.db.session import Base

MONEY = Numeric(14, 3)

class UserRole(Base):
    __tablename__ = "user_roles"
    user_id = Column(String, primary_key=True)
    role = Column(String, primary_key=True)  # 'hr' / 'admin' / 'employee'
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

class WorkLocation(Base):
    __tablename__ = "work_locations"
    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    currency = Column(String, default="BHD")
    gosi_enabled = Column(Boolean, default=False)
    gosi_nationality_rates = Column(JSON, default=list)  # [{nationality, employeeRate, employerRate}]
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

class Employee(Base):
    __tablename__ = "employees"
    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=True, index=True)
    full_name = Column(String, nullable=True)
    manager_id = Column(String, ForeignKey("employees.id"), nullable=True)
    nationality = Column(String, nullable=True)
    base_salary = Column(MONEY, default=0)
    gosi_registered_salary = Column(MONEY, nullable=True)
    is_subject_to_gosi = Column(Boolean, default=False)
    work_location_id = Column(String, ForeignKey("work_locations.id"), nullable=True)
    salary_currency_code = Column(String, nullable=True)
    status = Column(String, default="active")
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    manager = relationship("Employee", remote_side=[id])
    work_location = relationship("WorkLocation")

class AllowanceTemplate(Base):
    __tablename__ = "allowance_templates"
    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    amount = Column(MONEY, default=0)
    amount_type = Column(String, default="flat")  # 'flat' / 'percentage'
    percentage_of = Column(String, nullable=True)  # 'base_salary'

class DeductionTemplate(Base):
    __tablename__ = "deduction_templates"
    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    amount = Column(MONEY, default=0)
    amount_type = Column(String, default="flat")
    percentage_of = Column(String, nullable=True)

class EmployeeAllowance(Base):
    __tablename__ = "employee_allowances"
    id = Column(String, primary_key=True)
    employee_id = Column(String, ForeignKey("employees.id"), nullable=False, index=True)
    template_id = Column(String, ForeignKey("allowance_templates.id"), nullable=True)
    custom_amount = Column(MONEY, nullable=True)
    custom_name = Column(String, nullable=True)
    percentage = Column(Numeric(7, 3), nullable=True)
    effective_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=True)

    template = relationship("AllowanceTemplate")

class EmployeeDeduction(Base):
    __tablename__ = "employee_deductions"
    id = Column(String, primary_key=True)
    employee_id = Column(String, ForeignKey("employees.id"), nullable=False, index=True)
    template_id = Column(String, ForeignKey("deduction_templates.id"), nullable=True)
    custom_amount = Column(MONEY, nullable=True)
    custom_name = Column(String, nullable=True)
    percentage = Column(Numeric(7, 3), nullable=True)
    effective_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=True)

    template = relationship("DeductionTemplate")

class ApprovalWorkflow(Base):
    __tablename__ = "approval_workflows"
    id = Column(String, primary_key=True)
    request_type = Column(String, nullable=False, unique=True)
    is_active = Column(Boolean, default=True)
    steps = Column(JSON, default=list)  # [{step, approver, specific_user_id, fallback}]
    default_hr_approver_id = Column(String, nullable=True)
    updated_by = Column(String, nullable=True)
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

class ApprovalRequest(Base):
    __tablename__ = "approval_requests"
    id = Column(String, primary_key=True)  # id of the leave request / loan / trip / letter
    request_type = Column(String, primary_key=True)
    employee_id = Column(String, ForeignKey("employees.id"), nullable=False)
    state = Column(String, nullable=False)  # pending_step_N / approved / rejected
    status = Column(String, nullable=False)  # status shown on the subject request
    total_steps = Column(Integer, default=0)
    submitted_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    decided_at = Column(DateTime(timezone=True), nullable=True)

class RequestApprovalStep(Base):
    __tablename__ = "request_approval_steps"
    __table_args__ = (UniqueConstraint("request_id", "request_type", "step_number"),)
    id = Column(Integer, primary_key=True, autoincrement=True)
    request_id = Column(String, nullable=False, index=True)
    request_type = Column(String, nullable=False)
    step_number = Column(Integer, nullable=False)
    approver_type = Column(String, nullable=False)
    approver_user_id = Column(String, nullable=False, index=True)
    status = Column(String, nullable=False)  # pending / queued / approved / rejected / cancelled
    comment = Column(Text, nullable=True)
    acted_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

class Loan(Base):
    __tablename__ = "loans"
    id = Column(String, primary_key=True)
    employee_id = Column(String, ForeignKey("employees.id"), nullable=False, index=True)
    principal = Column(MONEY, nullable=False)
    currency = Column(String, default="BHD")
    duration_months = Column(Integer, nullable=True)
    installment_amount = Column(MONEY, nullable=True)
    start_date = Column(Date, nullable=False)
    status = Column(String, default="requested")  # requested / approved / active / closed
    approved_by = Column(String, nullable=True)
    approved_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    installments = relationship("LoanInstallment", back_populates="loan",
                                order_by="LoanInstallment.installment_number")
    events = relationship("LoanEvent", back_populates="loan", order_by="LoanEvent.id")

class LoanInstallment(Base):
    __tablename__ = "loan_installments"
    __table_args__ = (UniqueConstraint("loan_id", "installment_number"),)
    id = Column(Integer, primary_key=True, autoincrement=True)
    loan_id = Column(String, ForeignKey("loans.id"), nullable=False, index=True)
    installment_number = Column(Integer, nullable=False)
    due_date = Column(Date, nullable=False)
    amount = Column(MONEY, nullable=False)
    status = Column(String, default="due")  # due / paid / skipped
    skipped_reason = Column(String, nullable=True)
    rescheduled_from = Column(Integer, nullable=True)
    schedule_version = Column(Integer, default=1)
    paid_in_period = Column(String, nullable=True)

    loan = relationship("Loan", back_populates="installments")

class LoanEvent(Base):
    __tablename__ = "loan_events"
    id = Column(Integer, primary_key=True, autoincrement=True)
    loan_id = Column(String, ForeignKey("loans.id"), nullable=False, index=True)
    event_type = Column(String, nullable=False)  # disburse / top_up / restructure / skip_installment / manual_payment
    effective_date = Column(Date, nullable=False)
    amount_delta = Column(MONEY, nullable=True)
    new_installment_amount = Column(MONEY, nullable=True)
    new_duration_months = Column(Integer, nullable=True)
    affected_installment_number = Column(Integer, nullable=True)
    notes = Column(Text, nullable=True)
    created_by = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    loan = relationship("Loan", back_populates="events")
