from decimal import Decimal

from hrflow.core.errors import DegradedReason
from hrflow.core.schemas import Employee, WorkLocation
from hrflow.tax.countries import get_country_code_by_name, get_country_name
from hrflow.tax.gosi import compute_gosi, compute_gosi_deduction

BAHRAIN = WorkLocation(
    id="BH-HQ",
    currency="BHD",
    gosi_enabled=True,
    gosi_nationality_rates=[
        {"nationality": "BH", "employeeRate": 8, "employerRate": 12},
        {"nationality": "IN", "percentage": 1},
    ],
)

def test_disabled_location_gives_zero_regardless_of_subject_flag():
    loc = BAHRAIN.model_copy(update={"gosi_enabled": False})
    for subject in (True, False):
        emp = Employee(id="E1", base_salary=1000, nationality="BH", is_subject_to_gosi=subject)
        assert compute_gosi_deduction(emp, loc) == 0

def test_bahraini_employee_and_employer_shares():
    emp = Employee(id="E1", base_salary=1000, gosi_registered_salary=800,
                   nationality="Bahraini", is_subject_to_gosi=True)
    r = compute_gosi(emp, BAHRAIN)
    assert r.base == Decimal("800")
    assert r.employee_share == Decimal("64")
    assert r.employer_share == Decimal("96")
    assert r.nationality_code == "BH"
    assert not r.degraded

def test_legacy_percentage_is_employee_rate_only():
    emp = Employee(id="E2", base_salary=500, nationality="India", is_subject_to_gosi=True)
    r = compute_gosi(emp, BAHRAIN)
    assert r.employee_share == Decimal("5")
    assert r.employer_share == 0

def test_missing_data_is_degraded():
    emp = Employee(id="E3", base_salary=500, nationality="Philippines", is_subject_to_gosi=True)
    r = compute_gosi(emp, BAHRAIN)
    assert r.employee_share == 0
    assert r.reason == DegradedReason.MISSING_GOSI_RATE
    assert r.degraded

    emp = Employee(id="E4", base_salary=0, nationality="BH", is_subject_to_gosi=True)
    assert compute_gosi(emp, BAHRAIN).reason == DegradedReason.MISSING_GOSI_BASE

    emp = Employee(id="E5", base_salary=500, nationality="BH", is_subject_to_gosi=True)
    assert compute_gosi(emp, None).reason == DegradedReason.MISSING_WORK_LOCATION

def test_not_subject_is_not_degraded():
    emp = Employee(id="E6", base_salary=500, nationality="BH")
    r = compute_gosi(emp, BAHRAIN)
    assert r.reason == DegradedReason.NOT_SUBJECT_TO_GOSI
    assert not r.degraded

def test_country_lookup():
    assert get_country_code_by_name("bahrain") == "BH"
    assert get_country_code_by_name("Saudi") == "SA"
    assert get_country_code_by_name("in") == "IN"
    assert get_country_code_by_name("Atlantis") is None
    assert get_country_code_by_name(None) is None
    assert get_country_name("bh") == "Bahrain"

def test_rates_for_any_iso_country():
    loc = WorkLocation(id="L2", gosi_enabled=True, gosi_nationality_rates=[
        {"nationality": "AF", "employeeRate": 7},
        {"nationality": "VN", "employeeRate": 5},
    ])
    emp = Employee(id="E7", base_salary=1000, nationality="Afghanistan", is_subject_to_gosi=True)
    r = compute_gosi(emp, loc)
    assert r.employee_share == Decimal("70")
    assert r.nationality_code == "AF"
    assert get_country_code_by_name("Vietnamese") == "VN"

def test_unlisted_code_matches_rate_row_verbatim():
    loc = WorkLocation(id="L3", gosi_enabled=True, gosi_nationality_rates=[
        {"nationality": "XK", "employeeRate": 6},
    ])
    emp = Employee(id="E8", base_salary=500, nationality="xk", is_subject_to_gosi=True)
    r = compute_gosi(emp, loc)
    assert r.employee_share == Decimal("30")
    assert r.nationality_code == "XK"
