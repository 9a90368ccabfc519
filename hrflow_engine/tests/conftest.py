import pytest

from hrflow.core.audit import AuditLogger
from hrflow.db.session import init_db, make_session_factory


@pytest.fixture
def session():
    engine, SessionLocal = make_session_factory("sqlite://")
    init_db(engine)
    db = SessionLocal()
    yield db
    db.close()
    engine.dispose()


@pytest.fixture
def audit(tmp_path):
    return AuditLogger("test", audit_dir=str(tmp_path / "audit"))
