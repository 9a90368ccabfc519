from pydantic import Field
from pydantic_settings import BaseSettings
from typing import List

class Settings(BaseSettings):
    APP_NAME: str = Field("hrflow", description="Logger namespace and audit file prefix")
    LOG_LEVEL: str = Field("INFO", description="Level for tenant loggers")
    AUDIT_LOG_PATH: str = Field("./data/logs", description="Directory for rotating logs and audit trails")
    DB_URL: str = Field("sqlite:///./data/hrflow.db", description="Database URL")

    # Payroll defaults (GCC)
    DEFAULT_CURRENCY: str = "BHD"
    THREE_DECIMAL_CURRENCIES: List[str] = ["BHD", "KWD", "OMR"]

    # Approvals
    MAX_WORKFLOW_STEPS: int = 3

    # Loans
    DEFAULT_SKIP_REASON: str = "Employee request"
    RESTRUCTURE_SKIP_REASON: str = "Restructured"

settings = Settings()
