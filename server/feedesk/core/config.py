"""
feedesk/core/config.py
Configuration settings using Pydantic
"""
from pydantic_settings import BaseSettings
from typing import Dict, List, Optional
from functools import lru_cache

class Settings(BaseSettings):
    """Application settings"""

    # Application
    PROJECT_NAME: str = "College Fee Desk"
    VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"  # development, staging, production
    API_V1_PREFIX: str = "/api/v1"

    # Security
    SECRET_KEY: str  # Generate with: openssl rand -hex 32
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 480
    # email -> bcrypt hash, e.g. ADMIN_ACCOUNTS='{"office@college.edu": "$2b$12$..."}'
    ADMIN_ACCOUNTS: Dict[str, str] = {}

    # Supabase
    SUPABASE_URL: str
    SUPABASE_KEY: str  # anon/public key

    # Email (SendGrid)
    SENDGRID_API_KEY: str = ""
    FROM_EMAIL: str = "accounts@citycomputercollege.edu"
    FROM_NAME: str = "City Computer College"
    ADMIN_NOTIFICATION_EMAIL: str = ""

    # College details printed on reminders and challans
    COLLEGE_NAME: str = "City Computer College"
    COLLEGE_PHONE: str = "9876543210"
    COLLEGE_ADDRESS: str = "123 College Road, City"
    COLLEGE_EMAIL: str = ""
    CURRENCY_LABEL: str = "Rs."

    # Fees
    FEE_DUE_DAY: int = 10
    # Monthly fee used by the CSV import when a course cannot be resolved.
    # Unset means no fee record is created for such rows.
    IMPORT_DEFAULT_MONTHLY_FEE: Optional[float] = None

    # CORS
    ALLOWED_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]

    # File Upload
    MAX_IMPORT_FILE_SIZE: int = 2 * 1024 * 1024  # 2MB

    class Config:
        env_file = ".env"
        case_sensitive = True

@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()

settings = get_settings()
