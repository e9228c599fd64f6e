import os

class BaseConfig:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key")
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SESSION_TIMEOUT_MINUTES = int(os.environ.get("SESSION_TIMEOUT_MINUTES", 120))
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
    # Listing
    DEFAULT_PAGE_SIZE = int(os.environ.get("DEFAULT_PAGE_SIZE", 20))
    MAX_PAGE_SIZE = int(os.environ.get("MAX_PAGE_SIZE", 100))
    # Alumni
    GRADUATION_CLASS = os.environ.get("GRADUATION_CLASS", "Class 12")
    DEFAULT_ALUMNI_COUNTRY = os.environ.get("DEFAULT_ALUMNI_COUNTRY", "India")
    # Communication
    CIRCULAR_REFERENCE_PREFIX = os.environ.get("CIRCULAR_REFERENCE_PREFIX", "CIR")
    AUTO_PUBLISH_SCHEDULED = os.environ.get("AUTO_PUBLISH_SCHEDULED", "true").lower() in ("1","true","yes","on")
    # Exams
    PASS_PERCENTAGE_TREND_THRESHOLD = float(os.environ.get("PASS_PERCENTAGE_TREND_THRESHOLD", 2.0))
    # Hostel
    HOSTEL_FEE_OVERDUE_GRACE_DAYS = int(os.environ.get("HOSTEL_FEE_OVERDUE_GRACE_DAYS", 0))

class DevelopmentConfig(BaseConfig):
    # Default to instance/schooladmin.db unless overridden
    @staticmethod
    def database_uri(instance_path: str) -> str:
        db_path = os.environ.get("DATABASE_PATH")
        if db_path:
            return f"sqlite:///{db_path}"
        return "sqlite:///" + os.path.join(instance_path, "schooladmin.db")

class TestingConfig(BaseConfig):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = os.environ.get("TEST_DATABASE_URI", "sqlite:///:memory:")

class ProductionConfig(BaseConfig):
    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URI", "sqlite:///schooladmin.db")
