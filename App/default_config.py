SQLALCHEMY_DATABASE_URI = "sqlite:///coverage.db"
SECRET_KEY = "change-me-in-production"
ENV = "development"
SERVICE_NAME = "zone-coverage-scheduler"
LOG_LEVEL = "INFO"
LOG_FORMAT = "auto"

# Scheduling defaults applied to new organizations
DEFAULT_TIMEZONE = "America/New_York"
DEFAULT_TIME_BLOCKS = [(6, 10), (10, 14), (14, 18), (18, 22)]
DEFAULT_DISPATCHER_MODE = "ZONE"
COVERAGE_WEEK_DAYS = 7
SCHEDULE_MAX_RANGE_DAYS = 62

# Frontend origins allowed to call /api/*
CORS_ORIGINS = ["http://localhost:3000", "http://127.0.0.1:3000"]
