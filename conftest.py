import os

# Settings are cached on first import; pin the test environment before any
# application module is loaded.
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./schedule_test.db")
os.environ.setdefault("EVENTS_ENABLED", "false")
os.environ.setdefault("SUPABASE_JWT_SECRET", "test-jwt-secret")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/0")
