"""
Database migration script.
Creates tables: profiles, universities, requirement_profiles, user_university_locks, tasks
"""

from config import settings
from database import get_engine, verify_tables_exist

def create_tables():
    """Create all tables defined in models."""
    verify_tables_exist(get_engine(settings.DATABASE_URL))
    print("✅ Tables created successfully")

if __name__ == "__main__":
    create_tables()
