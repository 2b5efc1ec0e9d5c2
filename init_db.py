#!/usr/bin/env python3
"""
Initialize database tables (local development; production uses alembic)
"""
import sys
import os

# Add the project root to Python path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from app.core.config import settings
from app.core.database import Base, engine

# Import all models to ensure they're registered with Base
from app.models import Project, WaitlistEntry  # noqa: F401


def init_database():
    """Create all tables that do not exist yet"""
    print(f"Creating database tables on {engine.url.render_as_string(hide_password=True)}...")
    Base.metadata.create_all(bind=engine)
    print("Tables created successfully!")


if __name__ == "__main__":
    init_database()
