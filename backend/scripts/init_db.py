"""Initialize the notification database - creates (or recreates) all tables."""
import argparse
import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.database import engine, Base
import app.models  # noqa: F401 - registers notification models


def init_db(drop: bool = False):
    if drop:
        print("Dropping notification tables...")
        Base.metadata.drop_all(bind=engine)
    print("Creating notification tables...")
    Base.metadata.create_all(bind=engine)
    print("Database initialized successfully.")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--drop", action="store_true", help="drop existing tables first")
    init_db(drop=parser.parse_args().drop)
