# db_init.py
import argparse
from pathlib import Path

from sqlalchemy import inspect

from config import Config
from models import Base, make_engine


def main(argv=None):
    parser = argparse.ArgumentParser(description="Create the saved-template tables.")
    parser.add_argument("--db", type=str, default="", help="Database URL (default: DATABASE_URL / SQLite under instance/).")
    parser.add_argument("--reset", action="store_true", help="Drop the template tables first. Saved templates are lost.")
    args = parser.parse_args(argv)

    db_url = args.db or Config.SQLALCHEMY_DATABASE_URI

    # SQLite needs its folder before the first connect
    if db_url.startswith("sqlite:///"):
        Path(db_url[len("sqlite:///"):]).parent.mkdir(parents=True, exist_ok=True)

    engine = make_engine(db_url, echo=Config.SQLALCHEMY_ECHO)
    if args.reset:
        Base.metadata.drop_all(engine)
    Base.metadata.create_all(engine)

    tables = sorted(inspect(engine).get_table_names())
    print("Template database initialized.")
    print(f"DB:     {db_url}")
    print(f"Tables: {', '.join(tables)}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
