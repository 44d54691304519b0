from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from weighsync.config import settings
from weighsync.db import engine, init_db


def main() -> None:
    print(f"DATABASE_URL={settings.database_url}")
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        print("DB connection OK")
        init_db(engine)
        print("Entity tables ready")
    except SQLAlchemyError as exc:
        print("DB connection FAILED")
        print(exc)


if __name__ == "__main__":
    main()
