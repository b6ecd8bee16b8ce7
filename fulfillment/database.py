import os
from pathlib import Path
from dotenv import load_dotenv
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base

# Force-load .env (Windows-safe, reload-safe)
BASE_DIR = Path(__file__).resolve().parent.parent
ENV_PATH = BASE_DIR / ".env"
load_dotenv(dotenv_path=ENV_PATH)

DATABASE_URL = os.getenv("DATABASE_URL")

if not DATABASE_URL:
    raise RuntimeError("DATABASE_URL is not set. Check your .env file.")


def engine_options(url):
    """
    Connection settings for the order store. Concurrent writers are resolved
    by the version check on each UPDATE, so a writer that finds the database
    busy waits for its turn instead of failing outright.
    """
    if url.startswith("sqlite"):
        return {
            "connect_args": {
                "check_same_thread": False,
                "timeout": float(os.getenv("SQLITE_BUSY_TIMEOUT", "15")),
            },
        }
    return {
        "pool_pre_ping": True,
        "isolation_level": "READ COMMITTED",
    }


engine = create_engine(DATABASE_URL, **engine_options(DATABASE_URL))

# every read after a commit must see the stored version, not a cached one
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=True)

Base = declarative_base()


def init_db(bind=None):
    # the tables register themselves on Base when the models are imported
    import fulfillment.models  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)
