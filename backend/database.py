# backend/database.py
from sqlalchemy import create_engine
from sqlalchemy.ext.declarative import declarative_base
from sqlalchemy.orm import sessionmaker

from config import settings

# 1. Adres bazy z konfiguracji (Azure / .env) lub domyślny SQLite
SQLALCHEMY_DATABASE_URL = settings.DATABASE_URL

# 2. Poprawka dla Azure (zamienia postgres:// na postgresql://, bo SQLAlchemy tego wymaga)
if SQLALCHEMY_DATABASE_URL and SQLALCHEMY_DATABASE_URL.startswith("postgres://"):
    SQLALCHEMY_DATABASE_URL = SQLALCHEMY_DATABASE_URL.replace("postgres://", "postgresql://", 1)


def engine_options(url: str, statement_timeout_ms: int = None, pool_timeout: float = None) -> dict:
    statement_timeout_ms = settings.DB_STATEMENT_TIMEOUT_MS if statement_timeout_ms is None else statement_timeout_ms
    pool_timeout = settings.DB_POOL_TIMEOUT if pool_timeout is None else pool_timeout

    # 3. Konfiguracja zależna od bazy
    if "sqlite" in url:
        # Tylko dla SQLite; timeout = seconds to wait on a locked database file
        return {"connect_args": {"check_same_thread": False, "timeout": statement_timeout_ms / 1000}}
    # PostgreSQL cancels anything running longer (row lock waits included)
    return {
        "connect_args": {"options": f"-c statement_timeout={statement_timeout_ms}"},
        "pool_timeout": pool_timeout,
    }


def make_engine(url: str, **overrides):
    return create_engine(url, **engine_options(url, **overrides))


engine = make_engine(SQLALCHEMY_DATABASE_URL)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()

def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

def init_db():
    # Register every model on Base.metadata before creating tables
    import models.users  # noqa: F401
    import models.product  # noqa: F401
    import models.cart  # noqa: F401
    import models.order  # noqa: F401
    import models.stock  # noqa: F401
    import models.payment  # noqa: F401
    import models.log  # noqa: F401
    Base.metadata.create_all(bind=engine)
