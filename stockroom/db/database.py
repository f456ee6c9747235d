from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from stockroom.core.config import settings


class Base(DeclarativeBase):
    pass


is_sqlite = settings.database_url.startswith("sqlite")

connect_args = (
    {"check_same_thread": False}
    if is_sqlite
    else {"sslmode": settings.database_sslmode}
)

engine = create_engine(
    settings.database_url,
    connect_args=connect_args,
    echo=settings.database_echo,
    pool_pre_ping=not is_sqlite,
    pool_recycle=1800 if not is_sqlite else -1,
)

SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
