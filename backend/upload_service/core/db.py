from sqlmodel import SQLModel, Session, create_engine
from upload_service.core.config import get_settings

engine = create_engine(get_settings().DATABASE_URL, pool_pre_ping=True)


def init_db():
    # register tables before create_all
    from upload_service import models  # noqa: F401
    SQLModel.metadata.create_all(engine)


def get_session():
    with Session(engine) as session:
        yield session
