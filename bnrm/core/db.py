import logging

from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine, select

from bnrm import crud
from bnrm.core.config import settings
from bnrm.models import User, UserCreate

logger = logging.getLogger(__name__)


def _build_engine():
    uri = settings.SQLALCHEMY_DATABASE_URI
    if uri.startswith("sqlite"):
        # In-memory SQLite must share a single connection across threads
        return create_engine(
            uri,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_engine(uri, pool_pre_ping=True)


engine = _build_engine()


def init_db(session: Session) -> None:
    SQLModel.metadata.create_all(engine)

    user = session.exec(
        select(User).where(User.email == settings.FIRST_SUPERUSER)
    ).first()
    if not user:
        logger.info("Creating first superuser %s", settings.FIRST_SUPERUSER)
        user_in = UserCreate(
            email=settings.FIRST_SUPERUSER,
            password=settings.FIRST_SUPERUSER_PASSWORD,
            is_superuser=True,
            role="admin",
        )
        crud.create_user(session=session, user_create=user_in)
