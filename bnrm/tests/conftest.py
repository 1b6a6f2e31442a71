import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ENVIRONMENT"] = "local"
os.environ["REALTIME_POLL_SECONDS"] = "0"
os.environ["SMTP_HOST"] = ""

from collections.abc import Generator  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlmodel import Session  # noqa: E402

from bnrm.core.config import settings  # noqa: E402
from bnrm.core.db import engine, init_db  # noqa: E402
from bnrm.main import app  # noqa: E402
from bnrm.tests.utils.user import authentication_token_from_email  # noqa: E402
from bnrm.tests.utils.utils import get_superuser_token_headers  # noqa: E402


@pytest.fixture(scope="session", autouse=True)
def db() -> Generator[Session, None, None]:
    with Session(engine) as session:
        init_db(session)
        yield session


@pytest.fixture(scope="module")
def client() -> Generator[TestClient, None, None]:
    with TestClient(app) as c:
        yield c


@pytest.fixture(scope="module")
def superuser_token_headers(client: TestClient) -> dict[str, str]:
    return get_superuser_token_headers(client)


@pytest.fixture(scope="module")
def normal_user_token_headers(client: TestClient, db: Session) -> dict[str, str]:
    return authentication_token_from_email(
        client=client, email="lecteur@example.com", db=db
    )


@pytest.fixture(scope="module")
def librarian_token_headers(client: TestClient, db: Session) -> dict[str, str]:
    return authentication_token_from_email(
        client=client, email="bibliothecaire@example.com", db=db, role="librarian"
    )


@pytest.fixture
def api() -> str:
    return settings.API_V1_STR
