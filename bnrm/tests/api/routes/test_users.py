import uuid

from fastapi.testclient import TestClient
from sqlmodel import Session, select

from bnrm import crud
from bnrm.core.config import settings
from bnrm.core.security import verify_password
from bnrm.models import ActivityLog, User, UserCreate
from bnrm.tests.utils.utils import random_email, random_lower_string


def test_get_users_superuser_me(
    client: TestClient, superuser_token_headers: dict[str, str]
) -> None:
    r = client.get(f"{settings.API_V1_STR}/users/me", headers=superuser_token_headers)
    current_user = r.json()
    assert current_user
    assert current_user["is_active"] is True
    assert current_user["is_superuser"]
    assert current_user["email"] == settings.FIRST_SUPERUSER


def test_create_user_new_email(
    client: TestClient, superuser_token_headers: dict[str, str], db: Session
) -> None:
    username = random_email()
    password = random_lower_string()
    data = {"email": username, "password": password, "role": "researcher"}
    r = client.post(
        f"{settings.API_V1_STR}/users/",
        headers=superuser_token_headers,
        json=data,
    )
    assert 200 <= r.status_code < 300
    created_user = r.json()
    user = crud.get_user_by_email(session=db, email=username)
    assert user
    assert user.email == created_user["email"]
    assert created_user["role"] == "researcher"


def test_create_user_by_normal_user(
    client: TestClient, normal_user_token_headers: dict[str, str]
) -> None:
    data = {"email": random_email(), "password": random_lower_string()}
    r = client.post(
        f"{settings.API_V1_STR}/users/",
        headers=normal_user_token_headers,
        json=data,
    )
    assert r.status_code == 403


def test_retrieve_users_requires_staff(
    client: TestClient,
    normal_user_token_headers: dict[str, str],
    librarian_token_headers: dict[str, str],
) -> None:
    r = client.get(f"{settings.API_V1_STR}/users/", headers=normal_user_token_headers)
    assert r.status_code == 403
    r = client.get(f"{settings.API_V1_STR}/users/", headers=librarian_token_headers)
    assert r.status_code == 200
    all_users = r.json()
    assert all_users["count"] >= 2
    for item in all_users["data"]:
        assert "email" in item


def test_get_existing_user_permissions_error(
    client: TestClient, normal_user_token_headers: dict[str, str], db: Session
) -> None:
    user = crud.create_user(
        session=db, user_create=UserCreate(email=random_email(), password=random_lower_string())
    )
    r = client.get(f"{settings.API_V1_STR}/users/{user.id}", headers=normal_user_token_headers)
    assert r.status_code == 403
    r = client.get(f"{settings.API_V1_STR}/users/{uuid.uuid4()}", headers=normal_user_token_headers)
    assert r.status_code == 403


def test_register_user(client: TestClient, db: Session) -> None:
    username = random_email()
    password = random_lower_string()
    data = {"email": username, "password": password, "full_name": "Amina Tazi", "preferred_language": "ar"}
    r = client.post(f"{settings.API_V1_STR}/users/signup", json=data)
    assert r.status_code == 200
    created = r.json()
    assert created["role"] == "public_user"
    assert created["preferred_language"] == "ar"

    user_db = db.exec(select(User).where(User.email == username)).first()
    assert user_db
    verified, _ = verify_password(password, user_db.hashed_password)
    assert verified
    log = db.exec(
        select(ActivityLog).where(ActivityLog.action == "signup", ActivityLog.resource_id == str(user_db.id))
    ).first()
    assert log is not None

    r = client.post(f"{settings.API_V1_STR}/users/signup", json=data)
    assert r.status_code == 400


def test_update_password_me_same_password_error(
    client: TestClient, superuser_token_headers: dict[str, str]
) -> None:
    data = {
        "current_password": settings.FIRST_SUPERUSER_PASSWORD,
        "new_password": settings.FIRST_SUPERUSER_PASSWORD,
    }
    r = client.patch(
        f"{settings.API_V1_STR}/users/me/password",
        headers=superuser_token_headers,
        json=data,
    )
    assert r.status_code == 400
    assert r.json()["detail"] == "New password cannot be the same as the current one"


def test_role_change_is_logged(
    client: TestClient, superuser_token_headers: dict[str, str], db: Session
) -> None:
    user = crud.create_user(
        session=db, user_create=UserCreate(email=random_email(), password=random_lower_string())
    )
    r = client.patch(
        f"{settings.API_V1_STR}/users/{user.id}",
        headers=superuser_token_headers,
        json={"role": "librarian"},
    )
    assert r.status_code == 200
    assert r.json()["role"] == "librarian"
    log = db.exec(
        select(ActivityLog).where(ActivityLog.action == "role_changed", ActivityLog.resource_id == str(user.id))
    ).one()
    assert log.details == {"from": "public_user", "to": "librarian"}
