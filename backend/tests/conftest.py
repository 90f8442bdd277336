import pytest
from datetime import datetime, timedelta
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from app.database import Base, get_db
from app.main import app
from app.models.user import User
from app.models.notification import Notification
from app.routers.notifications import get_delivery_channel

TEST_DB_URL = "sqlite:///./test_notifications.db"

engine = create_engine(TEST_DB_URL, connect_args={"check_same_thread": False})
TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=engine)

BASE_TIME = datetime(2026, 3, 2, 9, 0, 0)


def override_get_db():
    db = TestingSession()
    try:
        yield db
    finally:
        db.close()


app.dependency_overrides[get_db] = override_get_db


class RecordingChannel:
    """전달 채널 대역. 보낸 이벤트를 (user_id, event) 로 기록한다."""

    def __init__(self):
        self.sent = []

    def send_to_user(self, user_id, event):
        self.sent.append((user_id, event))

    def events(self, event_type=None):
        return [event for _, event in self.sent if event_type is None or event["type"] == event_type]


@pytest.fixture(autouse=True)
def setup_db():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    db = TestingSession()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def channel():
    return RecordingChannel()


@pytest.fixture
def client(channel):
    app.dependency_overrides[get_delivery_channel] = lambda: channel
    yield TestClient(app)
    app.dependency_overrides.pop(get_delivery_channel, None)


@pytest.fixture
def seed_users(db):
    users = {
        "admin": User(emp_id="admin001", name="Admin", role="admin", department="HR"),
        "alice": User(emp_id="user001", name="Alice", role="user", department="Dev"),
        "bob": User(emp_id="user002", name="Bob", role="user", department="Biz"),
    }
    for u in users.values():
        db.add(u)
    db.commit()
    for u in users.values():
        db.refresh(u)
    return users


@pytest.fixture
def make_notification(db):
    """created_at 을 분 단위 오프셋으로 지정해 알림을 만든다."""

    def _make(user, message="", noti_type=None, read=False, minutes=0, link=None):
        created = BASE_TIME + timedelta(minutes=minutes)
        row = Notification(
            user_id=user.user_id,
            message=message,
            type=noti_type,
            read=read,
            link=link,
            created_at=created,
            updated_at=created,
        )
        db.add(row)
        db.commit()
        db.refresh(row)
        return row

    return _make


def get_token(client, emp_id: str) -> str:
    resp = client.post("/api/auth/login", json={"emp_id": emp_id})
    assert resp.status_code == 200, resp.text
    return resp.json()["access_token"]


def auth_headers(client, emp_id: str) -> dict:
    return {"Authorization": f"Bearer {get_token(client, emp_id)}"}
