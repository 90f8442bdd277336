"""Seed the database with demo users, notifications and preferences."""
import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from datetime import datetime, timedelta
from app.database import SessionLocal, engine, Base
import app.models  # noqa: F401

from app.models.user import User
from app.models.notification import Notification, NotificationPreference

DEMO_MESSAGES = [
    ("urgent", "서버 점검이 30분 후 시작됩니다."),
    ("warning", "디스크 사용량이 85%를 넘었습니다."),
    ("info", "새 댓글이 달렸습니다."),
    ("reminders", "내일 10시 회의가 있습니다."),
    ("security", "새 기기에서 로그인했습니다."),
    (None, "유형이 없는 알림입니다."),
]


def seed():
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        if db.query(User).count() > 0:
            print("Database already seeded. Skipping.")
            return

        users = [
            User(emp_id="admin001", name="관리자 김철수", department="HR팀", role="admin", email="admin@company.com"),
            User(emp_id="user001", name="사용자 정수연", department="개발팀", role="user", email="user1@company.com"),
            User(emp_id="user002", name="사용자 최동현", department="마케팅팀", role="user", email="user2@company.com"),
        ]
        db.add_all(users)
        db.flush()

        now = datetime.utcnow()
        for user in users:
            for index, (noti_type, message) in enumerate(DEMO_MESSAGES * 4):
                created = now - timedelta(hours=index * 5)
                db.add(Notification(
                    user_id=user.user_id,
                    type=noti_type,
                    message=message,
                    read=index % 3 == 0,
                    link=f"/items/{index}" if index % 2 else None,
                    created_at=created,
                    updated_at=created,
                ))

        pref = NotificationPreference(
            user_id=users[1].user_id,
            quiet_hours_enabled=True,
            quiet_hours_start="22:00",
            quiet_hours_end="08:00",
        )
        pref.email_types = ["welcome", "security", "billing"]
        pref.in_app_types = ["all"]
        pref.push_types = ["urgent", "security"]
        db.add(pref)

        db.commit()
        print(f"Seeded {len(users)} users and {len(users) * len(DEMO_MESSAGES) * 4} notifications.")
    finally:
        db.close()


if __name__ == "__main__":
    seed()
