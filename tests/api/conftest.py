import base64
import hashlib
import hmac
import json

import pytest
from fastapi.testclient import TestClient

from server import models  # noqa: F401
from server.database import Base, SessionLocal, engine
from server.dependencies import get_deadline_scheduler, get_line_channel
from server.main import app
from server.store import SqlTaskStore


@pytest.fixture
def db_tables():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def sql_store(db_tables):
    return SqlTaskStore(SessionLocal)


@pytest.fixture
def seed(db_tables):
    """Insert ORM objects in their own session and return their ids."""
    def _seed(*objects):
        db = SessionLocal()
        try:
            db.add_all(objects)
            db.commit()
            return [o.id for o in objects]
        finally:
            db.close()
    return _seed


@pytest.fixture
def notifier(sql_store, build_scheduler):
    return build_scheduler(sql_store)


@pytest.fixture
def api_client(db_tables, channel, notifier):
    # no `with`: startup hooks would build a real LINE client
    app.dependency_overrides[get_line_channel] = lambda: channel
    app.dependency_overrides[get_deadline_scheduler] = lambda: notifier
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def send_text(api_client, channel):
    """POST a signed LINE text-message webhook and return the response."""
    counter = {"n": 0}

    def _send(text, user_id="U1"):
        counter["n"] += 1
        body = json.dumps({
            "destination": "bot",
            "events": [{
                "type": "message",
                "replyToken": f"reply-{counter['n']}",
                "source": {"type": "user", "userId": user_id},
                "message": {"type": "text", "id": str(counter["n"]), "text": text},
            }],
        }).encode("utf-8")
        digest = hmac.new(channel.config.CHANNEL_SECRET.encode(), body, hashlib.sha256).digest()
        return api_client.post(
            "/webhook",
            content=body,
            headers={"Content-Type": "application/json", "X-Line-Signature": base64.b64encode(digest).decode()},
        )
    return _send
