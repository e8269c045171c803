import asyncio
import base64
import hashlib
import hmac
import json
from datetime import date, time

from server.database import SessionLocal
from server.enums import TaskStatus
from server.models import Todo, User
from server.routes import webhook as webhook_route


def _last_reply(channel):
    return channel.replies[-1][1]


def _todos():
    db = SessionLocal()
    try:
        return db.query(Todo).order_by(Todo.id).all()
    finally:
        db.close()


def test_rejects_invalid_signature(api_client, channel):
    response = api_client.post(
        "/webhook",
        content=b'{"events": []}',
        headers={"Content-Type": "application/json", "X-Line-Signature": "forged"},
    )
    assert response.status_code == 403
    assert channel.replies == []


def test_add_todo_with_deadline(send_text, channel):
    response = send_text("add report 2025-09-01 9:30")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "handled": 1}
    reply = _last_reply(channel)
    assert "No email address registered" in reply
    assert 'Added "report" (due 2025-09-01 09:30)' in reply

    todo, = _todos()
    assert todo.user_id == "U1"
    assert todo.deadline_date == date(2025, 9, 1)
    assert todo.deadline_time == time(9, 30)
    assert todo.status == TaskStatus.open


def test_add_todo_defaults_to_today(send_text, channel):
    send_text("追加 洗濯")
    todo, = _todos()
    assert todo.label == "洗濯"
    assert todo.deadline_date == date(2025, 8, 30)
    assert todo.deadline_time is None


def test_add_rejects_bad_date(send_text, channel):
    send_text("add report 09/01")
    assert "Could not read the date" in _last_reply(channel)
    assert _todos() == []


def test_email_register_then_update(send_text, channel):
    send_text("email me@example.com")
    assert _last_reply(channel) == "📧 Email registered: me@example.com"
    send_text("メールアドレス new@example.com")
    assert _last_reply(channel) == "📧 Email updated: new@example.com"
    send_text("email not-an-address")
    assert "valid email" in _last_reply(channel)

    send_text("add report 2025-09-01")
    assert _todos()[0].email == "new@example.com"


def test_progress_lists_own_and_shared_todos(send_text, seed, channel):
    seed(
        User(line_user_id="U1", email="me@example.com"),
        Todo(user_id="U9", label="shared", email="me@example.com"),
        Todo(user_id="U9", label="private"),
        Todo(user_id="U1", label="mine", deadline_date=date(2025, 8, 31), deadline_time=time(18, 0)),
    )

    send_text("進捗確認")
    reply = _last_reply(channel)
    assert "🔹 mine - 2025-08-31 18:00 [open]" in reply
    assert "shared" in reply
    assert "private" not in reply


def test_done_marks_status(send_text, seed, channel):
    seed(Todo(user_id="U1", label="report"))

    send_text("done report")
    assert _last_reply(channel) == '✅ Marked "report" as done.'
    assert _todos()[0].status == TaskStatus.done

    send_text("完了 report")
    assert "No open task" in _last_reply(channel)


def test_notify_toggle(send_text, channel):
    send_text("通知オフ")
    assert "off" in _last_reply(channel)
    db = SessionLocal()
    try:
        assert db.query(User).filter(User.line_user_id == "U1").one().notifications_enabled is False
    finally:
        db.close()


def test_unknown_text_gets_help(send_text, channel):
    send_text("hello")
    assert _last_reply(channel).startswith("📌 Commands:")


def test_deadline_check_fires_due_phase_once(send_text, seed, channel, notifier):
    # 10 minutes past the deadline at the fixed clock time
    seed(Todo(user_id="U1", label="essay", deadline_date=date(2025, 8, 30), deadline_time=time(11, 50)))

    send_text("締め切り確認")
    assert "essay" in _last_reply(channel)
    # text + 10 stickers in batches of 5
    assert len(channel.batches) == 3
    assert all(recipient == "U1" for recipient, _ in channel.batches)
    assert _todos()[0].is_notified is True

    send_text("deadlines")
    report = notifier.run_tick()
    assert len(channel.batches) == 3
    assert report.count("not_due") == 1


def test_deadline_check_respects_opt_out(send_text, seed, channel):
    seed(
        User(line_user_id="U1", notifications_enabled=False),
        Todo(user_id="U1", label="essay", deadline_date=date(2025, 8, 30), deadline_time=time(11, 50)),
    )

    send_text("deadlines")
    assert channel.batches == []
    assert _todos()[0].is_notified is False


def test_non_text_events_are_ignored(api_client, channel):
    body = json.dumps({"events": [{"type": "follow", "replyToken": "r", "source": {"userId": "U1"}}]}).encode()
    signature = base64.b64encode(hmac.new(b"test-secret", body, hashlib.sha256).digest()).decode()
    response = api_client.post("/webhook", content=body, headers={"X-Line-Signature": signature})

    assert response.json() == {"status": "ok", "handled": 0}
    assert channel.replies == []


def test_commands_run_off_the_event_loop(send_text, monkeypatch):
    seen = []

    def fake_handle(body, db, channel, notifier):
        try:
            asyncio.get_running_loop()
            seen.append("event loop")
        except RuntimeError:
            seen.append("worker thread")
        return {"status": "ok", "handled": 0}, 200

    monkeypatch.setattr(webhook_route, "handle_webhook", fake_handle)
    send_text("deadlines")
    assert seen == ["worker thread"]
