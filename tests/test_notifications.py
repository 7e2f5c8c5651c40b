import resend

from casaora import email_service
from casaora.models import Notification
from casaora.services import notification_service
from casaora.services.notification_service import notify_all_admins, notify_user


def test_notification_stored_without_email_provider(db, make_profile):
    user = make_profile()

    notification = notify_user(db, user.id, "welcome", "Welcome", "Hello there")

    assert notification.id is not None
    assert db.query(Notification).filter_by(user_id=user.id).count() == 1


def test_email_sent_with_cta(db, make_profile, monkeypatch):
    sent = []
    monkeypatch.setattr(
        notification_service,
        "send_notification_email",
        lambda to, title, body, cta_label=None, cta_path=None: sent.append((to, title, cta_path)),
    )
    user = make_profile(email="ana@example.com")

    notify_user(db, user.id, "booking_accepted", "Accepted", "See you soon", cta_path="/bookings/1")

    assert sent == [("ana@example.com", "Accepted", "/bookings/1")]


def test_email_failure_keeps_notification(db, make_profile, monkeypatch):
    def boom(*args, **kwargs):
        raise RuntimeError("provider down")

    monkeypatch.setattr(notification_service, "send_notification_email", boom)
    user = make_profile()

    assert notify_user(db, user.id, "welcome", "Welcome", "Hello") is not None


def test_notify_all_admins(db, make_profile):
    make_profile("admin")
    make_profile("admin")
    make_profile()

    assert notify_all_admins(db, "admin_alert", "Alert", "Something happened") == 2
    assert db.query(Notification).filter_by(notification_type="admin_alert").count() == 2


def test_layout_escapes_text():
    rendered = email_service.render_layout("Hi <b>", "line one\nline <two>", "Open", "/x")
    assert "Hi &lt;b&gt;" in rendered
    assert "line &lt;two&gt;" in rendered
    assert "/x" in rendered


def test_send_email_through_resend(monkeypatch):
    calls = []
    monkeypatch.setattr(email_service, "RESEND_API_KEY", "re_test")
    monkeypatch.setattr(resend.Emails, "send", staticmethod(lambda params: calls.append(params) or {"id": "em_1"}))

    response = email_service.send_notification_email("ana@example.com", "Payout sent", "Done")

    assert response == {"id": "em_1"}
    assert calls[0]["to"] == ["ana@example.com"]
    assert calls[0]["subject"] == "Payout sent - Casaora"
