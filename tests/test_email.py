from types import SimpleNamespace

from accounts_api.services.email import EmailSender


def recording_sender(settings):
    sender = EmailSender(settings)
    sender.outbox = []

    def deliver(to_email, subject, text_body, html_body):
        sender.outbox.append(
            {"to": to_email, "subject": subject, "text": text_body, "html": html_body}
        )
        return True

    sender._deliver = deliver
    return sender


def test_dev_mode_without_smtp(settings):
    sender = EmailSender(settings)
    assert not sender.is_configured
    assert sender._deliver("ada@example.com", "Hello", "body", "<p>body</p>") is True


async def test_links_point_at_the_frontend(settings):
    sender = recording_sender(settings)
    user = SimpleNamespace(first_name="Ada", email="ada@example.com")

    assert await sender.send_welcome_email(user, "verify123")
    assert await sender.send_password_reset_email(user, "reset456")

    welcome, reset = sender.outbox
    assert f"{settings.frontend_url}/verify-email/verify123" in welcome["text"]
    assert f"{settings.frontend_url}/reset-password/reset456" in reset["html"]
    assert "10 minutes" in reset["subject"]


async def test_user_values_are_escaped_in_html(settings):
    sender = recording_sender(settings)
    user = SimpleNamespace(first_name="<b>Ada</b>", email="ada@example.com")

    await sender.send_welcome_email(user, "verify123")
    await sender.send_password_reset_email(user, "reset456")
    await sender.send_password_changed_email(user)

    for message in sender.outbox:
        assert "<b>Ada</b>" not in message["html"]
        assert "&lt;b&gt;Ada&lt;/b&gt;" in message["html"]
