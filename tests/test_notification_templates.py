from hotel_ops.notifications.templates import (
    DEFAULT_GUEST_NAME,
    DEFAULT_HOTEL_NAME,
    render_email,
    render_whatsapp,
    resolve_link,
)

BASE = "https://guest.example.com"


def test_link_falls_back_to_precheckin_token_url():
    assert resolve_link({"token": "abc"}, BASE + "/") == f"{BASE}/precheckin/abc"
    assert resolve_link({"link": "https://x.test/l", "token": "abc"}, BASE) == "https://x.test/l"


def test_whatsapp_precheckin_link_uses_defaults():
    body = render_whatsapp("precheckin_link", {"token": "abc"}, guest_name=None, public_base_url=BASE)

    assert body == f"Hello {DEFAULT_GUEST_NAME}, please complete your pre-checkin here: {BASE}/precheckin/abc"


def test_whatsapp_reminders_use_guest_name():
    first = render_whatsapp("precheckin_reminder_1", {"link": "L"}, guest_name="Ana", public_base_url=BASE)
    second = render_whatsapp("precheckin_reminder_2", {"link": "L"}, guest_name="Ana", public_base_url=BASE)

    assert first.startswith("Hi Ana, your stay is coming up tomorrow!")
    assert second.startswith("Good morning Ana!")
    assert first.endswith(": L") and second.endswith(": L")


def test_whatsapp_unknown_template_dumps_payload():
    body = render_whatsapp("room_upgrade", {"b": 2, "a": 1}, guest_name="Ana", public_base_url=BASE)

    assert body == 'Notification: {"a": 1, "b": 2}'


def test_email_subject_and_escaped_body():
    content = render_email(
        "precheckin_link",
        {"link": "https://x.test/?a=1&b=2"},
        guest_name="<Ana>",
        hotel_name="Casa & Mar",
        public_base_url=BASE,
    )

    assert content.subject == "Complete your Pre-checkin"
    assert "&lt;Ana&gt;" in content.html
    assert "<Ana>" not in content.html
    assert "Casa &amp; Mar" in content.html
    assert 'href="https://x.test/?a=1&amp;b=2"' in content.html


def test_email_day_of_arrival_subject_names_hotel():
    content = render_email("precheckin_reminder_2", {}, guest_name="Ana", hotel_name=None, public_base_url=BASE)

    assert content.subject == f"Welcome to {DEFAULT_HOTEL_NAME}!"
    assert f"{BASE}/precheckin/" in content.html


def test_email_unknown_template_renders_generic_update():
    content = render_email("room_upgrade", {}, guest_name=None, hotel_name="Casa Mar", public_base_url=BASE)

    assert content.subject == "Update from Casa Mar"
    assert DEFAULT_GUEST_NAME in content.html
