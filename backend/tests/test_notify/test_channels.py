"""Tests for the alert feed, preference store and email relay client."""

from __future__ import annotations

import json
from datetime import timedelta

import httpx
import pytest

from app.errors import RelayError
from app.models.artifacts import utc_now
from app.notify.alerts import LocalAlertChannel
from app.notify.email import EmailNotification, EmailRelayClient
from app.notify.preferences import EMAIL_KEY, PreferenceStore


class TestLocalAlertChannel:
    def test_notify_and_list(self):
        alerts = LocalAlertChannel()
        alert = alerts.notify("Title", "Body")
        assert alert is not None
        assert alert.icon == "/favicon.ico"
        assert [a.id for a in alerts.active()] == [alert.id]

    def test_alerts_expire(self):
        alerts = LocalAlertChannel()
        alerts.notify("Title", "Body")
        assert alerts.active(now=utc_now() + timedelta(seconds=6)) == []

    def test_dismiss(self):
        alerts = LocalAlertChannel()
        alert = alerts.notify("Title", "Body")
        assert alerts.dismiss(alert.id) is True
        assert alerts.dismiss(alert.id) is False
        assert alerts.active() == []

    def test_unsupported(self):
        alerts = LocalAlertChannel(supported=False)
        assert alerts.request_permission(True) is False
        assert alerts.notify("Title", "Body") is None

    def test_permission_follows_answer(self):
        alerts = LocalAlertChannel()
        assert alerts.request_permission(True) is True
        assert alerts.request_permission(False) is False


class TestPreferenceStore:
    def test_empty(self, data_dir):
        assert PreferenceStore(data_dir).load_email() is None

    def test_persists_across_instances(self, data_dir):
        PreferenceStore(data_dir).save_email("user@example.com")
        assert PreferenceStore(data_dir).load_email() == "user@example.com"

        stored = json.loads((data_dir / "preferences.json").read_text())
        assert stored == {EMAIL_KEY: "user@example.com"}

    def test_clear_removes_key(self, data_dir):
        store = PreferenceStore(data_dir)
        store.save_email("user@example.com")
        store.save_email(None)
        assert store.load_email() is None
        assert EMAIL_KEY not in json.loads((data_dir / "preferences.json").read_text())

    def test_corrupt_file(self, data_dir):
        store = PreferenceStore(data_dir)
        store.prefs_file.write_text("{not json")
        assert store.load_email() is None
        store.save_email("x@example.com")
        assert store.load_email() == "x@example.com"


@pytest.mark.asyncio
class TestEmailRelayClient:
    async def test_posts_payload(self):
        seen: list[httpx.Request] = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"message": "Email sent successfully", "recipient": "u@example.com"})

        client = EmailRelayClient(
            "/api/send-email", base_url="http://app.test", transport=httpx.MockTransport(handler)
        )
        note = EmailNotification("u@example.com", "Subject", "Body", image_data="data:image/gif;base64,AAAA")
        result = await client.send(note)

        assert result["recipient"] == "u@example.com"
        (request,) = seen
        assert str(request.url) == "http://app.test/api/send-email"
        assert json.loads(request.content) == {
            "email": "u@example.com",
            "subject": "Subject",
            "message": "Body",
            "imageData": "data:image/gif;base64,AAAA",
        }

    async def test_absolute_endpoint_used_as_is(self):
        client = EmailRelayClient("https://mail.example.com/send", base_url="http://app.test")
        assert client.url == "https://mail.example.com/send"

    async def test_error_status(self):
        transport = httpx.MockTransport(lambda req: httpx.Response(500, json={"error": "Error sending email"}))
        client = EmailRelayClient("http://relay.test/send", transport=transport)
        with pytest.raises(RelayError, match="500"):
            await client.send(EmailNotification("u@example.com", "S", "M"))

    async def test_unreachable(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = EmailRelayClient("http://relay.test/send", transport=httpx.MockTransport(handler))
        with pytest.raises(RelayError):
            await client.send(EmailNotification("u@example.com", "S", "M"))

    async def test_mock_mode_sends_nothing(self):
        def handler(request):
            raise AssertionError("no request expected")

        client = EmailRelayClient("http://relay.test/send", mock=True, transport=httpx.MockTransport(handler))
        result = await client.send(EmailNotification("u@example.com", "S", "M"))
        assert result["message"] == "mock"
