import asyncio
import smtplib

import httpx
import pytest

from surveymail.config import MailConfig
from surveymail.connectors.mail import http_transport
from surveymail.connectors.mail.console_transport import ConsoleTransport
from surveymail.connectors.mail.factory import select_transport
from surveymail.connectors.mail.http_transport import HTTPMailTransport
from surveymail.connectors.mail.smtp_transport import SMTPTransport
from surveymail.core.errors import TransportError, ValidationError

HTTP_CONFIG = MailConfig(
    transport="http",
    from_email="surveys@example.com",
    api_url="https://mail.example.com/send",
    api_key="secret",
)


def _http_transport(handler):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HTTPMailTransport(HTTP_CONFIG, client=client)


# ── Selection ──


@pytest.mark.parametrize(
    "name,cls",
    [("console", ConsoleTransport), ("SMTP", SMTPTransport), ("http", HTTPMailTransport)],
)
def test_select_transport(name, cls):
    assert isinstance(select_transport(MailConfig(transport=name)), cls)


def test_select_unknown_transport():
    with pytest.raises(ValidationError):
        select_transport(MailConfig(transport="pigeon"))


def test_console_transport_always_succeeds():
    transport = ConsoleTransport(MailConfig())
    asyncio.run(transport.send("a@example.com", "Hi", "<p>Hi</p>"))


# ── HTTP ──


def test_http_send_posts_message():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(202, json={"id": "msg-1"})

    transport = _http_transport(handler)
    asyncio.run(transport.send("a@example.com", "Hello", "<p>Body</p>"))

    assert len(seen) == 1
    assert seen[0].headers["Authorization"] == "Bearer secret"
    body = seen[0].read().decode()
    assert "a@example.com" in body
    assert "surveys@example.com" in body


def test_http_client_error_is_not_retried():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(400, json={"error": "bad address"})

    transport = _http_transport(handler)
    with pytest.raises(TransportError) as exc:
        asyncio.run(transport.send("bad@example.com", "Hello", "<p>Body</p>"))

    assert len(calls) == 1
    assert exc.value.recipient == "bad@example.com"
    assert "400" in exc.value.message


def test_http_server_error_retries(monkeypatch):
    monkeypatch.setattr(http_transport, "RETRY_BASE_DELAY", 0)
    responses = iter([httpx.Response(503), httpx.Response(200)])

    transport = _http_transport(lambda request: next(responses))
    asyncio.run(transport.send("a@example.com", "Hello", "<p>Body</p>"))


def test_http_connection_failure(monkeypatch):
    monkeypatch.setattr(http_transport, "RETRY_BASE_DELAY", 0)

    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    transport = _http_transport(handler)
    with pytest.raises(TransportError):
        asyncio.run(transport.send("a@example.com", "Hello", "<p>Body</p>"))


# ── SMTP ──


class FakeSMTP:
    instances = []
    fail_with = None

    def __init__(self, host, port, timeout=None):
        self.host = host
        self.port = port
        self.messages = []
        self.started_tls = False
        FakeSMTP.instances.append(self)

    def ehlo(self):
        pass

    def has_extn(self, name):
        return name == "STARTTLS"

    def starttls(self, context=None):
        self.started_tls = True

    def login(self, user, password):
        pass

    def sendmail(self, from_addr, to_addrs, msg):
        if FakeSMTP.fail_with:
            raise FakeSMTP.fail_with
        self.messages.append((from_addr, to_addrs, msg))

    def quit(self):
        pass

    def close(self):
        pass


@pytest.fixture
def fake_smtp(monkeypatch):
    FakeSMTP.instances = []
    FakeSMTP.fail_with = None
    monkeypatch.setattr(smtplib, "SMTP", FakeSMTP)
    return FakeSMTP


def test_smtp_send_uses_starttls(fake_smtp):
    transport = SMTPTransport(MailConfig(transport="smtp", smtp_host="mail.test"))
    asyncio.run(transport.send("a@example.com", "Hello", "<p>Body</p>"))

    server = fake_smtp.instances[0]
    assert server.host == "mail.test"
    assert server.started_tls
    from_addr, to_addrs, msg = server.messages[0]
    assert to_addrs == ["a@example.com"]
    assert "Subject: Hello" in msg


def test_smtp_rejection_maps_to_transport_error(fake_smtp):
    fake_smtp.fail_with = smtplib.SMTPDataError(550, "Mailbox unavailable")
    transport = SMTPTransport(MailConfig(transport="smtp", smtp_host="mail.test"))

    with pytest.raises(TransportError) as exc:
        asyncio.run(transport.send("a@example.com", "Hello", "<p>Body</p>"))
    assert exc.value.recipient == "a@example.com"


def test_smtp_connection_refused_maps_to_transport_error(monkeypatch):
    def refuse(*args, **kwargs):
        raise ConnectionRefusedError("Connection refused")

    monkeypatch.setattr(smtplib, "SMTP", refuse)
    transport = SMTPTransport(MailConfig(transport="smtp", smtp_host="mail.test"))

    with pytest.raises(TransportError):
        asyncio.run(transport.send("a@example.com", "Hello", "<p>Body</p>"))
