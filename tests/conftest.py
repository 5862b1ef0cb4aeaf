"""
Pytest configuration and shared fixtures.
"""

import smtplib
from unittest.mock import MagicMock

import httpx
import pytest

from monitor.models import EmailConfig, SmtpConfig


@pytest.fixture
def viewstate_page():
    """Page with two volatile hidden fields and one ordinary input."""
    return (
        b'<html>\n<body>\n'
        b'<input id="test" type="text" value="testing"/>\n'
        b'<input id="__VIEWSTATE" type="hidden" value="this should be deleted"/>\n'
        b'<input id="__EVENTVALIDATION" type="hidden" value="this should be deleted"/>\n'
        b'</body>\n</html>\n'
    )


@pytest.fixture
def redacted_viewstate_page():
    """Expected output of redacting viewstate_page."""
    return (
        b'<html>\n<body>\n'
        b'<input id="test" type="text" value="testing"/>\n'
        b'<input id="__VIEWSTATE" type="hidden" value=""/>\n'
        b'<input id="__EVENTVALIDATION" type="hidden" value=""/>\n'
        b'</body>\n</html>\n'
    )


@pytest.fixture
def marker_page():
    """Page showing the Buy Tickets button."""
    return (
        b'<html>\n<body>\n'
        b'<img id="ctl00_Imagepng3" class="hand" '
        b'src="../../../App_Themes/Default/Images/buy-tickets.png" '
        b'alt="Buy Tickets" style="border-width:0px;" />\n'
        b'</body>\n</html>\n'
    )


@pytest.fixture
def plain_page():
    """Page without the marker."""
    return b"<html>\n<body>\n<h2>test</h2>\n</body>\n</html>\n"


@pytest.fixture
def smtp_config():
    """SMTP relay configuration for testing."""
    return SmtpConfig(
        Host="smtp.example.com",
        Port=587,
        Username="monitor@example.com",
        Password="secret",
    )


@pytest.fixture
def body_template(tmp_path):
    """Message body template file."""
    path = tmp_path / "body.tmpl"
    path.write_text(
        "To: $to\nFrom: $from\nSubject: $subject\n\nThe page at $url has changed.\n",
        encoding="utf-8",
    )
    return path


@pytest.fixture
def change_email(body_template):
    """Email configuration for content changes."""
    return EmailConfig(
        Subject="Page changed",
        From="monitor@example.com",
        To=["alice@example.com", "bob@example.com", "carol@example.com"],
        BodyTmpl=[str(body_template)],
    )


@pytest.fixture
def marker_email(body_template):
    """Email configuration for the Buy Tickets marker."""
    return EmailConfig(
        Subject="Tickets on sale",
        From="monitor@example.com",
        To=["alice@example.com"],
        BodyTmpl=[str(body_template)],
    )


@pytest.fixture
def smtp_client():
    """Mock SMTP client whose every command succeeds."""
    client = MagicMock(spec=smtplib.SMTP)
    client.ehlo.return_value = (250, b"smtp.example.com")
    client.starttls.return_value = (220, b"Ready to start TLS")
    client.auth.return_value = (235, b"Authentication successful")
    client.mail.return_value = (250, b"OK")
    client.rcpt.return_value = (250, b"OK")
    client.data.return_value = (250, b"Queued")
    client.quit.return_value = (221, b"Bye")
    return client


@pytest.fixture
def smtp_factory(smtp_client):
    """Factory returning the mock SMTP client."""
    return MagicMock(return_value=smtp_client)


def make_transport(pages):
    """
    Build an httpx MockTransport serving ``pages`` in order.

    Each entry is either bytes (served with status 200) or an httpx.Response.
    The last entry is repeated once the list is exhausted.
    """
    calls = []

    def handler(request):
        index = min(len(calls), len(pages) - 1)
        calls.append(request)
        page = pages[index]
        if isinstance(page, httpx.Response):
            return page
        return httpx.Response(200, content=page)

    transport = httpx.MockTransport(handler)
    transport.calls = calls
    return transport


@pytest.fixture
def transport_factory():
    """Expose make_transport to tests."""
    return make_transport
