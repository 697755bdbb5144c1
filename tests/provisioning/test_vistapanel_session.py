from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any
from urllib.parse import parse_qs

import httpx
import pytest
from tenacity import wait_none

from app.provisioning.panel import (
    PanelAccountSuspendedError,
    PanelAuthError,
    PanelOperationError,
    PanelRequestError,
)
from app.provisioning.panel.vistapanel import VistaPanelSession

LOGIN_REDIRECT = "<script>document.location.href = 'panel/indexpl.php';</script>"
HOME_PAGE = "<html><body><a href='?option=pma&ttt=1234567890123'>phpMyAdmin</a></body></html>"


@dataclass
class FakePanelServer:
    databases: list[str] = field(default_factory=lambda: ["shop"])
    login_failures: int = 0
    login_body: str = LOGIN_REDIRECT
    set_cookie: bool = True
    home_page: str = HOME_PAGE
    create_error: str | None = None
    requests: list[httpx.Request] = field(default_factory=list)

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        option = request.url.params.get("option")
        cmd = request.url.params.get("cmd")

        if path == "/login.php":
            if self.login_failures:
                self.login_failures -= 1
                return httpx.Response(status_code=503, text="busy")
            headers = {"Set-Cookie": "PHPSESSID=session-1; Path=/"} if self.set_cookie else {}
            return httpx.Response(status_code=200, text=self.login_body, headers=headers)
        if path == "/panel/indexpl.php" and option == "pma":
            rows = "".join(f"<tr><td>epiz_alice_{name}</td></tr>" for name in self.databases)
            return httpx.Response(
                status_code=200,
                text=f"<table><tr><th>Database</th></tr>{rows}</table>",
            )
        if path == "/panel/indexpl.php" and option == "mysql" and cmd == "create":
            if self.create_error is not None:
                return httpx.Response(
                    status_code=302,
                    headers={"Location": "/panel/indexpl.php?option=error"},
                )
            self.databases.append(_form(request)["db"])
            return httpx.Response(status_code=200, text="created")
        if path == "/panel/indexpl.php" and option == "mysql" and cmd == "remove":
            removed = _form(request)["toremove"].removeprefix("epiz_alice_")
            self.databases.remove(removed)
            return httpx.Response(status_code=200, text="removed")
        if path == "/panel/indexpl.php" and option == "error":
            return httpx.Response(
                status_code=200,
                text=f"<div class='alert-message'>{self.create_error}</div>",
            )
        if path == "/panel/indexpl.php" and option == "cnamerecords":
            return httpx.Response(
                status_code=200,
                text=(
                    "<a href='modules-new/cnamerecords/delete.php"
                    "?site=_acme-challenge.blog.example.org'>Delete</a>"
                ),
            )
        if path == "/panel/indexpl.php" and request.method == "POST" and option is None:
            return httpx.Response(
                status_code=200,
                text=(
                    "<table id='stats'>"
                    "<tr><td>Plan:</td><td> Free </td></tr>"
                    "<tr><td>Disk Space Used:</td><td>12 MB</td></tr>"
                    "</table>"
                ),
            )
        if path == "/panel/indexpl.php":
            return httpx.Response(status_code=200, text=self.home_page)
        return httpx.Response(status_code=200, text="ok")

    def client_factory(self, **kwargs: Any) -> httpx.Client:
        return httpx.Client(transport=httpx.MockTransport(self.handle), **kwargs)


def test_login_list_and_close() -> None:
    server = FakePanelServer(databases=["shop", "blog"])

    session = _login(server)
    databases = session.list_databases()
    session.close()
    session.close()

    assert databases == ["shop", "blog"]
    assert session.username == "epiz_alice"
    login_form = _form(server.requests[0])
    assert login_form["uname"] == "epiz_alice"
    assert login_form["passwd"] == "panel-pass"
    assert server.requests[-1].url.params.get("option") == "signout"
    assert sum(1 for request in server.requests if "signout" in str(request.url)) == 1


def test_login_retries_transient_failures() -> None:
    server = FakePanelServer(login_failures=2)

    session = _login(server, attempts=3)

    logins = [request for request in server.requests if request.url.path == "/login.php"]
    assert len(logins) == 3
    session.close()


def test_login_gives_up_after_attempts() -> None:
    server = FakePanelServer(login_failures=5)

    with pytest.raises(PanelRequestError):
        _login(server, attempts=2)

    logins = [request for request in server.requests if request.url.path == "/login.php"]
    assert len(logins) == 2


def test_login_without_session_cookie_is_rejected() -> None:
    server = FakePanelServer(set_cookie=False)

    with pytest.raises(PanelAuthError, match="Unable to login"):
        _login(server)


def test_login_reports_suspended_account() -> None:
    server = FakePanelServer(login_body="<script>location='panel/index_pl_sus.php'</script>")

    with pytest.raises(PanelAccountSuspendedError):
        _login(server)


def test_login_rejects_wrong_credentials() -> None:
    server = FakePanelServer(login_body="<p>Invalid</p>")

    with pytest.raises(PanelAuthError, match="Invalid login credentials"):
        _login(server)

    # Auth errors are not retried.
    assert len(server.requests) == 1


def test_login_approves_notice() -> None:
    server = FakePanelServer(home_page="Please click 'I Approve' below to allow us.")

    session = _login(server)

    approvals = [
        request
        for request in server.requests
        if request.url.params.get("option") == "gdpr"
    ]
    assert len(approvals) == 1
    assert approvals[0].method == "POST"
    session.close()


def test_create_and_delete_database() -> None:
    server = FakePanelServer(databases=[])
    session = _login(server)

    session.create_database("shop")
    assert server.databases == ["shop"]

    session.delete_database("shop")
    assert server.databases == []

    with pytest.raises(PanelOperationError, match="doesn't exist"):
        session.delete_database("missing")
    session.close()


def test_error_redirect_surfaces_alert_message() -> None:
    server = FakePanelServer(create_error="Database already exists")
    session = _login(server)

    with pytest.raises(PanelOperationError, match="Database already exists"):
        session.create_database("shop")
    session.close()


def test_certificate_upload_appends_ca_bundle() -> None:
    server = FakePanelServer()
    session = _login(server)

    session.upload_private_key(domain="shop.example.com", private_key_pem="KEY")
    session.upload_certificate(
        domain="shop.example.com",
        certificate_pem="LEAF\n",
        ca_bundle_pem="CHAIN\n",
    )
    session.close()

    uploads = [
        request for request in server.requests if "sslconfigure" in request.url.path
    ]
    assert [request.url.path for request in uploads] == [
        "/panel/modules-new/sslconfigure/uploadkey.php",
        "/panel/modules-new/sslconfigure/uploadcert.php",
    ]
    assert _form(uploads[0])["key"] == "KEY"
    assert _form(uploads[1]) == {"domain_name": "shop.example.com", "cert": "LEAF\nCHAIN\n"}


def test_delete_cname_record_follows_matching_link() -> None:
    server = FakePanelServer()
    session = _login(server)

    session.delete_cname_record("_acme-challenge.blog.example.org")
    session.delete_cname_record("_acme-challenge.other.example.org")
    session.close()

    deletions = [
        request
        for request in server.requests
        if request.url.path == "/panel/modules-new/cnamerecords/delete.php"
    ]
    assert len(deletions) == 1
    assert deletions[0].url.params.get("site") == "_acme-challenge.blog.example.org"


def test_get_user_stats_parses_stats_table() -> None:
    server = FakePanelServer()
    session = _login(server)

    stats = session.get_user_stats()
    session.close()

    assert stats == {"Plan:": "Free", "Disk Space Used:": "12 MB"}


def test_closed_session_rejects_calls() -> None:
    server = FakePanelServer()
    session = _login(server)
    session.close()

    with pytest.raises(PanelOperationError, match="closed"):
        session.list_databases()


def test_server_errors_are_request_errors() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/login.php":
            return httpx.Response(
                status_code=200,
                text=LOGIN_REDIRECT,
                headers={"Set-Cookie": "PHPSESSID=session-1; Path=/"},
            )
        if request.url.params.get("option") == "pma":
            return httpx.Response(status_code=502, text="bad gateway")
        return httpx.Response(status_code=200, text=HOME_PAGE)

    session = VistaPanelSession.login(
        base_url="cpanel.example.test",
        username="epiz_alice",
        password="panel-pass",
        retry_wait=wait_none(),
        http_client_factory=lambda **kwargs: httpx.Client(
            transport=httpx.MockTransport(handler),
            **kwargs,
        ),
    )

    with pytest.raises(PanelRequestError) as exc_info:
        session.list_databases()
    assert exc_info.value.status_code == 502
    session.close()


def _login(server: FakePanelServer, *, attempts: int = 3) -> VistaPanelSession:
    return VistaPanelSession.login(
        base_url="https://cpanel.example.test/",
        username="epiz_alice",
        password="panel-pass",
        attempts=attempts,
        retry_wait=wait_none(),
        http_client_factory=server.client_factory,
    )


def _form(request: httpx.Request) -> dict[str, str]:
    return {key: values[0] for key, values in parse_qs(request.content.decode()).items()}
