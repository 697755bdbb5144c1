"""VistaPanel session adapter (form posts and HTML scraping)."""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from typing import Any

import httpx
from bs4 import BeautifulSoup
from tenacity import (
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)
from tenacity.wait import wait_base

from app.provisioning.panel.base import (
    PanelAccountSuspendedError,
    PanelAuthError,
    PanelOperationError,
    PanelRequestError,
)

logger = logging.getLogger(__name__)

HTTPClientFactory = Callable[..., httpx.Client]

SESSION_COOKIE_NAME = "PHPSESSID"
USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) hostpanel"
# Static anti-CSRF field the login form expects.
LOGIN_SURF_TOKEN = "567811917014474432"
_TOKEN_PATTERN = re.compile(r"ttt=(\d{10,})")
_BANDWIDTH_SUFFIX = re.compile(r"MB\n.{1,50}", re.IGNORECASE | re.DOTALL)


class VistaPanelSession:
    def __init__(
        self,
        *,
        base_url: str,
        username: str,
        client: httpx.Client,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self.username = username
        self._client = client
        self._closed = False

    @classmethod
    def login(
        cls,
        *,
        base_url: str,
        username: str,
        password: str,
        theme: str = "PaperLantern",
        timeout_seconds: float = 30.0,
        attempts: int = 3,
        retry_wait: wait_base | None = None,
        http_client_factory: HTTPClientFactory = httpx.Client,
    ) -> VistaPanelSession:
        if not username or not password:
            raise PanelAuthError("panel username and password are required")

        normalized_base_url = _normalize_base_url(base_url)
        client = http_client_factory(
            base_url=normalized_base_url,
            headers={"User-Agent": USER_AGENT},
            timeout=timeout_seconds,
            follow_redirects=False,
        )
        retrying = Retrying(
            stop=stop_after_attempt(max(1, attempts)),
            wait=retry_wait or wait_exponential(multiplier=1, min=1, max=4),
            retry=retry_if_exception_type(PanelRequestError),
            reraise=True,
        )
        try:
            for attempt in retrying:
                with attempt:
                    _submit_login(client, username=username, password=password, theme=theme)
        except Exception:
            client.close()
            raise

        session = cls(base_url=normalized_base_url, username=username, client=client)
        try:
            session._approve_notice_if_required()
        except Exception:
            session.close()
            raise
        logger.info("panel session opened", extra={"vp_username": username})
        return session

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._get("/panel/indexpl.php?option=signout")
        finally:
            self._client.close()

    def list_databases(self) -> list[str]:
        soup = self._soup("/panel/indexpl.php?option=pma")
        table = soup.find("table")
        if table is None:
            return []

        prefix = f"{self.username}_"
        names: list[str] = []
        for row in table.find_all("tr"):
            cells = row.find_all("td")
            if not cells:
                continue
            value = cells[0].get_text(strip=True)
            if not value:
                continue
            names.append(value.removeprefix(prefix))
        return names

    def create_database(self, name: str) -> None:
        _require(name=name)
        self._post("/panel/indexpl.php?option=mysql&cmd=create", {"db": name})

    def delete_database(self, name: str) -> None:
        _require(name=name)
        if name not in self.list_databases():
            raise PanelOperationError(f"The database {name} doesn't exist.")
        self._post(
            "/panel/indexpl.php?option=mysql&cmd=remove",
            {"toremove": f"{self.username}_{name}", "Submit2": "Remove Database"},
        )

    def create_cname_record(self, *, source: str, domain: str, destination: str) -> None:
        _require(source=source, domain=domain, destination=destination)
        self._post(
            "/panel/modules-new/cnamerecords/add.php",
            {"source": source, "d_name": domain, "destination": destination},
        )

    def delete_cname_record(self, source: str) -> None:
        _require(source=source)
        token = self._token()
        soup = self._soup(f"/panel/indexpl.php?option=cnamerecords&ttt={token}")
        for link in soup.find_all("a"):
            href = str(link.get("href") or "")
            if f"?site={source}" in href:
                self._get(f"/panel/{href.lstrip('/')}")
                return
        logger.info(
            "panel cname record already absent",
            extra={"vp_username": self.username, "domain": source},
        )

    def upload_private_key(self, *, domain: str, private_key_pem: str, csr_pem: str = "") -> None:
        _require(domain=domain, private_key_pem=private_key_pem)
        self._post(
            "/panel/modules-new/sslconfigure/uploadkey.php",
            {"domain_name": domain, "csr": csr_pem, "key": private_key_pem},
        )

    def upload_certificate(
        self,
        *,
        domain: str,
        certificate_pem: str,
        ca_bundle_pem: str | None = None,
    ) -> None:
        _require(domain=domain, certificate_pem=certificate_pem)
        # The panel has no separate CA field; it accepts the full chain.
        cert = certificate_pem.strip()
        if ca_bundle_pem and ca_bundle_pem.strip():
            cert = f"{cert}\n{ca_bundle_pem.strip()}"
        self._post(
            "/panel/modules-new/sslconfigure/uploadcert.php",
            {"domain_name": domain, "cert": f"{cert}\n"},
        )

    def delete_certificate(self, *, domain: str) -> None:
        _require(domain=domain)
        self._get(
            "/panel/modules-new/sslconfigure/deletecert.php",
            params={"domain_name": domain, "username": self.username},
        )

    def get_user_stats(self) -> dict[str, str]:
        response = self._post("/panel/indexpl.php", {})
        soup = BeautifulSoup(response.text, "lxml")
        table = soup.find(id="stats")
        if table is None:
            return {}

        stats: dict[str, str] = {}
        for row in table.find_all("tr"):
            cells = row.find_all("td")
            if len(cells) != 2:
                continue
            key = cells[0].get_text(strip=True)
            value = cells[1].get_text().strip()
            if key:
                stats[key] = value

        for key in ("MySQL Databases:", "Parked Domains:"):
            if stats.get(key):
                stats[key] = stats[key][:-1]
        if stats.get("Bandwidth used:"):
            stats["Bandwidth used:"] = _BANDWIDTH_SUFFIX.sub("MB", stats["Bandwidth used:"])
        return stats

    def _approve_notice_if_required(self) -> None:
        response = self._get("/panel/indexpl.php")
        if "Please click 'I Approve' below to allow us." in response.text:
            logger.info("approving panel notice", extra={"vp_username": self.username})
            self._post("/panel/indexpl.php?option=gdpr&cmd=approve", {})

    def _token(self) -> str:
        response = self._get("/panel/indexpl.php")
        match = _TOKEN_PATTERN.search(response.text)
        if match is None:
            raise PanelOperationError("could not find panel security token")
        return match.group(1)

    def _soup(self, path: str) -> BeautifulSoup:
        return BeautifulSoup(self._get(path).text, "lxml")

    def _get(self, path: str, *, params: dict[str, str] | None = None) -> httpx.Response:
        return self._request("GET", path, params=params)

    def _post(self, path: str, data: dict[str, str]) -> httpx.Response:
        return self._request("POST", path, data=data)

    def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        if self._closed and "option=signout" not in path:
            raise PanelOperationError("panel session is closed")
        try:
            response = self._client.request(method, path, follow_redirects=True, **kwargs)
        except httpx.HTTPError as exc:
            raise PanelRequestError(f"panel request failed: {exc}") from exc

        if response.status_code >= 500:
            raise PanelRequestError(
                f"panel request failed; status={response.status_code}",
                status_code=response.status_code,
            )
        if response.status_code in {401, 403}:
            raise PanelAuthError(
                f"panel rejected session with status={response.status_code}",
                status_code=response.status_code,
            )
        if "option=error" in str(response.url):
            raise PanelOperationError(_alert_message(response.text))
        return response


def _submit_login(client: httpx.Client, *, username: str, password: str, theme: str) -> None:
    try:
        response = client.post(
            "/login.php",
            data={
                "uname": username,
                "passwd": password,
                "theme": theme,
                "seeesurf": LOGIN_SURF_TOKEN,
            },
        )
    except httpx.HTTPError as exc:
        raise PanelRequestError(f"panel login request failed: {exc}") from exc

    if response.status_code >= 500:
        raise PanelRequestError(
            f"panel login failed; status={response.status_code}",
            status_code=response.status_code,
        )
    if not response.cookies.get(SESSION_COOKIE_NAME) and not client.cookies.get(
        SESSION_COOKIE_NAME
    ):
        raise PanelAuthError("Unable to login.", status_code=response.status_code)

    body = response.text
    if "panel/index_pl_sus.php" in body:
        raise PanelAccountSuspendedError("Your account is suspended.")
    if "document.location.href = 'panel/indexpl.php" not in body:
        raise PanelAuthError("Invalid login credentials.", status_code=response.status_code)


def _alert_message(html: str) -> str:
    soup = BeautifulSoup(html, "lxml")
    alert = soup.select_one(".alert-message")
    if alert is None:
        return "panel reported an unknown error"
    return alert.get_text(strip=True) or "panel reported an unknown error"


def _normalize_base_url(base_url: str) -> str:
    normalized = base_url.strip()
    if not normalized:
        raise ValueError("panel.base_url is required")
    if not normalized.startswith(("http://", "https://")):
        normalized = f"https://{normalized}"
    return normalized.rstrip("/")


def _require(**values: str) -> None:
    for key, value in values.items():
        if not value:
            raise ValueError(f"{key} is required")
