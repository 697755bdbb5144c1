"""Application configuration loading."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal, cast

import yaml

LogFormat = Literal["json", "text"]
LOG_FORMAT_JSON: LogFormat = "json"
LOG_FORMAT_TEXT: LogFormat = "text"

MIN_POLL_INTERVAL_SECONDS = 3.0
DEFAULT_DNS_RESOLVERS: tuple[str, ...] = ("8.8.8.8", "1.1.1.1")


@dataclass(frozen=True, slots=True)
class AppSettings:
    app_env: str
    app_secret_key: str
    session_cookie_name: str
    session_cookie_max_age_seconds: int
    session_cookie_secure: bool
    local_auth_enabled: bool
    local_auth_password_min_length: int
    local_auth_pbkdf2_iterations: int
    runtime_config_path: str = "runtime-config.yaml"
    redis_url: str = "redis://localhost:6379/0"
    log_level: str = "INFO"
    log_format: LogFormat = LOG_FORMAT_JSON
    reseller_base_url: str = "https://panel.myownfreehost.net"
    reseller_api_username: str = ""
    reseller_api_password: str = ""
    reseller_default_package: str = ""
    reseller_timeout_seconds: float = 30.0
    panel_base_url: str = "https://cpanel.example.net"
    panel_timeout_seconds: float = 30.0
    panel_login_attempts: int = 3
    panel_theme: str = "PaperLantern"
    acme_email: str = ""
    acme_use_staging: bool = False
    acme_account_key_path: str = "/var/lib/hostpanel/acme-account.pem"
    google_eab_key_id: str = ""
    google_eab_hmac_key: str = ""
    ssl_service_domains: tuple[str, ...] = ()
    ssl_intermediate_domain: str = ""
    ssl_dns_resolvers: tuple[str, ...] = DEFAULT_DNS_RESOLVERS
    ssl_issue_log_limit: int = 200
    ssl_issue_log_backend: str = "memory"
    ssl_auto_install: bool = True
    cloudflare_base_url: str = "https://api.cloudflare.com/client/v4"
    cloudflare_api_token: str = ""
    cloudflare_zone_id: str = ""
    poll_interval_seconds: float = MIN_POLL_INTERVAL_SECONDS
    stale_after_seconds: int = 15 * 60
    sweep_interval_seconds: int = 5 * 60

    @property
    def poll_interval_ms(self) -> int:
        return int(self.poll_interval_seconds * 1000)

    @classmethod
    def from_yaml(cls, runtime_config_path: str = "runtime-config.yaml") -> AppSettings:
        normalized_path = runtime_config_path.strip() or "runtime-config.yaml"
        config = _load_runtime_config(normalized_path)

        app_cfg = cast(dict[str, Any], config.get("app", {}))
        session_cfg = cast(dict[str, Any], config.get("session", {}))
        auth_cfg = cast(dict[str, Any], config.get("auth", {}))
        local_auth_cfg = cast(dict[str, Any], auth_cfg.get("local_auth", {}))
        redis_cfg = cast(dict[str, Any], config.get("redis", {}))
        logging_cfg = cast(dict[str, Any], config.get("logging", {}))
        reseller_cfg = cast(dict[str, Any], config.get("reseller", {}))
        panel_cfg = cast(dict[str, Any], config.get("panel", {}))
        ssl_cfg = cast(dict[str, Any], config.get("ssl", {}))
        acme_cfg = cast(dict[str, Any], ssl_cfg.get("acme", {}))
        cloudflare_cfg = cast(dict[str, Any], ssl_cfg.get("cloudflare", {}))
        lifecycle_cfg = cast(dict[str, Any], config.get("lifecycle", {}))

        app_env = str(app_cfg.get("env", "development")).lower()

        return cls(
            app_env=app_env,
            app_secret_key=str(app_cfg.get("secret_key", "change-me")),
            session_cookie_name=str(session_cfg.get("cookie_name", "hostpanel_session")),
            session_cookie_max_age_seconds=int(
                session_cfg.get("cookie_max_age_seconds", 8 * 60 * 60)
            ),
            session_cookie_secure=bool(
                session_cfg.get("cookie_secure", app_env == "production")
            ),
            local_auth_enabled=bool(local_auth_cfg.get("enabled", True)),
            local_auth_password_min_length=max(
                8,
                int(local_auth_cfg.get("password_min_length", 12)),
            ),
            local_auth_pbkdf2_iterations=max(
                100_000,
                int(local_auth_cfg.get("pbkdf2_iterations", 390_000)),
            ),
            runtime_config_path=normalized_path,
            redis_url=str(redis_cfg.get("url", "redis://localhost:6379/0")),
            log_level=str(logging_cfg.get("level", "INFO")).upper(),
            log_format=_resolve_log_format(logging_cfg),
            reseller_base_url=str(
                reseller_cfg.get("base_url", "https://panel.myownfreehost.net")
            ),
            reseller_api_username=str(reseller_cfg.get("api_username", "")),
            reseller_api_password=os.environ.get(
                "RESELLER_API_PASSWORD",
                str(reseller_cfg.get("api_password", "")),
            ),
            reseller_default_package=str(reseller_cfg.get("default_package", "")),
            reseller_timeout_seconds=max(
                1.0,
                float(reseller_cfg.get("timeout_seconds", 30.0)),
            ),
            panel_base_url=str(panel_cfg.get("base_url", "https://cpanel.example.net")),
            panel_timeout_seconds=max(1.0, float(panel_cfg.get("timeout_seconds", 30.0))),
            panel_login_attempts=max(1, int(panel_cfg.get("login_attempts", 3))),
            panel_theme=str(panel_cfg.get("theme", "PaperLantern")),
            acme_email=str(acme_cfg.get("email", "")),
            acme_use_staging=bool(acme_cfg.get("use_staging", False)),
            acme_account_key_path=str(
                acme_cfg.get("account_key_path", "/var/lib/hostpanel/acme-account.pem")
            ),
            google_eab_key_id=str(acme_cfg.get("google_eab_key_id", "")),
            google_eab_hmac_key=str(acme_cfg.get("google_eab_hmac_key", "")),
            ssl_service_domains=_normalize_domains(
                tuple(cast(list[str], ssl_cfg.get("service_domains", [])))
            ),
            ssl_intermediate_domain=str(ssl_cfg.get("intermediate_domain", "")).strip().lower(),
            ssl_dns_resolvers=tuple(
                cast(list[str], ssl_cfg.get("dns_resolvers", list(DEFAULT_DNS_RESOLVERS)))
            ),
            ssl_issue_log_limit=max(10, int(ssl_cfg.get("issue_log_limit", 200))),
            ssl_issue_log_backend=str(ssl_cfg.get("issue_log_backend", "memory")).lower(),
            ssl_auto_install=bool(ssl_cfg.get("auto_install", True)),
            cloudflare_base_url=str(
                cloudflare_cfg.get("base_url", "https://api.cloudflare.com/client/v4")
            ),
            cloudflare_api_token=os.environ.get(
                "CLOUDFLARE_API_TOKEN",
                str(cloudflare_cfg.get("api_token", "")),
            ),
            cloudflare_zone_id=str(cloudflare_cfg.get("zone_id", "")),
            poll_interval_seconds=max(
                MIN_POLL_INTERVAL_SECONDS,
                float(lifecycle_cfg.get("poll_interval_seconds", MIN_POLL_INTERVAL_SECONDS)),
            ),
            stale_after_seconds=max(60, int(lifecycle_cfg.get("stale_after_seconds", 15 * 60))),
            sweep_interval_seconds=max(
                30,
                int(lifecycle_cfg.get("sweep_interval_seconds", 5 * 60)),
            ),
        )


def _load_runtime_config(runtime_config_path: str) -> dict[str, Any]:
    path = Path(runtime_config_path)
    if not path.exists() or not path.is_file():
        return {}

    parsed = yaml.safe_load(path.read_text(encoding="utf-8"))
    if isinstance(parsed, dict):
        return parsed
    return {}


def _normalize_domains(domains: tuple[str, ...]) -> tuple[str, ...]:
    normalized: list[str] = []
    seen: set[str] = set()
    for domain in domains:
        value = domain.strip().lower().strip(".")
        if not value or value in seen:
            continue
        seen.add(value)
        normalized.append(value)
    return tuple(normalized)


def _resolve_log_format(logging_cfg: dict[str, Any]) -> LogFormat:
    normalized_format = str(logging_cfg.get("format", LOG_FORMAT_JSON)).lower()

    if normalized_format == LOG_FORMAT_JSON:
        return LOG_FORMAT_JSON
    if normalized_format == LOG_FORMAT_TEXT:
        return LOG_FORMAT_TEXT

    raise ValueError(
        "unsupported logging.format in runtime config: "
        f"{normalized_format!r}; expected one of "
        f"{LOG_FORMAT_JSON!r}, {LOG_FORMAT_TEXT!r}"
    )


@lru_cache(maxsize=1)
def get_settings() -> AppSettings:
    return AppSettings.from_yaml()
