# stage_sync/config.py
import os
from dataclasses import dataclass
from typing import Mapping, Optional

from .errors import ConfigError
from .stages import StageCatalog, default_catalog, load_catalog

API_VERSION = "2025-07"
DEFAULT_NAMESPACE = "custom"
DEFAULT_TIMEOUT = 20.0
DEFAULT_PORT = 3000
DEFAULT_EMAIL_API_URL = "https://api.resend.com/emails"
DEFAULT_EMAIL_FROM = "no-reply@yourshop.com"

POLICY_WRITE_ONCE = "write_once"
POLICY_OVERWRITE = "overwrite"
POLICIES = (POLICY_WRITE_ONCE, POLICY_OVERWRITE)

REQUIRED = ("SHOPIFY_STORE_DOMAIN", "SHOPIFY_ACCESS_TOKEN", "SHOPIFY_WEBHOOK_SECRET")


@dataclass(frozen=True)
class Settings:
    domain: str
    token: str
    webhook_secret: str
    catalog: StageCatalog
    api_version: str = API_VERSION
    namespace: str = DEFAULT_NAMESPACE
    policy: str = POLICY_WRITE_ONCE
    timeout: float = DEFAULT_TIMEOUT
    port: int = DEFAULT_PORT
    log_level: str = "INFO"
    slack_webhook_url: Optional[str] = None
    email_api_url: str = DEFAULT_EMAIL_API_URL
    email_api_key: Optional[str] = None
    email_to: Optional[str] = None
    email_from: str = DEFAULT_EMAIL_FROM

    @property
    def chat_enabled(self) -> bool:
        return bool(self.slack_webhook_url)

    @property
    def email_enabled(self) -> bool:
        return bool(self.email_api_key and self.email_to)


def _clean(env: Mapping[str, str], name: str) -> Optional[str]:
    val = env.get(name)
    if val is None:
        return None
    val = val.strip()
    return val or None


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """
    Read and validate configuration from the environment.
    Every problem is collected and reported in a single ConfigError.
    """
    env = os.environ if environ is None else environ
    problems: list[str] = []

    missing = [name for name in REQUIRED if not _clean(env, name)]
    if missing:
        problems.append("missing " + ", ".join(missing))

    port = DEFAULT_PORT
    raw_port = _clean(env, "PORT")
    if raw_port:
        try:
            port = int(raw_port)
        except ValueError:
            problems.append(f"PORT must be an integer, got {raw_port!r}")

    timeout = DEFAULT_TIMEOUT
    raw_timeout = _clean(env, "HTTP_TIMEOUT")
    if raw_timeout:
        try:
            timeout = float(raw_timeout)
            if timeout <= 0:
                raise ValueError
        except ValueError:
            problems.append(f"HTTP_TIMEOUT must be a positive number, got {raw_timeout!r}")

    policy = (_clean(env, "TIMESTAMP_POLICY") or POLICY_WRITE_ONCE).lower()
    if policy not in POLICIES:
        problems.append(f"TIMESTAMP_POLICY must be one of {', '.join(POLICIES)}, got {policy!r}")

    catalog = None
    catalog_path = _clean(env, "STAGE_CATALOG_PATH")
    try:
        catalog = load_catalog(catalog_path) if catalog_path else default_catalog()
    except ConfigError as e:
        problems.append(str(e))

    if problems:
        raise ConfigError("Invalid configuration: " + "; ".join(problems))

    return Settings(
        domain=_clean(env, "SHOPIFY_STORE_DOMAIN"),
        token=_clean(env, "SHOPIFY_ACCESS_TOKEN"),
        webhook_secret=_clean(env, "SHOPIFY_WEBHOOK_SECRET"),
        catalog=catalog,
        api_version=_clean(env, "API_VERSION") or API_VERSION,
        namespace=_clean(env, "METAFIELD_NAMESPACE") or DEFAULT_NAMESPACE,
        policy=policy,
        timeout=timeout,
        port=port,
        log_level=(_clean(env, "LOG_LEVEL") or "INFO").upper(),
        slack_webhook_url=_clean(env, "SLACK_WEBHOOK_URL"),
        email_api_url=_clean(env, "EMAIL_API_URL") or DEFAULT_EMAIL_API_URL,
        email_api_key=_clean(env, "EMAIL_API_KEY"),
        email_to=_clean(env, "EMAIL_TO"),
        email_from=_clean(env, "EMAIL_FROM") or DEFAULT_EMAIL_FROM,
    )
