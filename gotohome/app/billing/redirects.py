"""Return-domain allow-list and the browser redirect page."""
from __future__ import annotations

import html
import json
import logging
from typing import Optional
from urllib import parse as urllib_parse

from .config import GatewayConfig

logger = logging.getLogger("billing")

LANDING_PATH = "/main"
MAX_RETURN_DOMAIN_LENGTH = 2048

_REDIRECT_TEMPLATE = """<!doctype html>
<html lang="uk">
  <head>
    <meta charset="utf-8" />
    <meta name="viewport" content="width=device-width, initial-scale=1" />
    <meta http-equiv="refresh" content="0; url={attr_url}" />
    <title>Redirecting…</title>
  </head>
  <body>
    <script>
      window.location.replace({script_url});
    </script>
    <noscript>
      <p><a href="{attr_url}">Перейти на сайт</a></p>
    </noscript>
  </body>
</html>
"""


def _is_local(host: str) -> bool:
    return host == "localhost" or host.endswith(".localhost")


def resolve_allowed_origin(raw: Optional[str], config: GatewayConfig) -> str:
    """Return ``scheme://host[:port]`` for an allow-listed origin.

    Anything that does not parse as an http(s) URL on a known host is replaced
    by ``config.fallback_origin``.
    """

    if not raw:
        return config.fallback_origin
    if len(raw) > MAX_RETURN_DOMAIN_LENGTH:
        logger.warning("Discarding oversized return domain (%d chars)", len(raw))
        return config.fallback_origin
    try:
        parsed = urllib_parse.urlsplit(raw.strip())
        host = (parsed.hostname or "").lower()
        port = parsed.port
    except ValueError:
        logger.warning("Discarding unparsable return domain %r", raw)
        return config.fallback_origin

    if not host:
        return config.fallback_origin

    if _is_local(host):
        allowed = config.allow_localhost and parsed.scheme in {"http", "https"}
    else:
        allowed = parsed.scheme == "https" and (
            host in config.allowed_hosts
            or any(host.endswith(suffix) for suffix in config.allowed_host_suffixes)
        )

    if not allowed:
        logger.warning("Discarding return domain outside the allow-list: %r", raw)
        return config.fallback_origin

    netloc = host if port is None else f"{host}:{port}"
    return f"{parsed.scheme}://{netloc}"


def build_return_url(config: GatewayConfig, origin: str) -> str:
    """URL of the return-redirect endpoint carrying the resolved origin hint."""

    query = urllib_parse.urlencode({"rd": origin})
    separator = "&" if "?" in config.return_url else "?"
    return f"{config.return_url}{separator}{query}"


def render_redirect_page(origin: str, path: str = LANDING_PATH) -> str:
    """HTML page that navigates the browser to ``origin + path`` with a GET."""

    target = f"{origin}{path}"
    return _REDIRECT_TEMPLATE.format(
        attr_url=html.escape(target, quote=True),
        script_url=json.dumps(target).replace("<", "\\u003c"),
    )


__all__ = ["LANDING_PATH", "build_return_url", "render_redirect_page", "resolve_allowed_origin"]
