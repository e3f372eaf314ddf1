from __future__ import annotations

from typing import Optional

import requests

from ..config import SmokeCheckConfig
from ..errors import VerificationFailure


def deployment_url(cfg: SmokeCheckConfig, deployment_id: str) -> str:
    return cfg.url_template.format(deployment_id=deployment_id)


def check_deployment(
    cfg: SmokeCheckConfig,
    deployment_id: str,
    session: Optional[requests.Session] = None,
) -> int:
    """GET the deployed web app and return the HTTP status.

    Redirects are followed (the platform answers /exec with a redirect to the
    rendered page). A session created here is closed before returning; an
    injected one is left open.
    """
    if not deployment_id:
        raise VerificationFailure("no deployment id reported; cannot build smoke-check URL")

    url = deployment_url(cfg, deployment_id)
    if session is None:
        with requests.Session() as http:
            return _get_status(http, url, cfg)
    return _get_status(session, url, cfg)


def _get_status(http: requests.Session, url: str, cfg: SmokeCheckConfig) -> int:
    try:
        r = http.get(url, timeout=cfg.timeout_s, allow_redirects=True)
    except requests.RequestException as e:
        raise VerificationFailure(f"smoke check GET {url} failed: {e}")
    if r.status_code not in cfg.accept_status:
        raise VerificationFailure(
            f"smoke check GET {url} returned {r.status_code} (accepted: {list(cfg.accept_status)}): {r.text[:500]}"
        )
    return r.status_code
