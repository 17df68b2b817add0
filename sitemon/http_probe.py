# -*- codeing = utf-8 -*-
# @Create: 2026-10-18 9:40 a.m.
# @Update: 2026-10-18 9:40 a.m.
"""HTTP probing helper functions."""

import logging
from typing import Optional

import requests

from configuration import DEFAULT_REQUEST_TIMEOUT, SiteConfig

from .state_machine import ProbeResult

LOGGER = logging.getLogger(__name__)


class Probe:
    """Strategy interface that performs one check against a site."""

    def run(self, site: SiteConfig) -> ProbeResult:  # pragma: no cover - interface contract
        raise NotImplementedError


class HttpProbe(Probe):
    """Issue a GET against the site and report the final status code.

    Redirects are followed; only the final response counts. No response at
    all (DNS failure, refused connection, timeout) yields a result with no
    status code.
    """

    def __init__(self, timeout: Optional[float] = None,
                 session: Optional[requests.Session] = None) -> None:
        self._timeout = DEFAULT_REQUEST_TIMEOUT if timeout is None else timeout
        self._session = session

    def run(self, site: SiteConfig) -> ProbeResult:
        return probe_http_service(site.url, self._timeout, session=self._session)


def probe_http_service(url: str,
                       timeout: float,
                       *,
                       session: Optional[requests.Session] = None
                       ) -> ProbeResult:
    """Perform a GET probe against the service endpoint."""

    request_get = session.get if session is not None else requests.get
    try:
        response = request_get(url,
                               timeout=timeout,
                               allow_redirects=True,
                               stream=True)
    except requests.RequestException as exc:
        LOGGER.warning("monitor.http_probe.error url=%s error=%s", url, exc)
        return ProbeResult(None)

    # The body is never read; release the connection straight away.
    response.close()
    result = ProbeResult(response.status_code)
    if result.succeeded:
        LOGGER.debug("monitor.http_probe.success url=%s status=%s", url,
                     response.status_code)
    else:
        LOGGER.warning("monitor.http_probe.failure url=%s status=%s", url,
                       response.status_code)
    return result
