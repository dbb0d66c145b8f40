# job_alert/http_client.py
from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

LOG = logging.getLogger(__name__)

# Careers sites tend to serve bot-block pages to non-browser agents.
BROWSER_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
)
DEFAULT_UA = "JobAlert/0.1"
RETRY_STATUSES = (429, 500, 502, 503, 504)


def _retry_policy(retries: int) -> Retry:
    # Only idempotent reads are retried; a webhook that accepted a POST must not see it twice.
    return Retry(
        total=retries,
        backoff_factor=0.5,
        status_forcelist=RETRY_STATUSES,
        allowed_methods=frozenset({"GET", "HEAD"}),
        raise_on_status=False,
    )


class HttpClient:
    """
    A requests.Session with a retry policy and a default timeout.

    Scrapers open one per cycle, webhook sinks one per send; always use it as
    a context manager so pooled connections are released.
    """

    def __init__(
        self,
        timeout: float = 15.0,
        *,
        user_agent: str = DEFAULT_UA,
        retries: int = 3,
        headers: Mapping[str, str] | None = None,
    ):
        self.timeout = float(timeout)
        self.session = requests.Session()
        self.session.headers["User-Agent"] = user_agent
        if headers:
            self.session.headers.update(headers)
        adapter = HTTPAdapter(max_retries=_retry_policy(retries))
        for scheme in ("http://", "https://"):
            self.session.mount(scheme, adapter)

    def __enter__(self) -> HttpClient:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def fetch_html(self, url: str, **kwargs: Any) -> str:
        """GET `url`; raises requests.HTTPError on non-2xx. Falls back to the sniffed encoding."""
        resp = self.session.get(url, timeout=self.timeout, **kwargs)
        resp.raise_for_status()
        if not resp.encoding:
            resp.encoding = resp.apparent_encoding
        return resp.text

    def post_json(self, url: str, payload: Any, **kwargs: Any) -> requests.Response:
        """POST a JSON body; raises requests.HTTPError on non-2xx."""
        resp = self.session.post(url, json=payload, timeout=self.timeout, **kwargs)
        resp.raise_for_status()
        return resp

    def close(self) -> None:
        self.session.close()
