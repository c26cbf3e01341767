# prism_etl/utils/api_clients.py
import time

import requests


class SimpleRequestClient:
    """
    Very small wrapper around a requests Session with retry and linear backoff.
    Retries cover transport failures and HTTP errors of a single request only;
    callers decide what a final failure means.
    """
    def __init__(self, retries=3, backoff=1.0, timeout=120, session=None):
        self.retries = retries
        self.backoff = backoff
        self.timeout = timeout
        self.session = session if session is not None else requests.Session()

    def download(self, url, params=None, headers=None):
        """GET ``url`` and return ``(content_bytes, response_headers)``."""
        r = self._get(url, params=params, headers=headers)
        return r.content, r.headers

    def _get(self, url, params=None, headers=None):
        for attempt in range(1, self.retries + 1):
            try:
                r = self.session.get(url, params=params, headers=headers, timeout=self.timeout)
                r.raise_for_status()
                return r
            except requests.RequestException:
                if attempt == self.retries:
                    raise
                time.sleep(self.backoff * attempt)
