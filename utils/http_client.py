"""HTTP client for outbound notification calls, with timeout and retries."""
import time
import logging
import requests

logger = logging.getLogger("pulsewatch.http")


class TransportError(Exception):
    """A notification transport failed to deliver."""
    def __init__(self, message, status_code=None, response_body=None, channel=None):
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body
        self.channel = channel


class HTTPClient:
    """Posts JSON with a hard per-request timeout and bounded retries."""

    RETRYABLE_STATUS = {429, 500, 502, 503, 504}

    def __init__(self, timeout=10, max_retries=1, backoff_seconds=1.0,
                 user_agent="Pulsewatch/1.0", channel=None):
        self.timeout = timeout
        self.max_retries = max_retries
        self.backoff_seconds = backoff_seconds
        self.channel = channel
        self.session = requests.Session()
        self.session.headers.update({"User-Agent": user_agent})

    def post_json(self, url, payload, headers=None, timeout=None):
        """POST ``payload`` as JSON. Returns the response on 2xx, raises TransportError otherwise."""
        timeout = timeout or self.timeout
        last_error = None
        for attempt in range(self.max_retries + 1):
            try:
                start = time.time()
                resp = self.session.post(url, json=payload, headers=headers or {}, timeout=timeout)
                latency = int((time.time() - start) * 1000)
                logger.debug(f"POST {url} → {resp.status_code} ({latency}ms)")

                if 200 <= resp.status_code < 300:
                    return resp

                error = TransportError(
                    f"HTTP {resp.status_code} from {url}",
                    status_code=resp.status_code,
                    response_body=resp.text,
                    channel=self.channel,
                )
                if resp.status_code not in self.RETRYABLE_STATUS:
                    raise error
                last_error = error
                logger.warning(f"Retryable {resp.status_code} from {url} (attempt {attempt + 1})")

            except requests.exceptions.Timeout as e:
                last_error = TransportError(f"Request to {url} timed out after {timeout}s",
                                            channel=self.channel)
                logger.warning(f"Timeout for {url}: {e} (attempt {attempt + 1})")
            except requests.exceptions.RequestException as e:
                last_error = TransportError(f"Request to {url} failed: {e}", channel=self.channel)
                logger.warning(f"Request error for {url}: {e} (attempt {attempt + 1})")

            if attempt < self.max_retries:
                time.sleep(min(self.backoff_seconds * 2 ** attempt, 5))

        raise last_error or TransportError(f"Max retries exceeded for {url}", channel=self.channel)
