"""Push delivery adapters."""

from __future__ import annotations

import json
import logging
from urllib import request
from urllib.error import HTTPError, URLError

from libs.core.application.contracts import PushRequest, PushSubmissionError
from libs.core.log_events import log_event

logger = logging.getLogger(__name__)


class WebhookPushNotifier:
    """POSTs each push request as JSON to a delivery webhook."""

    def __init__(self, url: str, timeout_sec: float = 10.0) -> None:
        self._url = url
        self._timeout_sec = timeout_sec

    def submit(self, push_request: PushRequest) -> None:
        req = request.Request(
            url=self._url,
            data=json.dumps(dict(push_request)).encode("utf-8"),
            headers={
                "Content-Type": "application/json",
                "Idempotency-Key": push_request["identifier"],
            },
            method="POST",
        )
        try:
            with request.urlopen(req, timeout=self._timeout_sec) as response:
                status = getattr(response, "status", 200)
        except (HTTPError, URLError, OSError) as error:
            raise PushSubmissionError(str(error)) from error
        if status >= 400:
            raise PushSubmissionError(f"webhook returned {status}")


class LoggingPushNotifier:
    """Stand-in used when no delivery endpoint is configured."""

    def submit(self, push_request: PushRequest) -> None:
        log_event(logger, "push_logged", dict(push_request))
