# Copyright 2024-2025 Amiable Development
# SPDX-License-Identifier: Apache-2.0

"""
Webhook notification sink.

POSTs ``{"message": "..."}`` as JSON to the configured URL. An empty URL
makes the notifier a silent no-op.
"""

import json
import logging
import os
from typing import Optional
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from kube_janitor.errors import NotificationError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10


class WebhookNotifier:
    """
    Notifier delivering messages to an HTTP webhook.

    Example:
        ```python
        notifier = WebhookNotifier()  # reads WEBHOOK_URL
        notifier.notify("[prod] Pod default/web will be deleted at ...")
        ```
    """

    def __init__(self, url: Optional[str] = None, timeout: float = DEFAULT_TIMEOUT):
        """
        Initialize the notifier.

        Args:
            url: Webhook URL. If not provided, reads WEBHOOK_URL.
            timeout: Request timeout in seconds.
        """
        self.url = url if url is not None else os.getenv("WEBHOOK_URL", "")
        self.timeout = timeout

    @property
    def enabled(self) -> bool:
        return bool(self.url)

    def notify(self, message: str) -> None:
        """
        Send one message.

        Raises:
            NotificationError: On connection failure or a status >= 300.
        """
        if not self.url:
            return

        data = json.dumps({"message": message}).encode("utf-8")
        request = Request(
            self.url,
            data=data,
            headers={"Content-Type": "application/json"},
            method="POST",
        )

        try:
            with urlopen(request, timeout=self.timeout) as response:
                status = response.status
        except HTTPError as e:
            raise NotificationError(f"webhook returned non-success status: {e.code} {e.reason}") from e
        except (URLError, OSError) as e:
            raise NotificationError(f"failed to send webhook: {e}") from e

        # Unfollowed redirects
        if status >= 300:
            raise NotificationError(f"webhook returned non-success status: {status}")

        logger.debug(f"Webhook notification delivered: {status}")
