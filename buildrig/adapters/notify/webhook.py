"""
Webhook adapter — post a chat message to an incoming-webhook URL.

Covers Slack-style and similar chat endpoints that accept a JSON body
with a ``text`` field. Outcome is judged by HTTP status only.
"""

from __future__ import annotations

import json
import logging
import urllib.error
import urllib.request

from buildrig.adapters.base import Adapter, ExecutionContext
from buildrig.core.models.action import Receipt

logger = logging.getLogger(__name__)


class WebhookAdapter(Adapter):
    """Send a chat notification.

    Action params:
        url (str): Incoming webhook URL.
        text (str): Message body.
        payload (dict): Extra JSON fields merged into the body.
        token (str): Optional bearer token.
        timeout (int): Timeout in seconds (default: 15).
    """

    @property
    def name(self) -> str:
        return "webhook"

    def is_available(self) -> bool:
        return True

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        url = context.params.get("url", "")
        if not url:
            return False, "Missing required param: 'url'"
        if not url.startswith(("http://", "https://")):
            return False, f"Unsupported webhook URL: {url}"
        if not context.params.get("text"):
            return False, "Missing required param: 'text'"
        return True, ""

    def execute(self, context: ExecutionContext) -> Receipt:
        url = context.params["url"]
        body = dict(context.params.get("payload") or {})
        body["text"] = context.params["text"]
        timeout = context.params.get("timeout", 15)

        headers = {"Content-Type": "application/json", "User-Agent": "buildrig/1.0"}
        token = context.params.get("token")
        if token:
            headers["Authorization"] = f"Bearer {token}"

        req = urllib.request.Request(
            url,
            data=json.dumps(body).encode("utf-8"),
            headers=headers,
            method="POST",
        )
        try:
            with urllib.request.urlopen(req, timeout=timeout) as resp:
                status = resp.getcode()
                reply = resp.read().decode("utf-8", errors="replace")[:500]
        except urllib.error.HTTPError as e:
            return Receipt.failure(
                adapter=self.name,
                action_id=context.action.id,
                error=f"Webhook returned HTTP {e.code}",
                metadata={"status": e.code},
            )
        except Exception as e:
            return Receipt.failure(
                adapter=self.name,
                action_id=context.action.id,
                error=f"Webhook delivery failed: {e}",
            )

        logger.info("Notification delivered (HTTP %s)", status)
        return Receipt.success(
            adapter=self.name,
            action_id=context.action.id,
            output=reply,
            metadata={"status": status},
        )
