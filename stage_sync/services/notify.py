# stage_sync/services/notify.py
import threading
from typing import Optional

import requests
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..errors import NotificationError
from ..utils.logger import info, error
from .reconcile import StageEvent

DEFAULT_WAIT = wait_exponential(multiplier=0.5, min=0.5, max=4)
DEFAULT_ATTEMPTS = 3


class TransientSendError(Exception): pass


def stage_message(event: StageEvent) -> str:
    text = f'Order {event.order_name} has progressed to "{event.display_name}" stage at {event.timestamp}'
    if event.staff:
        text += f" (by {event.staff})"
    return text + "."


class _HttpSink:
    name = "sink"

    def __init__(self, url: str, timeout: float = 10, attempts: int = DEFAULT_ATTEMPTS, wait=None):
        self.url = url
        self.timeout = timeout
        self.attempts = attempts
        self.wait = wait or DEFAULT_WAIT

    def headers(self) -> dict:
        return {"Content-Type": "application/json"}

    def payload(self, event: StageEvent) -> dict:
        raise NotImplementedError

    def _post(self, body: dict):
        try:
            r = requests.post(self.url, json=body, headers=self.headers(), timeout=self.timeout)
        except (requests.Timeout, requests.ConnectionError) as e:
            raise TransientSendError(str(e)) from e
        except requests.RequestException as e:
            raise NotificationError(self.name, str(e)) from e
        if r.status_code == 429 or r.status_code >= 500:
            raise TransientSendError(f"{r.status_code} {r.text}")
        if not 200 <= r.status_code < 300:
            raise NotificationError(self.name, f"{r.status_code} {r.text}")

    def send(self, event: StageEvent):
        body = self.payload(event)
        retrying = Retrying(
            reraise=True,
            stop=stop_after_attempt(self.attempts),
            wait=self.wait,
            retry=retry_if_exception_type(TransientSendError),
        )
        try:
            for attempt in retrying:
                with attempt:
                    self._post(body)
        except TransientSendError as e:
            raise NotificationError(self.name, f"gave up after {self.attempts} attempts: {e}") from e


class ChatSink(_HttpSink):
    """Slack-style incoming webhook: {"text": ...}."""
    name = "chat"

    def payload(self, event: StageEvent) -> dict:
        return {"text": stage_message(event)}


class EmailSink(_HttpSink):
    """HTTP mail API taking {to, from, subject, text} with a bearer key."""
    name = "email"

    def __init__(self, url: str, api_key: str, to: str, sender: str, **kw):
        super().__init__(url, **kw)
        self.api_key = api_key
        self.to = to
        self.sender = sender

    def headers(self) -> dict:
        h = super().headers()
        h["Authorization"] = f"Bearer {self.api_key}"
        return h

    def payload(self, event: StageEvent) -> dict:
        return {
            "to": self.to,
            "from": self.sender,
            "subject": f"Order {event.order_name} - {event.display_name} Timestamp Created",
            "text": stage_message(event),
        }


class Notifier:
    """Best-effort fan-out of stage events; one sink failing never affects another."""

    def __init__(self, sinks=None):
        self.sinks = list(sinks or [])

    def deliver(self, event: StageEvent) -> dict[str, bool]:
        results = {}
        for sink in self.sinks:
            try:
                sink.send(event)
                results[sink.name] = True
                info(f"[notify] OID={event.order_id} stage={event.stage_name} sent via {sink.name}")
            except NotificationError as e:
                results[sink.name] = False
                error(f"[notify] OID={event.order_id} stage={event.stage_name} {e}")
            except Exception as e:
                results[sink.name] = False
                error(f"[notify] OID={event.order_id} stage={event.stage_name} {sink.name} crashed: {e}")
        return results

    def notify(self, event: StageEvent) -> Optional[threading.Thread]:
        return self.notify_all([event])

    def notify_all(self, events: list[StageEvent]) -> Optional[threading.Thread]:
        """Deliver on a daemon thread so the webhook response never waits on sinks."""
        if not events or not self.sinks:
            return None

        def worker():
            for ev in events:
                self.deliver(ev)

        t = threading.Thread(target=worker, daemon=True)
        t.start()
        return t


def build_notifier(settings) -> Notifier:
    sinks = []
    if settings.chat_enabled:
        sinks.append(ChatSink(settings.slack_webhook_url, timeout=settings.timeout))
    if settings.email_enabled:
        sinks.append(EmailSink(
            settings.email_api_url,
            settings.email_api_key,
            settings.email_to,
            settings.email_from,
            timeout=settings.timeout,
        ))
    return Notifier(sinks)
