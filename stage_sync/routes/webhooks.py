# stage_sync/routes/webhooks.py
import json

from flask import Blueprint, current_app, jsonify, request

from ..errors import AuthError, MalformedPayloadError, UpstreamApiError
from ..services.reconcile import order_id_of
from ..utils.logger import info, warn, error
from ..utils.security import verify_webhook_hmac

bp = Blueprint("webhooks", __name__)


def _deps() -> dict:
    return current_app.extensions["stage_sync"]


def _authenticate(secret: str) -> bytes:
    # raw bytes exactly as received; never a re-serialized body
    raw = request.get_data(cache=True)
    if not verify_webhook_hmac(raw, request.headers.get("X-Shopify-Hmac-Sha256", ""), secret):
        raise AuthError("HMAC verification failed")
    return raw


def _parse_order(raw: bytes) -> dict:
    try:
        order = json.loads(raw.decode("utf-8")) if raw else None
    except (UnicodeDecodeError, ValueError) as e:
        raise MalformedPayloadError(f"Body is not valid JSON: {e}") from e
    order_id_of(order)
    return order


@bp.errorhandler(AuthError)
def _unauthorized(e):
    warn(f"[orders] rejected webhook: {e}")
    return jsonify({"ok": False, "error": "unauthorized"}), 401


@bp.errorhandler(MalformedPayloadError)
def _malformed(e):
    warn(f"[orders] malformed webhook: {e}")
    return jsonify({"ok": False, "error": str(e)}), 400


@bp.post("/orders/update")
def orders_updated():
    deps = _deps()
    raw = _authenticate(deps["settings"].webhook_secret)
    order = _parse_order(raw)
    oid = order.get("id")
    info(f"[orders] /orders/update webhook received. OID={oid} topic={request.headers.get('X-Shopify-Topic', '-')}")

    try:
        events = deps["reconciler"].reconcile(order)
    except UpstreamApiError as e:
        error(f"[orders] OID={oid} cannot read metafields: {e.status} {e.body}")
        return jsonify({"ok": False, "error": "upstream unavailable"}), 500

    deps["notifier"].notify_all(events)
    return jsonify({"ok": True, "stages": [ev.stage_name for ev in events]}), 200
