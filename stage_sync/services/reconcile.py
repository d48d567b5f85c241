# stage_sync/services/reconcile.py
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from ..clients.shopify import find_metafield, upsert_metafield
from ..config import DEFAULT_NAMESPACE, POLICY_OVERWRITE, POLICY_WRITE_ONCE, POLICIES
from ..errors import MalformedPayloadError, UpstreamApiError
from ..stages import SOURCE_TAG, Stage, StageCatalog
from ..utils.logger import debug, info, warn, error

OWNER_TYPE = "orders"
TRUTHY = {"yes", "true"}
UNKNOWN_STAFF = "Unknown"
TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"

_MISSING = object()

# =========================================================
# Per-request records
# =========================================================

@dataclass(frozen=True)
class StageObservation:
    stage: Stage
    active: bool
    recorded: Optional[str]
    is_newly_triggered: bool


@dataclass(frozen=True)
class StageEvent:
    order_id: str
    order_name: str
    stage_name: str
    display_name: str
    timestamp: str
    staff: Optional[str] = None

# =========================================================
# Payload helpers
# =========================================================

def order_id_of(order) -> str:
    if not isinstance(order, dict):
        raise MalformedPayloadError("Order payload must be a JSON object")
    oid = order.get("id")
    if oid is None or isinstance(oid, bool) or str(oid).strip() == "":
        raise MalformedPayloadError("Order payload has no id")
    return str(oid).strip()


def order_name_of(order: dict) -> str:
    return str(order.get("name") or f"#{order_id_of(order)}")


def order_tags(order: dict) -> set[str]:
    raw = order.get("tags") or ""
    parts = raw if isinstance(raw, list) else str(raw).split(",")
    return {str(t).strip().lower() for t in parts if str(t).strip()}


def is_truthy(value) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in TRUTHY


def payload_metafield(order: dict, namespace: str, key: str):
    """
    Value of (namespace, key) carried in the webhook body, or _MISSING.
    Accepts {"custom": {"key": value}} and [{"namespace", "key", "value"}].
    """
    mfs = order.get("metafields")
    if isinstance(mfs, dict):
        ns = mfs.get(namespace)
        if isinstance(ns, dict) and key in ns:
            val = ns[key]
            # some producers nest {"value": ...}
            if isinstance(val, dict):
                return val.get("value")
            return val
    elif isinstance(mfs, list):
        found = find_metafield([m for m in mfs if isinstance(m, dict)], namespace, key)
        if found is not None:
            return found.get("value")
    return _MISSING


def resolve_staff(order: dict, namespace: str = DEFAULT_NAMESPACE) -> str:
    who = order.get("updated_by")
    if isinstance(who, dict):
        who = who.get("name") or who.get("email") or who.get("id")
    if not who:
        val = payload_metafield(order, namespace, "updated_by")
        who = None if val is _MISSING else val
    if not who:
        for attr in order.get("note_attributes") or []:
            if isinstance(attr, dict) and attr.get("name") == "updated_by":
                who = attr.get("value")
                break
    who = str(who).strip() if who is not None else ""
    return who or UNKNOWN_STAFF


def format_timestamp(moment: datetime) -> str:
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc)
    return moment.strftime(TIMESTAMP_FORMAT)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)

# =========================================================
# Reconciler
# =========================================================

class Reconciler:
    """
    Turns an order-update payload into timestamp/staff metafield writes.

    The metafields are the only durable state: each call lists the order's
    metafields once to decide which stages are newly active, then re-lists
    right before each write so write-once holds as tightly as possible
    against overlapping deliveries for the same order.
    """

    def __init__(self, client, catalog: StageCatalog, namespace: str = DEFAULT_NAMESPACE,
                 policy: str = POLICY_WRITE_ONCE, clock: Optional[Callable[[], datetime]] = None):
        if policy not in POLICIES:
            raise ValueError(f"unknown timestamp policy {policy!r}")
        self.client = client
        self.catalog = catalog
        self.namespace = namespace
        self.policy = policy
        self.clock = clock or _utcnow

    def signal(self, stage: Stage, order: dict, metafields: list[dict]) -> bool:
        if stage.source == SOURCE_TAG:
            return stage.source_key.strip().lower() in order_tags(order)
        val = payload_metafield(order, self.namespace, stage.source_key)
        if val is _MISSING:
            mf = find_metafield(metafields, self.namespace, stage.source_key)
            val = mf.get("value") if mf else None
        return is_truthy(val)

    def _recorded(self, metafields: list[dict], key: str) -> Optional[str]:
        mf = find_metafield(metafields, self.namespace, key)
        val = (mf or {}).get("value")
        if val is None or str(val).strip() == "":
            return None
        return str(val)

    def observe(self, order: dict, metafields: list[dict]) -> list[StageObservation]:
        out = []
        for stage in self.catalog:
            active = self.signal(stage, order, metafields)
            recorded = self._recorded(metafields, stage.timestamp_key)
            if self.policy == POLICY_OVERWRITE:
                newly = active
            else:
                newly = active and recorded is None
            out.append(StageObservation(stage, active, recorded, newly))
        return out

    def reconcile(self, order) -> list[StageEvent]:
        """
        Raises MalformedPayloadError without an order id, and UpstreamApiError
        when the initial listing fails. Per-stage write failures are logged
        and skipped.
        """
        oid = order_id_of(order)
        name = order_name_of(order)
        snapshot = self.client.list(OWNER_TYPE, oid)

        pending = [o for o in self.observe(order, snapshot) if o.is_newly_triggered]
        if not pending:
            debug(f"[orders] OID={oid} no newly triggered stages")
            return []

        staff = resolve_staff(order, self.namespace)
        events: list[StageEvent] = []
        for obs in pending:
            try:
                event = self._write_stage(oid, name, obs.stage, staff)
            except UpstreamApiError as e:
                error(f"[orders] OID={oid} stage={obs.stage.name} write failed: {e.status} {e.body}")
                continue
            if event is not None:
                events.append(event)
        return events

    def _write_stage(self, oid: str, name: str, stage: Stage, staff: str) -> Optional[StageEvent]:
        fresh = self.client.list(OWNER_TYPE, oid)
        if self.policy == POLICY_WRITE_ONCE:
            already = self._recorded(fresh, stage.timestamp_key)
            if already is not None:
                info(f"[orders] OID={oid} stage={stage.name} already recorded at {already}, skipping")
                return None

        ts = format_timestamp(self.clock())
        upsert_metafield(self.client, OWNER_TYPE, oid, self.namespace, stage.timestamp_key, ts, existing=fresh)
        info(f"[orders] OID={oid} stage={stage.name} {stage.timestamp_key}={ts}")

        written_staff = None
        if stage.staff_key:
            try:
                upsert_metafield(self.client, OWNER_TYPE, oid, self.namespace, stage.staff_key, staff, existing=fresh)
                written_staff = staff
            except UpstreamApiError as e:
                warn(f"[orders] OID={oid} stage={stage.name} staff write failed: {e.status} {e.body}")

        return StageEvent(
            order_id=oid,
            order_name=name,
            stage_name=stage.name,
            display_name=stage.label,
            timestamp=ts,
            staff=written_staff,
        )
