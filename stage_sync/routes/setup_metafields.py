# stage_sync/routes/setup_metafields.py
import requests
from flask import Blueprint, current_app

from ..clients.shopify import DEFAULT_TYPE, graphql
from ..stages import SOURCE_METAFIELD

bp = Blueprint("setup_metafields", __name__)

MUTATION = """
mutation metafieldDefinitionCreate($definition: MetafieldDefinitionInput!) {
  metafieldDefinitionCreate(definition: $definition) {
    createdDefinition {
      id
      name
      namespace
      key
      type { name category }
      ownerType
    }
    userErrors { field message }
  }
}
"""


def definitions_for(catalog) -> list[tuple[str, str, str, str]]:
    """(name, key, type, description) for every order metafield the catalog uses."""
    defs = []
    for s in catalog:
        if s.source == SOURCE_METAFIELD:
            defs.append((s.label, s.source_key, DEFAULT_TYPE, f"Set to Yes when the order enters {s.label}"))
        defs.append((f"{s.label}: Timestamp", s.timestamp_key, DEFAULT_TYPE, f"UTC time the order first entered {s.label}"))
        if s.staff_key:
            defs.append((f"{s.label}: Staff", s.staff_key, DEFAULT_TYPE, f"Staff member who moved the order to {s.label}"))
    return defs


DUPLICATE_MARKERS = ("already been taken", "already exists")


def definition_status(resp: dict) -> str:
    """OK <gid> | EXISTS | ERR <messages> | UNKNOWN <resp> for one mutation result."""
    resp = resp or {}
    if resp.get("errors"):
        return f"ERR {resp['errors']}"

    block = ((resp.get("data") or {}).get("metafieldDefinitionCreate") or {})
    created = block.get("createdDefinition")
    if created:
        return f"OK {created.get('id')}"

    messages = [e.get("message", "") for e in block.get("userErrors") or []]
    if not messages:
        return f"UNKNOWN {resp}"
    joined = "; ".join(messages)
    if any(marker in joined.lower() for marker in DUPLICATE_MARKERS):
        return "EXISTS"
    return f"ERR {joined}"


def create_definitions(settings, catalog=None) -> list[str]:
    out = []
    ns = settings.namespace
    for name, key, type_, desc in definitions_for(catalog or settings.catalog):
        definition = {
            "name": name,
            "namespace": ns,
            "key": key,
            "type": type_,
            "description": desc,
            "ownerType": "ORDER",
        }
        try:
            resp = graphql(settings.domain, settings.token, MUTATION, {"definition": definition},
                           api_version=settings.api_version, timeout=settings.timeout)
        except (requests.RequestException, ValueError) as e:
            out.append(f"{ns}.{key}: EXC {e}")
            continue
        out.append(f"{ns}.{key}: {definition_status(resp)}")
    return out


@bp.post("/create")
def create_defs():
    deps = current_app.extensions["stage_sync"]
    return " ; ".join(create_definitions(deps["settings"], deps["catalog"])), 200
