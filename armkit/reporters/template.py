"""
ARM deployment template generator.
"""
import json
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, Mapping

from armkit.engine.resolver import Resolution, resolve
from armkit.models.identity import APPLICATION_GATEWAYS, LinkedResource, ResourceId
from armkit.models.resource import ResourceDefinition
from armkit.models.units import Quantity

SCHEMA = "https://schema.management.azure.com/schemas/2019-04-01/deploymentTemplate.json#"
CONTENT_VERSION = "1.0.0.0"

# Properties written as an explicit null instead of being left out, per resource type.
# Everything else that is None is omitted.
EXPLICIT_NULL_PROPERTIES: Dict[str, FrozenSet[str]] = {
    # Dynamic frontend IPs must state that no private address is pinned.
    APPLICATION_GATEWAYS.type: frozenset({"privateIPAddress"}),
}


def to_arm_value(val: Any, nullable: FrozenSet[str] = frozenset()) -> Any:
    """Translate a property tree into plain JSON values."""
    if isinstance(val, (ResourceId, LinkedResource)):
        return val.eval()
    if isinstance(val, Quantity):
        return val.value
    if isinstance(val, Enum):
        return val.value
    if isinstance(val, Mapping):
        return {
            k: to_arm_value(v, nullable)
            for k, v in val.items()
            if v is not None or k in nullable
        }
    if isinstance(val, (list, tuple)):
        return [to_arm_value(v, nullable) for v in val if v is not None]
    return val


def resource_entry(definition: ResourceDefinition, dependencies: Iterable[ResourceId]) -> Dict[str, Any]:
    nullable = EXPLICIT_NULL_PROPERTIES.get(definition.type, frozenset())
    entry: Dict[str, Any] = {
        "type": definition.type,
        "apiVersion": definition.resource_id.type.api_version,
        "name": definition.name,
        "location": definition.location.arm_value,
    }
    entry.update(to_arm_value(definition.top_level))
    if definition.tags:
        entry["tags"] = dict(definition.tags)
    depends_on = sorted(d.eval() for d in dependencies)
    if depends_on:
        entry["dependsOn"] = depends_on
    entry["properties"] = to_arm_value(definition.properties, nullable)
    return entry


def build_template(definitions: Iterable[ResourceDefinition], resolution: Resolution = None) -> Dict[str, Any]:
    if resolution is None:
        resolution = resolve(definitions)
    return {
        "$schema": SCHEMA,
        "contentVersion": CONTENT_VERSION,
        "parameters": {},
        "variables": {},
        "resources": [
            resource_entry(d, resolution.dependencies_of(d.resource_id))
            for d in resolution.order
        ],
        "outputs": {},
    }


def build_report(definitions: Iterable[ResourceDefinition], resolution: Resolution = None) -> str:
    return json.dumps(build_template(definitions, resolution), indent=2)
