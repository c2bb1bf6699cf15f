from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, FrozenSet, Mapping, Optional

from armkit.errors import ValidationError
from armkit.models.identity import ResourceId


class FeatureFlag(str, Enum):
    ENABLED  = "Enabled"
    DISABLED = "Disabled"


@dataclass(frozen=True)
class Location:
    name: str

    def __post_init__(self):
        if not isinstance(self.name, str) or not self.name.strip():
            raise ValidationError("Location must be a non-empty string")

    @property
    def arm_value(self) -> str:
        return self.name.replace(" ", "").lower()

    def __str__(self) -> str:
        return self.arm_value


class Locations:
    WEST_EUROPE  = Location("westeurope")
    NORTH_EUROPE = Location("northeurope")
    EAST_US      = Location("eastus")
    WEST_US      = Location("westus")
    UK_SOUTH     = Location("uksouth")


@dataclass(frozen=True)
class ResourceDefinition:
    resource_id: ResourceId
    location: Location
    properties: Mapping[str, Any] = field(default_factory=dict)
    dependencies: FrozenSet[ResourceId] = frozenset()
    tags: Mapping[str, str] = field(default_factory=dict)
    arm_name: Optional[str] = None          # rendered name when it differs from the qualified name
    top_level: Mapping[str, Any] = field(default_factory=dict)   # sku, kind, zones ...

    def __post_init__(self):
        # Freeze the containers handed in by builders.
        object.__setattr__(self, "dependencies", frozenset(self.dependencies))
        object.__setattr__(self, "tags", MappingProxyType(dict(self.tags)))
        object.__setattr__(self, "properties", MappingProxyType(dict(self.properties)))
        object.__setattr__(self, "top_level", MappingProxyType(dict(self.top_level)))

    @property
    def name(self) -> str:
        return self.arm_name or self.resource_id.qualified_name

    @property
    def type(self) -> str:
        return self.resource_id.type.type
