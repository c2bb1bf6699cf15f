"""
Resource identity: types, names, ids and links between resources.
"""
from dataclasses import dataclass
from typing import Optional, Tuple, Union

from armkit.errors import ValidationError


@dataclass(frozen=True)
class ResourceType:
    type: str          # e.g. "Microsoft.Storage/storageAccounts"
    api_version: str   # e.g. "2019-06-01"

    @property
    def provider(self) -> str:
        return self.type.split("/", 1)[0]

    @property
    def leaf(self) -> str:
        return self.type.rsplit("/", 1)[-1]

    def resource_id(self, *args) -> "ResourceId":
        """
        resource_id(name) for top-level kinds,
        resource_id(parent, name) for kinds nested under another resource.
        """
        if len(args) == 1:
            return ResourceId(self, ResourceName.of(args[0]))
        if len(args) == 2:
            parent, name = args
            if not isinstance(parent, ResourceId):
                parent = ResourceId(_parent_type(self), ResourceName.of(parent))
            return ResourceId(self, ResourceName.of(name), parent)
        raise TypeError(f"resource_id() takes 1 or 2 arguments ({len(args)} given)")


def _parent_type(child: ResourceType) -> ResourceType:
    # "Microsoft.Network/applicationGateways/probes" -> "Microsoft.Network/applicationGateways"
    return ResourceType(child.type.rsplit("/", 1)[0], child.api_version)


@dataclass(frozen=True)
class ResourceName:
    value: str

    def __post_init__(self):
        if not isinstance(self.value, str):
            raise ValidationError(f"Resource name must be a string, got {type(self.value).__name__}")
        if not self.value:
            raise ValidationError("Resource name must not be empty")
        if self.value != self.value.strip():
            raise ValidationError(f"Resource name '{self.value}' has leading or trailing whitespace")
        if "/" in self.value:
            raise ValidationError(f"Resource name '{self.value}' must not contain '/'")

    @classmethod
    def of(cls, value: Union[str, "ResourceName"]) -> "ResourceName":
        return value if isinstance(value, ResourceName) else cls(value)

    @property
    def is_empty(self) -> bool:
        return self.value == ""

    def __str__(self) -> str:
        return self.value


# Placeholder used before a builder assigns a real name; bypasses validation.
ResourceName.EMPTY = object.__new__(ResourceName)
object.__setattr__(ResourceName.EMPTY, "value", "")


def _quote(segment: str) -> str:
    # ARM string literals escape a single quote by doubling it.
    return "'" + segment.replace("'", "''") + "'"


@dataclass(frozen=True)
class ResourceId:
    type: ResourceType
    name: ResourceName
    parent: Optional["ResourceId"] = None

    @property
    def segments(self) -> Tuple[str, ...]:
        """Names from the outermost parent down to this resource."""
        own = (self.name.value,)
        return self.parent.segments + own if self.parent else own

    @property
    def qualified_name(self) -> str:
        return "/".join(self.segments)

    @property
    def is_empty(self) -> bool:
        return self.name.is_empty and not self.type.type

    def eval(self) -> str:
        """ARM expression used wherever another resource refers to this one."""
        args = ", ".join(_quote(s) for s in (self.type.type,) + self.segments)
        return f"[resourceId({args})]"

    def __str__(self) -> str:
        return self.eval()


ResourceId.EMPTY = ResourceId(ResourceType("", ""), ResourceName.EMPTY)


@dataclass(frozen=True)
class LinkedResource:
    """
    A reference to another resource. Managed links point at resources deployed
    by the same template and create a dependency; unmanaged links point at
    resources that already exist and do not.
    """
    resource_id: ResourceId
    managed: bool = True

    @classmethod
    def to_managed(cls, resource_id: ResourceId) -> "LinkedResource":
        return cls(resource_id, True)

    @classmethod
    def to_unmanaged(cls, resource_id: ResourceId) -> "LinkedResource":
        return cls(resource_id, False)

    def eval(self) -> str:
        return self.resource_id.eval()


# ------------------------------------------------------------------ well-known kinds

STORAGE_ACCOUNTS = ResourceType("Microsoft.Storage/storageAccounts", "2019-06-01")
WORKSPACES = ResourceType("Microsoft.OperationalInsights/workspaces", "2020-03-01-preview")
VIRTUAL_NETWORKS = ResourceType("Microsoft.Network/virtualNetworks", "2020-07-01")
SUBNETS = ResourceType("Microsoft.Network/virtualNetworks/subnets", "2020-07-01")
PUBLIC_IP_ADDRESSES = ResourceType("Microsoft.Network/publicIPAddresses", "2020-07-01")
EVENT_HUB_NAMESPACES = ResourceType("Microsoft.EventHub/namespaces", "2017-04-01")
EVENT_HUB_AUTHORIZATION_RULES = ResourceType("Microsoft.EventHub/namespaces/AuthorizationRules", "2017-04-01")

APPLICATION_GATEWAYS = ResourceType("Microsoft.Network/applicationGateways", "2020-11-01")
APPLICATION_GATEWAY_FRONTEND_IP_CONFIGURATIONS = ResourceType(
    "Microsoft.Network/applicationGateways/frontendIPConfigurations", "2020-11-01"
)
APPLICATION_GATEWAY_FRONTEND_PORTS = ResourceType(
    "Microsoft.Network/applicationGateways/frontendPorts", "2020-11-01"
)
APPLICATION_GATEWAY_HTTP_LISTENERS = ResourceType(
    "Microsoft.Network/applicationGateways/httpListeners", "2020-11-01"
)
APPLICATION_GATEWAY_BACKEND_HTTP_SETTINGS = ResourceType(
    "Microsoft.Network/applicationGateways/backendHttpSettingsCollection", "2020-11-01"
)
APPLICATION_GATEWAY_BACKEND_ADDRESS_POOLS = ResourceType(
    "Microsoft.Network/applicationGateways/backendAddressPools", "2020-11-01"
)
APPLICATION_GATEWAY_PROBES = ResourceType(
    "Microsoft.Network/applicationGateways/probes", "2020-11-01"
)
APPLICATION_GATEWAY_REQUEST_ROUTING_RULES = ResourceType(
    "Microsoft.Network/applicationGateways/requestRoutingRules", "2020-11-01"
)


def diagnostic_settings_type(source: ResourceType) -> ResourceType:
    """Diagnostic settings are an extension resource of whatever they monitor."""
    return ResourceType(f"{source.type}/providers/diagnosticSettings", "2017-05-01-preview")
