"""
Virtual networks, plus id helpers for network and event hub resources that
armkit refers to but does not build.
"""
import ipaddress
from dataclasses import dataclass, field, replace
from typing import Dict, FrozenSet, List, Tuple

from armkit.builders.base import Builder, DependableMixin, TaggableMixin
from armkit.errors import PreconditionError, ValidationError
from armkit.models.identity import (
    EVENT_HUB_AUTHORIZATION_RULES,
    EVENT_HUB_NAMESPACES,
    PUBLIC_IP_ADDRESSES,
    SUBNETS,
    VIRTUAL_NETWORKS,
    ResourceId,
    ResourceName,
)
from armkit.models.resource import Location, ResourceDefinition


def subnet_id(vnet: str, subnet: str) -> ResourceId:
    return SUBNETS.resource_id(VIRTUAL_NETWORKS.resource_id(vnet), subnet)


def public_ip_id(name: str) -> ResourceId:
    return PUBLIC_IP_ADDRESSES.resource_id(name)


def event_hub_authorization_rule_id(namespace: str, rule: str = "RootManageSharedAccessKey") -> ResourceId:
    return EVENT_HUB_AUTHORIZATION_RULES.resource_id(EVENT_HUB_NAMESPACES.resource_id(namespace), rule)


@dataclass(frozen=True)
class Subnet:
    name: ResourceName
    prefix: str


@dataclass(frozen=True)
class VirtualNetworkConfig:
    name: ResourceName = ResourceName.EMPTY
    address_spaces: Tuple[str, ...] = ()
    subnets: Tuple[Subnet, ...] = ()
    dependencies: FrozenSet[ResourceId] = frozenset()
    tags: Dict[str, str] = field(default_factory=dict)

    @property
    def resource_id(self) -> ResourceId:
        return VIRTUAL_NETWORKS.resource_id(self.name)

    def subnet_id(self, name: str) -> ResourceId:
        return SUBNETS.resource_id(self.resource_id, name)


def _network(prefix: str):
    try:
        return ipaddress.ip_network(prefix)
    except ValueError as exc:
        raise ValidationError(f"Invalid address prefix '{prefix}'") from exc


class VirtualNetworkBuilder(TaggableMixin, DependableMixin, Builder[VirtualNetworkConfig]):
    kind = "virtual_network"

    def initial(self) -> VirtualNetworkConfig:
        return VirtualNetworkConfig()

    def name(self, state: VirtualNetworkConfig, name: str) -> VirtualNetworkConfig:
        return replace(state, name=ResourceName.of(name))

    def add_address_space(self, state: VirtualNetworkConfig, prefix: str) -> VirtualNetworkConfig:
        _network(prefix)
        return replace(state, address_spaces=state.address_spaces + (prefix,))

    def add_subnet(self, state: VirtualNetworkConfig, name: str, prefix: str) -> VirtualNetworkConfig:
        if not state.address_spaces:
            raise PreconditionError(
                "You must add an address space before adding subnets",
                {"subnet": name},
            )
        subnet_net = _network(prefix)
        if not any(subnet_net.subnet_of(_network(space)) for space in state.address_spaces
                   if _network(space).version == subnet_net.version):
            raise ValidationError(
                f"Subnet '{name}' ({prefix}) is outside every address space of the network",
                context={"address_spaces": list(state.address_spaces)},
            )
        return replace(state, subnets=state.subnets + (Subnet(ResourceName.of(name), prefix),))

    def finalize(self, state: VirtualNetworkConfig) -> VirtualNetworkConfig:
        problems = []
        if state.name.is_empty:
            problems.append("virtual network name is not set")
        if not state.address_spaces:
            problems.append("at least one address space is required")
        names = [s.name for s in state.subnets]
        duplicates = sorted({n.value for n in names if names.count(n) > 1})
        if duplicates:
            problems.append(f"duplicate subnet names: {', '.join(duplicates)}")
        if problems:
            raise ValidationError("Invalid virtual network", problems)
        return state

    def build(self, state: VirtualNetworkConfig, location: Location) -> List[ResourceDefinition]:
        return [
            ResourceDefinition(
                resource_id=state.resource_id,
                location=location,
                properties={
                    "addressSpace": {"addressPrefixes": list(state.address_spaces)},
                    "subnets": [
                        {"name": s.name.value, "properties": {"addressPrefix": s.prefix}}
                        for s in state.subnets
                    ],
                },
                dependencies=state.dependencies,
                tags=state.tags,
            )
        ]


virtual_network = VirtualNetworkBuilder()
