"""
Application gateways. One gateway config builds the root gateway resource and
a child resource for every backend pool, probe, backend HTTP setting, HTTP
listener and request routing rule.
"""
import ipaddress
from collections import Counter
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Tuple, Union

from armkit.builders.base import Builder, DependableMixin, TaggableMixin
from armkit.errors import PreconditionError, ValidationError
from armkit.models.identity import (
    APPLICATION_GATEWAY_BACKEND_ADDRESS_POOLS,
    APPLICATION_GATEWAY_BACKEND_HTTP_SETTINGS,
    APPLICATION_GATEWAY_FRONTEND_IP_CONFIGURATIONS,
    APPLICATION_GATEWAY_FRONTEND_PORTS,
    APPLICATION_GATEWAY_HTTP_LISTENERS,
    APPLICATION_GATEWAY_PROBES,
    APPLICATION_GATEWAY_REQUEST_ROUTING_RULES,
    APPLICATION_GATEWAYS,
    LinkedResource,
    ResourceId,
    ResourceName,
)
from armkit.models.resource import FeatureFlag, Location, ResourceDefinition
from armkit.models.units import Quantity, as_quantity, seconds

Link = Union[ResourceId, LinkedResource]


class HttpProtocol(str, Enum):
    HTTP  = "Http"
    HTTPS = "Https"


class SkuName(str, Enum):
    STANDARD_SMALL  = "Standard_Small"
    STANDARD_MEDIUM = "Standard_Medium"
    STANDARD_LARGE  = "Standard_Large"
    STANDARD_V2     = "Standard_v2"
    WAF_MEDIUM      = "WAF_Medium"
    WAF_LARGE       = "WAF_Large"
    WAF_V2          = "WAF_v2"

    @property
    def tier(self) -> str:
        if self.value.endswith("_v2"):
            return self.value
        return "WAF" if self.value.startswith("WAF") else "Standard"


@dataclass(frozen=True)
class GatewayIpConfig:
    name: ResourceName
    subnet: Link


@dataclass(frozen=True)
class FrontendIp:
    name: ResourceName
    private_ip: Optional[str] = None        # None means dynamic allocation
    public_ip: Optional[Link] = None

    def __post_init__(self):
        if self.private_ip is not None:
            try:
                ipaddress.ip_address(self.private_ip)
            except ValueError as exc:
                raise ValidationError(f"Invalid private IP address '{self.private_ip}'") from exc


@dataclass(frozen=True)
class FrontendPort:
    name: ResourceName
    port: int

    def __post_init__(self):
        if not 1 <= self.port <= 65535:
            raise ValidationError(f"Frontend port {self.port} is out of range")


@dataclass(frozen=True)
class BackendAddress:
    name: ResourceName
    ip_address: Optional[str] = None
    fqdn: Optional[str] = None
    virtual_network: Optional[LinkedResource] = None


@dataclass(frozen=True)
class BackendAddressPool:
    name: ResourceName
    addresses: Tuple[BackendAddress, ...] = ()


@dataclass(frozen=True)
class Probe:
    name: ResourceName
    protocol: HttpProtocol = HttpProtocol.HTTP
    host: str = "127.0.0.1"
    path: str = "/"
    interval: Quantity = seconds(30)
    timeout: Quantity = seconds(30)
    unhealthy_threshold: int = 3


@dataclass(frozen=True)
class BackendHttpSettings:
    name: ResourceName
    port: int = 80
    protocol: HttpProtocol = HttpProtocol.HTTP
    cookie_based_affinity: FeatureFlag = FeatureFlag.DISABLED
    request_timeout: Quantity = seconds(30)
    probe: Optional[ResourceName] = None


@dataclass(frozen=True)
class HttpListener:
    name: ResourceName
    frontend_ip: ResourceName
    frontend_port: ResourceName
    protocol: HttpProtocol = HttpProtocol.HTTP
    host_names: Tuple[str, ...] = ()


@dataclass(frozen=True)
class RoutingRule:
    name: ResourceName
    listener: ResourceName
    backend_pool: ResourceName
    backend_http_settings: ResourceName
    priority: Optional[int] = None


@dataclass(frozen=True)
class ApplicationGatewayConfig:
    name: ResourceName = ResourceName.EMPTY
    sku: SkuName = SkuName.STANDARD_V2
    capacity: Optional[int] = 2
    autoscale: Optional[Tuple[int, int]] = None     # (min, max)
    enable_http2: bool = False
    zones: Tuple[str, ...] = ()
    gateway_ip_configs: Tuple[GatewayIpConfig, ...] = ()
    frontend_ips: Tuple[FrontendIp, ...] = ()
    frontend_ports: Tuple[FrontendPort, ...] = ()
    backend_pools: Tuple[BackendAddressPool, ...] = ()
    probes: Tuple[Probe, ...] = ()
    backend_http_settings: Tuple[BackendHttpSettings, ...] = ()
    listeners: Tuple[HttpListener, ...] = ()
    routing_rules: Tuple[RoutingRule, ...] = ()
    dependencies: FrozenSet[ResourceId] = frozenset()
    tags: Dict[str, str] = field(default_factory=dict)

    @property
    def resource_id(self) -> ResourceId:
        return APPLICATION_GATEWAYS.resource_id(self.name)


def _names(items) -> List[ResourceName]:
    return [i.name for i in items]


def _duplicates(label: str, items) -> List[str]:
    counts = Counter(_names(items))
    return [f"duplicate {label} name '{n.value}'" for n, c in counts.items() if c > 1]


def _link_id(link: Link) -> Dict[str, Any]:
    return {"id": link}


class ApplicationGatewayBuilder(TaggableMixin, DependableMixin, Builder[ApplicationGatewayConfig]):
    kind = "application_gateway"

    def initial(self) -> ApplicationGatewayConfig:
        return ApplicationGatewayConfig()

    def name(self, state: ApplicationGatewayConfig, name: str) -> ApplicationGatewayConfig:
        return replace(state, name=ResourceName.of(name))

    def sku(self, state: ApplicationGatewayConfig, sku: Union[str, SkuName]) -> ApplicationGatewayConfig:
        try:
            return replace(state, sku=SkuName(sku))
        except ValueError as exc:
            raise ValidationError(f"Unknown application gateway sku '{sku}'") from exc

    def capacity(self, state: ApplicationGatewayConfig, capacity: int) -> ApplicationGatewayConfig:
        """Fixed instance count; replaces any autoscale range."""
        return replace(state, capacity=capacity, autoscale=None)

    def autoscale(self, state: ApplicationGatewayConfig, min_capacity: int, max_capacity: int) -> ApplicationGatewayConfig:
        """Autoscale range; replaces any fixed capacity. Requires a v2 sku."""
        if not state.sku.value.endswith("_v2"):
            raise PreconditionError(
                "Autoscaling requires a v2 sku; set the sku first",
                {"sku": state.sku.value},
            )
        return replace(state, capacity=None, autoscale=(min_capacity, max_capacity))

    def enable_http2(self, state: ApplicationGatewayConfig) -> ApplicationGatewayConfig:
        return replace(state, enable_http2=True)

    def zones(self, state: ApplicationGatewayConfig, *zones: str) -> ApplicationGatewayConfig:
        return replace(state, zones=tuple(zones))

    def add_gateway_ip_config(self, state: ApplicationGatewayConfig, name: str, subnet: Link) -> ApplicationGatewayConfig:
        entry = GatewayIpConfig(ResourceName.of(name), subnet)
        return replace(state, gateway_ip_configs=state.gateway_ip_configs + (entry,))

    def add_frontend_ip(self, state: ApplicationGatewayConfig, name: str, private_ip: Optional[str] = None,
                        public_ip: Optional[Link] = None) -> ApplicationGatewayConfig:
        entry = FrontendIp(ResourceName.of(name), private_ip, public_ip)
        return replace(state, frontend_ips=state.frontend_ips + (entry,))

    def add_frontend_port(self, state: ApplicationGatewayConfig, name: str, port: int) -> ApplicationGatewayConfig:
        entry = FrontendPort(ResourceName.of(name), port)
        return replace(state, frontend_ports=state.frontend_ports + (entry,))

    def add_backend_pool(self, state: ApplicationGatewayConfig, pool: BackendAddressPool) -> ApplicationGatewayConfig:
        return replace(state, backend_pools=state.backend_pools + (pool,))

    def add_probe(self, state: ApplicationGatewayConfig, probe: Probe) -> ApplicationGatewayConfig:
        return replace(state, probes=state.probes + (probe,))

    def add_backend_http_settings(self, state: ApplicationGatewayConfig,
                                  settings: BackendHttpSettings) -> ApplicationGatewayConfig:
        return replace(state, backend_http_settings=state.backend_http_settings + (settings,))

    def add_listener(self, state: ApplicationGatewayConfig, listener: HttpListener) -> ApplicationGatewayConfig:
        return replace(state, listeners=state.listeners + (listener,))

    def add_routing_rule(self, state: ApplicationGatewayConfig, rule: RoutingRule) -> ApplicationGatewayConfig:
        return replace(state, routing_rules=state.routing_rules + (rule,))

    # ------------------------------------------------------------ validation

    def finalize(self, state: ApplicationGatewayConfig) -> ApplicationGatewayConfig:
        problems: List[str] = []
        if state.name.is_empty:
            problems.append("application gateway name is not set")
        for label, items in (
            ("gateway IP configuration", state.gateway_ip_configs),
            ("frontend IP configuration", state.frontend_ips),
            ("frontend port", state.frontend_ports),
            ("backend address pool", state.backend_pools),
            ("HTTP listener", state.listeners),
            ("request routing rule", state.routing_rules),
        ):
            if not items:
                problems.append(f"at least one {label} is required")
        for label, items in (
            ("frontend IP configuration", state.frontend_ips),
            ("frontend port", state.frontend_ports),
            ("backend address pool", state.backend_pools),
            ("probe", state.probes),
            ("backend HTTP settings", state.backend_http_settings),
            ("HTTP listener", state.listeners),
            ("request routing rule", state.routing_rules),
        ):
            problems.extend(_duplicates(label, items))
        if state.autoscale is not None:
            low, high = state.autoscale
            if low < 0 or high < low:
                problems.append(f"invalid autoscale range {low}-{high}")

        frontend_ips = set(_names(state.frontend_ips))
        frontend_ports = set(_names(state.frontend_ports))
        pools = set(_names(state.backend_pools))
        probes = set(_names(state.probes))
        settings = set(_names(state.backend_http_settings))
        listeners = set(_names(state.listeners))

        for s in state.backend_http_settings:
            if s.probe is not None and s.probe not in probes:
                problems.append(f"backend HTTP settings '{s.name}' refers to unknown probe '{s.probe}'")
        for lst in state.listeners:
            if lst.frontend_ip not in frontend_ips:
                problems.append(f"listener '{lst.name}' refers to unknown frontend IP '{lst.frontend_ip}'")
            if lst.frontend_port not in frontend_ports:
                problems.append(f"listener '{lst.name}' refers to unknown frontend port '{lst.frontend_port}'")
        for rule in state.routing_rules:
            if rule.listener not in listeners:
                problems.append(f"rule '{rule.name}' refers to unknown listener '{rule.listener}'")
            if rule.backend_pool not in pools:
                problems.append(f"rule '{rule.name}' refers to unknown backend pool '{rule.backend_pool}'")
            if rule.backend_http_settings not in settings:
                problems.append(
                    f"rule '{rule.name}' refers to unknown backend HTTP settings '{rule.backend_http_settings}'"
                )
        if problems:
            raise ValidationError(
                "Invalid application gateway", problems, {"name": state.name.value or "<unnamed>"}
            )
        return state

    # ------------------------------------------------------------ build

    def build(self, state: ApplicationGatewayConfig, location: Location) -> List[ResourceDefinition]:
        gateway = state.resource_id
        definitions = [self._gateway(state, location)]

        def child(resource_type, name: ResourceName, properties: Dict[str, Any]) -> ResourceDefinition:
            return ResourceDefinition(
                resource_id=resource_type.resource_id(gateway, name),
                location=location,
                properties=properties,
            )

        for pool in state.backend_pools:
            definitions.append(child(APPLICATION_GATEWAY_BACKEND_ADDRESS_POOLS, pool.name, {
                "backendAddresses": [
                    {
                        "name": addr.name.value,
                        "ipAddress": addr.ip_address,
                        "fqdn": addr.fqdn,
                        "virtualNetwork": _link_id(addr.virtual_network) if addr.virtual_network else None,
                    }
                    for addr in pool.addresses
                ],
            }))
        for probe in state.probes:
            definitions.append(child(APPLICATION_GATEWAY_PROBES, probe.name, {
                "protocol": probe.protocol,
                "host": probe.host,
                "path": probe.path,
                "interval": probe.interval,
                "timeout": probe.timeout,
                "unhealthyThreshold": probe.unhealthy_threshold,
            }))
        for s in state.backend_http_settings:
            definitions.append(child(APPLICATION_GATEWAY_BACKEND_HTTP_SETTINGS, s.name, {
                "port": s.port,
                "protocol": s.protocol,
                "cookieBasedAffinity": s.cookie_based_affinity,
                "requestTimeout": s.request_timeout,
                "probe": _link_id(APPLICATION_GATEWAY_PROBES.resource_id(gateway, s.probe)) if s.probe else None,
            }))
        for lst in state.listeners:
            definitions.append(child(APPLICATION_GATEWAY_HTTP_LISTENERS, lst.name, {
                "frontendIPConfiguration": _link_id(
                    APPLICATION_GATEWAY_FRONTEND_IP_CONFIGURATIONS.resource_id(gateway, lst.frontend_ip)
                ),
                "frontendPort": _link_id(APPLICATION_GATEWAY_FRONTEND_PORTS.resource_id(gateway, lst.frontend_port)),
                "protocol": lst.protocol,
                "hostNames": list(lst.host_names) or None,
            }))
        for rule in state.routing_rules:
            definitions.append(child(APPLICATION_GATEWAY_REQUEST_ROUTING_RULES, rule.name, {
                "ruleType": "Basic",
                "priority": rule.priority,
                "httpListener": _link_id(APPLICATION_GATEWAY_HTTP_LISTENERS.resource_id(gateway, rule.listener)),
                "backendAddressPool": _link_id(
                    APPLICATION_GATEWAY_BACKEND_ADDRESS_POOLS.resource_id(gateway, rule.backend_pool)
                ),
                "backendHttpSettings": _link_id(
                    APPLICATION_GATEWAY_BACKEND_HTTP_SETTINGS.resource_id(gateway, rule.backend_http_settings)
                ),
            }))
        return definitions

    def _gateway(self, state: ApplicationGatewayConfig, location: Location) -> ResourceDefinition:
        sku = {"name": state.sku.value, "tier": state.sku.tier, "capacity": state.capacity}
        autoscale = None
        if state.autoscale is not None:
            autoscale = {"minCapacity": state.autoscale[0], "maxCapacity": state.autoscale[1]}
        return ResourceDefinition(
            resource_id=state.resource_id,
            location=location,
            properties={
                "sku": sku,
                "autoscaleConfiguration": autoscale,
                "enableHttp2": state.enable_http2,
                "gatewayIPConfigurations": [
                    {"name": g.name.value, "properties": {"subnet": _link_id(g.subnet)}}
                    for g in state.gateway_ip_configs
                ],
                "frontendIPConfigurations": [
                    {
                        "name": f.name.value,
                        "properties": {
                            "privateIPAllocationMethod": "Dynamic" if f.private_ip is None else "Static",
                            "privateIPAddress": f.private_ip,
                            "publicIPAddress": _link_id(f.public_ip) if f.public_ip else None,
                        },
                    }
                    for f in state.frontend_ips
                ],
                "frontendPorts": [
                    {"name": p.name.value, "properties": {"port": p.port}}
                    for p in state.frontend_ports
                ],
            },
            dependencies=state.dependencies,
            tags=state.tags,
            top_level={"zones": list(state.zones)} if state.zones else {},
        )


application_gateway = ApplicationGatewayBuilder()


def backend_pool(name: str, *addresses: BackendAddress) -> BackendAddressPool:
    return BackendAddressPool(ResourceName.of(name), tuple(addresses))


def probe(name: str, protocol: HttpProtocol = HttpProtocol.HTTP, path: str = "/", host: str = "127.0.0.1",
          interval: Union[int, Quantity] = 30, timeout: Union[int, Quantity] = 30,
          unhealthy_threshold: int = 3) -> Probe:
    return Probe(
        ResourceName.of(name), protocol, host, path,
        as_quantity(interval, "s"), as_quantity(timeout, "s"), unhealthy_threshold,
    )


def listener(name: str, frontend_ip: str, frontend_port: str, protocol: HttpProtocol = HttpProtocol.HTTP,
             host_names: Tuple[str, ...] = ()) -> HttpListener:
    return HttpListener(
        ResourceName.of(name), ResourceName.of(frontend_ip), ResourceName.of(frontend_port),
        protocol, tuple(host_names),
    )


def http_settings(name: str, port: int = 80, protocol: HttpProtocol = HttpProtocol.HTTP,
                  cookie_based_affinity: FeatureFlag = FeatureFlag.DISABLED,
                  request_timeout: Union[int, Quantity] = 30, probe: Optional[str] = None) -> BackendHttpSettings:
    return BackendHttpSettings(
        ResourceName.of(name), port, protocol, cookie_based_affinity,
        as_quantity(request_timeout, "s"), ResourceName.of(probe) if probe else None,
    )


def routing_rule(name: str, listener: str, backend_pool: str, backend_http_settings: str,
                 priority: Optional[int] = None) -> RoutingRule:
    return RoutingRule(
        ResourceName.of(name), ResourceName.of(listener), ResourceName.of(backend_pool),
        ResourceName.of(backend_http_settings), priority,
    )
