"""
Load a deployment from a YAML file.

    location: westeurope
    tags: {env: prod}
    resources:
      - kind: storage_account
        name: mydata
      - kind: diagnostic_settings
        name: diag
        metrics_source: {kind: storage_account, name: mydata}
        destinations:
          - {kind: storage_account, name: mydata}
        metrics:
          - {category: Transaction, retention_days: 30}

References to other resources are mappings with either a ``kind`` known to
armkit or an explicit provider ``type``; ``managed: false`` marks a resource
that already exists and is not deployed by this file.
"""
from typing import Any, Callable, Dict, List, Tuple, Union

import yaml

from armkit.builders.base import Builder, apply, depends_on
from armkit.builders.diagnostics import LogSetting, MetricSetting, diagnostic_settings
from armkit.builders.gateway import (
    BackendAddress,
    HttpProtocol,
    application_gateway,
    backend_pool,
    http_settings,
    listener,
    probe,
    routing_rule,
)
from armkit.builders.loganalytics import log_analytics
from armkit.builders.network import event_hub_authorization_rule_id, subnet_id, virtual_network
from armkit.builders.storage import storage_account
from armkit.engine.deployment import Deployment
from armkit.errors import ValidationError
from armkit.models.identity import (
    APPLICATION_GATEWAYS,
    EVENT_HUB_NAMESPACES,
    PUBLIC_IP_ADDRESSES,
    STORAGE_ACCOUNTS,
    VIRTUAL_NETWORKS,
    WORKSPACES,
    LinkedResource,
    ResourceId,
    ResourceName,
    ResourceType,
)
from armkit.models.resource import FeatureFlag, Location

_REFERENCE_TYPES = {
    "storage_account": STORAGE_ACCOUNTS,
    "log_analytics": WORKSPACES,
    "virtual_network": VIRTUAL_NETWORKS,
    "public_ip": PUBLIC_IP_ADDRESSES,
    "application_gateway": APPLICATION_GATEWAYS,
    "event_hub_namespace": EVENT_HUB_NAMESPACES,
}


def _require(raw: Dict[str, Any], key: str, where: str) -> Any:
    if key not in raw or raw[key] is None:
        raise ValidationError(f"Missing required key '{key}'", context={"in": where})
    return raw[key]


def _check_keys(raw: Dict[str, Any], allowed: set, where: str) -> None:
    unknown = sorted(set(raw) - allowed)
    if unknown:
        raise ValidationError(f"Unknown keys: {', '.join(unknown)}", context={"in": where})


def parse_reference(ref: Any, where: str) -> ResourceId:
    if not isinstance(ref, dict):
        raise ValidationError(f"A reference must be a mapping, got {type(ref).__name__}", context={"in": where})
    kind = ref.get("kind")
    name = _require(ref, "name", where)
    if kind == "subnet":
        return subnet_id(_require(ref, "vnet", where), name)
    if kind == "event_hub_rule":
        return event_hub_authorization_rule_id(_require(ref, "namespace", where), name)
    if kind is not None:
        if kind not in _REFERENCE_TYPES:
            raise ValidationError(f"Unknown reference kind '{kind}'", context={"in": where})
        return _REFERENCE_TYPES[kind].resource_id(name)
    rtype = ResourceType(_require(ref, "type", where), ref.get("api_version", ""))
    return rtype.resource_id(name)


def parse_link(ref: Any, where: str) -> Union[ResourceId, LinkedResource]:
    rid = parse_reference(ref, where)
    if ref.get("managed", True):
        return rid
    return LinkedResource.to_unmanaged(rid)


def _as_link(ref: Any, where: str) -> LinkedResource:
    link = parse_link(ref, where)
    return link if isinstance(link, LinkedResource) else LinkedResource.to_managed(link)


# ------------------------------------------------------------------ per-kind loaders

_COMMON_KEYS = {"kind", "name", "tags", "depends_on"}


def _common_steps(raw: Dict[str, Any], builder: Builder, where: str) -> List[Callable]:
    steps: List[Callable] = []
    if raw.get("tags"):
        tags = {str(k): str(v) for k, v in raw["tags"].items()}
        steps.append(lambda s: builder.add_tags(s, tags))
    if raw.get("depends_on"):
        refs = [parse_reference(r, where) for r in raw["depends_on"]]
        steps.append(lambda s: depends_on(builder, s, *refs))
    return steps


def _load_storage_account(raw: Dict[str, Any], where: str) -> List[Any]:
    _check_keys(raw, _COMMON_KEYS | {"sku", "account_kind", "https_only", "min_tls_version"}, where)
    steps: List[Any] = [("name", _require(raw, "name", where))]
    if "sku" in raw:
        steps.append(("sku", raw["sku"]))
    if "account_kind" in raw:
        steps.append(("account_kind", raw["account_kind"]))
    if "https_only" in raw:
        steps.append(("https_only", bool(raw["https_only"])))
    if "min_tls_version" in raw:
        steps.append(("min_tls_version", raw["min_tls_version"]))
    return steps


def _load_log_analytics(raw: Dict[str, Any], where: str) -> List[Any]:
    _check_keys(raw, _COMMON_KEYS | {"sku", "retention_days", "daily_quota_gb"}, where)
    steps: List[Any] = [("name", _require(raw, "name", where))]
    if "sku" in raw:
        steps.append(("sku", raw["sku"]))
    if "retention_days" in raw:
        steps.append(("retention_period", int(raw["retention_days"])))
    if "daily_quota_gb" in raw:
        steps.append(("daily_quota", int(raw["daily_quota_gb"])))
    return steps


def _load_virtual_network(raw: Dict[str, Any], where: str) -> List[Any]:
    _check_keys(raw, _COMMON_KEYS | {"address_spaces", "subnets"}, where)
    steps: List[Any] = [("name", _require(raw, "name", where))]
    for prefix in raw.get("address_spaces") or []:
        steps.append(("add_address_space", prefix))
    for subnet in raw.get("subnets") or []:
        steps.append(("add_subnet", _require(subnet, "name", where), _require(subnet, "prefix", where)))
    return steps


def _load_diagnostic_settings(raw: Dict[str, Any], where: str) -> List[Any]:
    _check_keys(
        raw,
        _COMMON_KEYS | {"metrics_source", "destinations", "event_hub", "dedicated_log_analytics", "metrics", "logs"},
        where,
    )
    steps: List[Any] = [
        ("name", _require(raw, "name", where)),
        ("metrics_source", parse_reference(_require(raw, "metrics_source", where), where)),
    ]
    for dest in raw.get("destinations") or []:
        steps.append(("add_destination", parse_reference(dest, where)))
    hub = raw.get("event_hub")
    if hub:
        steps.append(("event_hub_authorization_rule_id",
                      parse_reference(_require(hub, "authorization_rule", where), where)))
        if hub.get("name"):
            steps.append(("event_hub_name", hub["name"]))
    if raw.get("dedicated_log_analytics"):
        steps.append(("enable_dedicated_log_analytics",))
    metrics = [
        MetricSetting.create(
            _require(m, "category", where),
            enabled=m.get("enabled", True),
            time_grain=m.get("time_grain"),
            retention_days=m.get("retention_days"),
        )
        for m in raw.get("metrics") or []
    ]
    logs = [
        LogSetting.create(
            _require(entry, "category", where),
            enabled=entry.get("enabled", True),
            retention_days=entry.get("retention_days"),
        )
        for entry in raw.get("logs") or []
    ]
    if metrics:
        steps.append(("capture_metrics", metrics))
    if logs:
        steps.append(("capture_logs", logs))
    return steps


def _load_application_gateway(raw: Dict[str, Any], where: str) -> List[Any]:
    _check_keys(
        raw,
        _COMMON_KEYS | {
            "sku", "capacity", "autoscale", "http2", "zones", "gateway_ip_configs", "frontend_ips",
            "frontend_ports", "backend_pools", "probes", "backend_http_settings", "listeners", "routing_rules",
        },
        where,
    )
    steps: List[Any] = [("name", _require(raw, "name", where))]
    if "sku" in raw:
        steps.append(("sku", raw["sku"]))
    if "capacity" in raw:
        steps.append(("capacity", int(raw["capacity"])))
    if "autoscale" in raw:
        scale = raw["autoscale"]
        steps.append(("autoscale", int(_require(scale, "min", where)), int(_require(scale, "max", where))))
    if raw.get("http2"):
        steps.append(("enable_http2",))
    if raw.get("zones"):
        steps.append(("zones",) + tuple(str(z) for z in raw["zones"]))
    for g in raw.get("gateway_ip_configs") or []:
        steps.append(("add_gateway_ip_config", _require(g, "name", where),
                      parse_link(_require(g, "subnet", where), where)))
    for f in raw.get("frontend_ips") or []:
        public_ip = parse_link(f["public_ip"], where) if f.get("public_ip") else None
        steps.append(("add_frontend_ip", _require(f, "name", where), f.get("private_ip"), public_ip))
    for p in raw.get("frontend_ports") or []:
        steps.append(("add_frontend_port", _require(p, "name", where), int(_require(p, "port", where))))
    for pool in raw.get("backend_pools") or []:
        addresses = [
            BackendAddress(
                name=ResourceName.of(_require(a, "name", where)),
                ip_address=a.get("ip_address"),
                fqdn=a.get("fqdn"),
                virtual_network=_as_link(a["virtual_network"], where) if a.get("virtual_network") else None,
            )
            for a in pool.get("addresses") or []
        ]
        steps.append(("add_backend_pool", backend_pool(_require(pool, "name", where), *addresses)))
    for p in raw.get("probes") or []:
        steps.append(("add_probe", probe(
            _require(p, "name", where),
            protocol=HttpProtocol(p.get("protocol", "Http")),
            path=p.get("path", "/"),
            host=p.get("host", "127.0.0.1"),
            interval=p.get("interval", 30),
            timeout=p.get("timeout", 30),
            unhealthy_threshold=p.get("unhealthy_threshold", 3),
        )))
    for s in raw.get("backend_http_settings") or []:
        steps.append(("add_backend_http_settings", http_settings(
            _require(s, "name", where),
            port=int(s.get("port", 80)),
            protocol=HttpProtocol(s.get("protocol", "Http")),
            cookie_based_affinity=FeatureFlag(s.get("cookie_based_affinity", "Disabled")),
            request_timeout=s.get("request_timeout", 30),
            probe=s.get("probe"),
        )))
    for lst in raw.get("listeners") or []:
        steps.append(("add_listener", listener(
            _require(lst, "name", where),
            _require(lst, "frontend_ip", where),
            _require(lst, "frontend_port", where),
            protocol=HttpProtocol(lst.get("protocol", "Http")),
            host_names=tuple(lst.get("host_names") or ()),
        )))
    for r in raw.get("routing_rules") or []:
        steps.append(("add_routing_rule", routing_rule(
            _require(r, "name", where),
            _require(r, "listener", where),
            _require(r, "backend_pool", where),
            _require(r, "backend_http_settings", where),
            priority=r.get("priority"),
        )))
    return steps


LOADERS: Dict[str, Tuple[Builder, Callable[[Dict[str, Any], str], List[Any]]]] = {
    "storage_account": (storage_account, _load_storage_account),
    "log_analytics": (log_analytics, _load_log_analytics),
    "virtual_network": (virtual_network, _load_virtual_network),
    "diagnostic_settings": (diagnostic_settings, _load_diagnostic_settings),
    "application_gateway": (application_gateway, _load_application_gateway),
}


def load_resource(raw: Dict[str, Any], position: int) -> Tuple[Builder, Any]:
    if not isinstance(raw, dict):
        raise ValidationError(f"Resource #{position} must be a mapping")
    kind = raw.get("kind")
    where = f"resources[{position}] ({kind or '?'} '{raw.get('name', '?')}')"
    if kind not in LOADERS:
        raise ValidationError(
            f"Unknown resource kind '{kind}'",
            context={"in": where, "supported": ", ".join(sorted(LOADERS))},
        )
    builder, load = LOADERS[kind]
    try:
        steps = load(raw, where) + _common_steps(raw, builder, where)
    except (TypeError, ValueError, AttributeError) as exc:
        raise ValidationError(f"Malformed resource: {exc}", context={"in": where}) from exc
    return builder, apply(builder, *steps)


def load_data(data: Any, location: str = None) -> Deployment:
    if not isinstance(data, dict):
        raise ValidationError("A deployment file must contain a mapping at the top level")
    loc = location or data.get("location")
    if not loc:
        raise ValidationError("No location given; set 'location' in the file or pass --location")
    deployment = Deployment(Location(str(loc)))
    for i, raw in enumerate(data.get("resources") or []):
        builder, config = load_resource(raw, i)
        deployment = deployment.add(builder, config)
    tags = data.get("tags")
    if tags is not None and not isinstance(tags, dict):
        raise ValidationError(f"'tags' must be a mapping, got {type(tags).__name__}")
    if tags:
        deployment = deployment.add_tags({str(k): str(v) for k, v in tags.items()})
    return deployment


def load_deployment(filepath: str, location: str = None) -> Deployment:
    with open(filepath, encoding="utf-8") as fh:
        try:
            data = yaml.safe_load(fh)
        except yaml.YAMLError as exc:
            raise ValidationError(f"Invalid YAML in {filepath}: {exc}") from exc
    return load_data(data, location)
