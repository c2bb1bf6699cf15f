"""
Resolver tests: implicit and explicit dependencies, duplicates and cycles.
"""
import pytest

from armkit.builders import gateway
from armkit.builders.base import apply
from armkit.builders.diagnostics import MetricSetting, diagnostic_settings
from armkit.builders.loganalytics import log_analytics
from armkit.builders.network import virtual_network
from armkit.builders.storage import storage_account
from armkit.engine.resolver import find_references, resolve
from armkit.errors import CyclicDependencyError, DuplicateResourceError
from armkit.models.identity import (
    APPLICATION_GATEWAYS,
    STORAGE_ACCOUNTS,
    SUBNETS,
    VIRTUAL_NETWORKS,
    WORKSPACES,
    LinkedResource,
    ResourceName,
)
from armkit.models.resource import Locations, ResourceDefinition

A = STORAGE_ACCOUNTS.resource_id("a")
B = STORAGE_ACCOUNTS.resource_id("b")
C = STORAGE_ACCOUNTS.resource_id("c")


def _definition(rid, dependencies=(), properties=None):
    return ResourceDefinition(
        resource_id=rid,
        location=Locations.WEST_EUROPE,
        properties=properties or {},
        dependencies=frozenset(dependencies),
    )


class TestFindReferences:
    def test_scans_nested_structures(self):
        vnet = VIRTUAL_NETWORKS.resource_id("net")
        tree = {
            "storage": A,
            "pools": [{"addresses": [{"virtualNetwork": {"id": LinkedResource.to_managed(vnet)}}]}],
            "missing": None,
            "nested": ({"deep": [B]},),
            "scalar": "text",
        }
        assert sorted(find_references(tree), key=lambda r: r.qualified_name) == [A, B, vnet]

    def test_unmanaged_links_and_none_contribute_nothing(self):
        tree = {"existing": LinkedResource.to_unmanaged(A), "absent": None, "count": 3}
        assert find_references(tree) == []


class TestResolve:
    def test_no_references_no_dependencies(self):
        resolution = resolve([_definition(A)])
        assert resolution.dependencies_of(A) == frozenset()

    def test_explicit_and_implicit_dependencies_merge(self):
        definitions = [
            _definition(A),
            _definition(B),
            _definition(C, dependencies=[A], properties={"target": B, "again": [A]}),
        ]
        assert resolve(definitions).dependencies_of(C) == {A, B}

    def test_dependencies_come_first(self):
        definitions = [_definition(C, dependencies=[B]), _definition(B, dependencies=[A]), _definition(A)]
        order = [d.resource_id for d in resolve(definitions).order]
        assert order == [A, B, C]

    def test_cycle_names_every_resource(self):
        definitions = [
            _definition(A, dependencies=[B]),
            _definition(B, dependencies=[C]),
            _definition(C, dependencies=[A]),
        ]
        with pytest.raises(CyclicDependencyError) as exc:
            resolve(definitions)
        assert exc.value.cycle == [A, B, C, A]
        for name in ("a", "b", "c"):
            assert f"Microsoft.Storage/storageAccounts/{name}" in str(exc.value)

    def test_implicit_cycle_detected(self):
        definitions = [_definition(A, properties={"peer": B}), _definition(B, properties={"peer": A})]
        with pytest.raises(CyclicDependencyError):
            resolve(definitions)

    def test_explicit_self_dependency_is_a_cycle(self):
        with pytest.raises(CyclicDependencyError) as exc:
            resolve([_definition(A, dependencies=[A])])
        assert exc.value.cycle == [A, A]

    def test_implicit_self_reference_ignored(self):
        resolution = resolve([_definition(A, properties={"self": {"id": A}})])
        assert resolution.dependencies_of(A) == frozenset()

    def test_duplicate_identity(self):
        with pytest.raises(DuplicateResourceError) as exc:
            resolve([_definition(A), _definition(A, properties={"other": True})])
        assert exc.value.resource_id == A

    def test_reference_to_inline_part_anchors_on_owner(self):
        subnet = SUBNETS.resource_id(VIRTUAL_NETWORKS.resource_id("net"), "web")
        definitions = [_definition(VIRTUAL_NETWORKS.resource_id("net")), _definition(A, properties={"subnet": subnet})]
        assert resolve(definitions).dependencies_of(A) == {VIRTUAL_NETWORKS.resource_id("net")}

    def test_implicit_reference_outside_deployment_dropped(self):
        resolution = resolve([_definition(A, properties={"existing": WORKSPACES.resource_id("shared")})])
        assert resolution.dependencies_of(A) == frozenset()

    def test_explicit_dependency_outside_deployment_kept(self):
        external = WORKSPACES.resource_id("shared")
        resolution = resolve([_definition(A, dependencies=[external])])
        assert resolution.dependencies_of(A) == {external}


class TestBuiltGraphs:
    def test_diagnostic_settings_depend_on_source_and_sinks(self):
        storage = apply(storage_account, ("name", "source"))
        workspace = apply(log_analytics, ("name", "logs"))
        diag = apply(
            diagnostic_settings,
            ("name", "diag"),
            ("metrics_source", storage),
            ("add_destination", workspace),
            ("capture_metrics", [MetricSetting.create("Transaction")]),
        )
        definitions = (
            storage_account.build(storage, Locations.WEST_EUROPE)
            + log_analytics.build(workspace, Locations.WEST_EUROPE)
            + diagnostic_settings.build(diag, Locations.WEST_EUROPE)
        )
        resolution = resolve(definitions)
        assert resolution.dependencies_of(diag.resource_id) == {storage.resource_id, workspace.resource_id}
        assert resolution.order[-1].resource_id == diag.resource_id

    def test_gateway_children(self):
        net = apply(
            virtual_network,
            ("name", "net"), ("add_address_space", "10.0.0.0/16"), ("add_subnet", "gateway", "10.0.0.0/24"),
        )
        gw = apply(
            gateway.application_gateway,
            ("name", "gw"),
            ("add_gateway_ip_config", "ipconfig", net.subnet_id("gateway")),
            ("add_frontend_ip", "private", "10.0.0.10"),
            ("add_frontend_port", "http", 80),
            ("add_backend_pool", gateway.backend_pool(
                "web",
                gateway.BackendAddress(
                    ResourceName("web1"),
                    ip_address="10.0.1.4",
                    virtual_network=LinkedResource.to_unmanaged(VIRTUAL_NETWORKS.resource_id("legacy")),
                ),
            )),
            ("add_probe", gateway.probe("health")),
            ("add_backend_http_settings", gateway.http_settings("settings", probe="health")),
            ("add_listener", gateway.listener("listener", "private", "http")),
            ("add_routing_rule", gateway.routing_rule("rule", "listener", "web", "settings")),
        )
        definitions = (
            virtual_network.build(net, Locations.WEST_EUROPE)
            + gateway.application_gateway.build(gw, Locations.WEST_EUROPE)
        )
        resolution = resolve(definitions)
        root = APPLICATION_GATEWAYS.resource_id("gw")

        def child(resource_type, name):
            return resource_type.resource_id(root, name)

        assert resolution.dependencies_of(root) == {net.resource_id}
        assert resolution.dependencies_of(child(gateway.APPLICATION_GATEWAY_BACKEND_ADDRESS_POOLS, "web")) == {root}
        assert resolution.dependencies_of(child(gateway.APPLICATION_GATEWAY_HTTP_LISTENERS, "listener")) == {root}
        assert resolution.dependencies_of(child(gateway.APPLICATION_GATEWAY_BACKEND_HTTP_SETTINGS, "settings")) == {
            root, child(gateway.APPLICATION_GATEWAY_PROBES, "health"),
        }
        assert resolution.dependencies_of(child(gateway.APPLICATION_GATEWAY_REQUEST_ROUTING_RULES, "rule")) == {
            root,
            child(gateway.APPLICATION_GATEWAY_HTTP_LISTENERS, "listener"),
            child(gateway.APPLICATION_GATEWAY_BACKEND_ADDRESS_POOLS, "web"),
            child(gateway.APPLICATION_GATEWAY_BACKEND_HTTP_SETTINGS, "settings"),
        }
