"""
Template and report tests: the emitted ARM document and the markdown plan.
"""
import json

import pytest

from armkit.builders import gateway
from armkit.builders.base import apply
from armkit.builders.diagnostics import LogSetting, MetricSetting, diagnostic_settings
from armkit.builders.loganalytics import log_analytics
from armkit.builders.storage import storage_account
from armkit.engine.deployment import Deployment
from armkit.errors import CyclicDependencyError, DuplicateResourceError
from armkit.models.identity import STORAGE_ACCOUNTS, VIRTUAL_NETWORKS, LinkedResource
from armkit.models.resource import FeatureFlag, Locations, ResourceDefinition
from armkit.models.units import seconds
from armkit.reporters import markdown, template

A = STORAGE_ACCOUNTS.resource_id("a")
B = STORAGE_ACCOUNTS.resource_id("b")
C = STORAGE_ACCOUNTS.resource_id("c")


def _definition(rid, dependencies=(), properties=None, tags=None):
    return ResourceDefinition(
        resource_id=rid,
        location=Locations.WEST_EUROPE,
        properties=properties or {},
        dependencies=frozenset(dependencies),
        tags=tags or {},
    )


def _monitored_deployment():
    storage = apply(storage_account, ("name", "appdata"))
    workspace = apply(log_analytics, ("name", "applogs"), ("retention_period", 60))
    diag = apply(
        diagnostic_settings,
        ("name", "diag"),
        ("metrics_source", storage),
        ("add_destination", workspace),
        ("capture_metrics", [MetricSetting.create("Transaction", retention_days=30)]),
        ("capture_logs", [LogSetting.create("StorageRead")]),
    )
    return (
        Deployment(Locations.WEST_EUROPE)
        .add(diagnostic_settings, diag)
        .add(storage_account, storage)
        .add(log_analytics, workspace)
    )


class TestValueTranslation:
    def test_ids_units_enums_and_absent_values(self):
        tree = {
            "storageAccountId": A,
            "link": {"id": LinkedResource.to_unmanaged(B)},
            "timeout": seconds(45),
            "affinity": FeatureFlag.DISABLED,
            "optional": None,
            "items": [None, 1],
        }
        assert template.to_arm_value(tree) == {
            "storageAccountId": "[resourceId('Microsoft.Storage/storageAccounts', 'a')]",
            "link": {"id": "[resourceId('Microsoft.Storage/storageAccounts', 'b')]"},
            "timeout": 45,
            "affinity": "Disabled",
            "items": [1],
        }

    def test_explicit_null_only_for_listed_keys(self):
        tree = {"privateIPAddress": None, "publicIPAddress": None}
        assert template.to_arm_value(tree, frozenset({"privateIPAddress"})) == {"privateIPAddress": None}


class TestTemplate:
    def test_envelope(self):
        doc = template.build_template([_definition(A, tags={"env": "prod"}, properties={"x": 1})])
        assert doc["$schema"] == template.SCHEMA
        [entry] = doc["resources"]
        assert entry == {
            "type": "Microsoft.Storage/storageAccounts",
            "apiVersion": "2019-06-01",
            "name": "a",
            "location": "westeurope",
            "tags": {"env": "prod"},
            "properties": {"x": 1},
        }

    def test_no_dependencies_no_depends_on(self):
        [entry] = template.build_template([_definition(A)])["resources"]
        assert "dependsOn" not in entry
        assert "tags" not in entry

    def test_depends_on_sorted(self):
        definitions = [_definition(C), _definition(B), _definition(A, dependencies=[C, B])]
        entries = template.build_template(definitions)["resources"]
        assert entries[-1]["dependsOn"] == [B.eval(), C.eval()]

    def test_cycle_fails_emission(self):
        definitions = [
            _definition(A, dependencies=[B]),
            _definition(B, dependencies=[C]),
            _definition(C, dependencies=[A]),
        ]
        with pytest.raises(CyclicDependencyError):
            template.build_report(definitions)

    def test_duplicates_fail_emission(self):
        first = storage_account.build(apply(storage_account, ("name", "same")), Locations.WEST_EUROPE)
        second = storage_account.build(apply(storage_account, ("name", "same"), ("sku", "Premium_LRS")),
                                       Locations.EAST_US)
        with pytest.raises(DuplicateResourceError):
            template.build_template(first + second)

    def test_report_is_json(self):
        report = template.build_report([_definition(A)])
        assert json.loads(report)["resources"][0]["name"] == "a"

    def test_gateway_frontend_null_exception(self):
        config = apply(
            gateway.application_gateway,
            ("name", "gw"),
            ("add_gateway_ip_config", "ipconfig", VIRTUAL_NETWORKS.resource_id("net")),
            ("add_frontend_ip", "dynamic"),
            ("add_frontend_port", "http", 80),
            ("add_backend_pool", gateway.backend_pool("web")),
            ("add_listener", gateway.listener("listener", "dynamic", "http")),
            ("add_backend_http_settings", gateway.http_settings("settings", request_timeout=20)),
            ("add_routing_rule", gateway.routing_rule("rule", "listener", "web", "settings")),
        )
        doc = Deployment(Locations.WEST_EUROPE).add(gateway.application_gateway, config).template()
        root = doc["resources"][0]
        frontend = root["properties"]["frontendIPConfigurations"][0]["properties"]
        assert frontend == {"privateIPAllocationMethod": "Dynamic", "privateIPAddress": None}
        settings = next(e for e in doc["resources"] if e["type"].endswith("backendHttpSettingsCollection"))
        assert settings["name"] == "gw/settings"
        assert settings["properties"]["requestTimeout"] == 20
        assert "probe" not in settings["properties"]


class TestDeployment:
    def test_monitored_storage_template(self):
        doc = _monitored_deployment().template()
        names = [e["name"] for e in doc["resources"]]
        assert names == ["applogs", "appdata", "appdata/Microsoft.Insights/diag"]
        diag = doc["resources"][-1]
        assert diag["type"] == "Microsoft.Storage/storageAccounts/providers/diagnosticSettings"
        assert diag["dependsOn"] == sorted([
            "[resourceId('Microsoft.OperationalInsights/workspaces', 'applogs')]",
            "[resourceId('Microsoft.Storage/storageAccounts', 'appdata')]",
        ])
        assert diag["properties"]["metrics"] == [
            {"category": "Transaction", "enabled": True, "retentionPolicy": {"enabled": True, "days": 30}},
        ]
        assert "storageAccountId" not in diag["properties"]
        workspace = doc["resources"][0]
        assert workspace["properties"] == {"sku": {"name": "PerGB2018"}, "retentionInDays": 60}

    def test_adding_the_same_config_twice_is_a_no_op(self):
        config = apply(storage_account, ("name", "appdata"))
        deployment = Deployment(Locations.WEST_EUROPE).add(storage_account, config).add(storage_account, config)
        assert len(deployment.definitions()) == 1

    def test_equal_configs_built_separately_are_duplicates(self):
        first = apply(storage_account, ("name", "appdata"))
        second = apply(storage_account, ("name", "appdata"))
        deployment = Deployment(Locations.WEST_EUROPE).add(storage_account, first).add(storage_account, second)
        with pytest.raises(DuplicateResourceError):
            deployment.resolve()

    def test_deployment_tags_do_not_override_resource_tags(self):
        config = apply(storage_account, ("name", "appdata"), lambda s: storage_account.add_tags(s, {"env": "dev"}))
        deployment = Deployment(Locations.WEST_EUROPE).add(storage_account, config)
        doc = deployment.add_tags({"env": "prod", "team": "data"}).template()
        assert doc["resources"][0]["tags"] == {"env": "dev", "team": "data"}

    def test_to_json_is_deterministic(self):
        assert _monitored_deployment().to_json() == _monitored_deployment().to_json()


class TestMarkdownPlan:
    def test_plan_lists_resources_and_graph(self):
        resolution = _monitored_deployment().resolve()
        report = markdown.build_report(resolution, "deploy.yaml")
        assert "# Deployment Plan" in report
        assert "**Location:** westeurope" in report
        assert "`appdata/Microsoft.Insights/diag`" in report
        assert "flowchart LR" in report
        assert "diagnosticSettings_appdata_diag -->|after| storageAccounts_appdata" in report
