"""
Identity tests: resource types, names, ids and the reference tokens they render.
"""
import pytest

from armkit.errors import ValidationError
from armkit.models.identity import (
    APPLICATION_GATEWAY_PROBES,
    APPLICATION_GATEWAYS,
    STORAGE_ACCOUNTS,
    SUBNETS,
    VIRTUAL_NETWORKS,
    LinkedResource,
    ResourceId,
    ResourceName,
    ResourceType,
    diagnostic_settings_type,
)
from armkit.models.units import as_quantity, days, seconds


class TestResourceType:
    def test_equal_when_both_fields_match(self):
        assert ResourceType("Microsoft.Storage/storageAccounts", "2019-06-01") == STORAGE_ACCOUNTS

    def test_version_is_part_of_equality(self):
        assert ResourceType("Microsoft.Storage/storageAccounts", "2021-01-01") != STORAGE_ACCOUNTS

    def test_provider_and_leaf(self):
        assert APPLICATION_GATEWAY_PROBES.provider == "Microsoft.Network"
        assert APPLICATION_GATEWAY_PROBES.leaf == "probes"

    def test_diagnostic_settings_type_extends_source(self):
        diag = diagnostic_settings_type(STORAGE_ACCOUNTS)
        assert diag.type == "Microsoft.Storage/storageAccounts/providers/diagnosticSettings"

    def test_resource_id_rejects_extra_arguments(self):
        with pytest.raises(TypeError):
            STORAGE_ACCOUNTS.resource_id("a", "b", "c")


class TestResourceName:
    @pytest.mark.parametrize("bad", ["", " padded", "trailing ", "a/b", None, 42])
    def test_invalid_names_rejected(self, bad):
        with pytest.raises(ValidationError):
            ResourceName(bad)

    def test_empty_sentinel(self):
        assert ResourceName.EMPTY.is_empty
        assert not ResourceName("data").is_empty

    def test_of_passes_names_through(self):
        name = ResourceName("data")
        assert ResourceName.of(name) is name
        assert ResourceName.of("data") == name


class TestResourceId:
    def test_top_level_token(self):
        rid = STORAGE_ACCOUNTS.resource_id("mydata")
        assert rid.qualified_name == "mydata"
        assert rid.eval() == "[resourceId('Microsoft.Storage/storageAccounts', 'mydata')]"
        assert str(rid) == rid.eval()

    def test_nested_token_and_name(self):
        gateway = APPLICATION_GATEWAYS.resource_id("gw")
        rid = APPLICATION_GATEWAY_PROBES.resource_id(gateway, "health")
        assert rid.segments == ("gw", "health")
        assert rid.qualified_name == "gw/health"
        assert rid.eval() == "[resourceId('Microsoft.Network/applicationGateways/probes', 'gw', 'health')]"

    def test_string_parent_derives_parent_type(self):
        by_name = SUBNETS.resource_id("vnet", "web")
        explicit = SUBNETS.resource_id(VIRTUAL_NETWORKS.resource_id("vnet"), "web")
        assert by_name == explicit

    def test_structural_equality_and_hashing(self):
        a = STORAGE_ACCOUNTS.resource_id("mydata")
        b = STORAGE_ACCOUNTS.resource_id(ResourceName("mydata"))
        assert a == b
        assert len({a, b}) == 1

    def test_parent_is_part_of_identity(self):
        one = APPLICATION_GATEWAY_PROBES.resource_id(APPLICATION_GATEWAYS.resource_id("gw1"), "p")
        two = APPLICATION_GATEWAY_PROBES.resource_id(APPLICATION_GATEWAYS.resource_id("gw2"), "p")
        assert one != two

    def test_empty_sentinel(self):
        assert ResourceId.EMPTY.is_empty
        assert not STORAGE_ACCOUNTS.resource_id("x").is_empty

    def test_quotes_in_names_are_doubled(self):
        rid = SUBNETS.resource_id("o'brien", "it's")
        assert rid.eval() == "[resourceId('Microsoft.Network/virtualNetworks/subnets', 'o''brien', 'it''s')]"
        assert rid.qualified_name == "o'brien/it's"


class TestLinksAndUnits:
    def test_linked_resources(self):
        rid = VIRTUAL_NETWORKS.resource_id("shared")
        assert LinkedResource.to_managed(rid).managed
        assert not LinkedResource.to_unmanaged(rid).managed
        assert LinkedResource.to_unmanaged(rid).eval() == rid.eval()

    def test_quantities(self):
        assert seconds(30).value == 30
        assert days(7).unit == "d"
        assert as_quantity(5, "s") == seconds(5)
        with pytest.raises(ValueError):
            as_quantity(days(5), "s")
