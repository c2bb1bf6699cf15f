from dataclasses import dataclass, field, replace
from typing import Dict, FrozenSet, List, Optional

from armkit.builders.base import Builder, DependableMixin, TaggableMixin
from armkit.errors import ValidationError
from armkit.models.identity import STORAGE_ACCOUNTS, ResourceId, ResourceName
from armkit.models.resource import Location, ResourceDefinition

SKUS = {"Standard_LRS", "Standard_GRS", "Standard_RAGRS", "Standard_ZRS", "Premium_LRS", "Premium_ZRS"}
KINDS = {"StorageV2", "BlobStorage", "BlockBlobStorage", "FileStorage", "Storage"}
TLS_VERSIONS = {"TLS1_0", "TLS1_1", "TLS1_2"}


@dataclass(frozen=True)
class StorageAccountConfig:
    name: ResourceName = ResourceName.EMPTY
    sku: str = "Standard_LRS"
    kind: str = "StorageV2"
    https_only: bool = True
    min_tls_version: Optional[str] = None
    dependencies: FrozenSet[ResourceId] = frozenset()
    tags: Dict[str, str] = field(default_factory=dict)

    @property
    def resource_id(self) -> ResourceId:
        return STORAGE_ACCOUNTS.resource_id(self.name)


class StorageAccountBuilder(TaggableMixin, DependableMixin, Builder[StorageAccountConfig]):
    kind = "storage_account"

    def initial(self) -> StorageAccountConfig:
        return StorageAccountConfig()

    def name(self, state: StorageAccountConfig, name: str) -> StorageAccountConfig:
        return replace(state, name=ResourceName.of(name))

    def sku(self, state: StorageAccountConfig, sku: str) -> StorageAccountConfig:
        if sku not in SKUS:
            raise ValidationError(f"Unknown storage sku '{sku}'", context={"allowed": sorted(SKUS)})
        return replace(state, sku=sku)

    def account_kind(self, state: StorageAccountConfig, kind: str) -> StorageAccountConfig:
        if kind not in KINDS:
            raise ValidationError(f"Unknown storage kind '{kind}'", context={"allowed": sorted(KINDS)})
        return replace(state, kind=kind)

    def https_only(self, state: StorageAccountConfig, enabled: bool = True) -> StorageAccountConfig:
        return replace(state, https_only=enabled)

    def min_tls_version(self, state: StorageAccountConfig, version: str) -> StorageAccountConfig:
        if version not in TLS_VERSIONS:
            raise ValidationError(f"Unknown TLS version '{version}'", context={"allowed": sorted(TLS_VERSIONS)})
        return replace(state, min_tls_version=version)

    def finalize(self, state: StorageAccountConfig) -> StorageAccountConfig:
        problems = []
        if state.name.is_empty:
            problems.append("storage account name is not set")
        elif not (3 <= len(state.name.value) <= 24 and state.name.value.isalnum() and state.name.value.islower()):
            problems.append(
                f"storage account name '{state.name.value}' must be 3-24 lowercase letters or digits"
            )
        if problems:
            raise ValidationError("Invalid storage account", problems)
        return state

    def build(self, state: StorageAccountConfig, location: Location) -> List[ResourceDefinition]:
        return [
            ResourceDefinition(
                resource_id=state.resource_id,
                location=location,
                properties={
                    "supportsHttpsTrafficOnly": state.https_only,
                    "minimumTlsVersion": state.min_tls_version,
                },
                dependencies=state.dependencies,
                tags=state.tags,
                top_level={"sku": {"name": state.sku}, "kind": state.kind},
            )
        ]


storage_account = StorageAccountBuilder()
