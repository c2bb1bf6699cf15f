from dataclasses import dataclass, field, replace
from typing import Dict, FrozenSet, List, Optional, Union

from armkit.builders.base import Builder, DependableMixin, TaggableMixin
from armkit.errors import ValidationError
from armkit.models.identity import WORKSPACES, ResourceId, ResourceName
from armkit.models.resource import Location, ResourceDefinition
from armkit.models.units import Quantity, as_quantity

SKUS = {"Free", "Standalone", "PerNode", "PerGB2018", "CapacityReservation"}


@dataclass(frozen=True)
class WorkspaceConfig:
    name: ResourceName = ResourceName.EMPTY
    sku: str = "PerGB2018"
    retention_period: Optional[Quantity] = None
    daily_quota_gb: Optional[int] = None
    dependencies: FrozenSet[ResourceId] = frozenset()
    tags: Dict[str, str] = field(default_factory=dict)

    @property
    def resource_id(self) -> ResourceId:
        return WORKSPACES.resource_id(self.name)


class WorkspaceBuilder(TaggableMixin, DependableMixin, Builder[WorkspaceConfig]):
    kind = "log_analytics"

    def initial(self) -> WorkspaceConfig:
        return WorkspaceConfig()

    def name(self, state: WorkspaceConfig, name: str) -> WorkspaceConfig:
        return replace(state, name=ResourceName.of(name))

    def sku(self, state: WorkspaceConfig, sku: str) -> WorkspaceConfig:
        if sku not in SKUS:
            raise ValidationError(f"Unknown log analytics sku '{sku}'", context={"allowed": sorted(SKUS)})
        return replace(state, sku=sku)

    def retention_period(self, state: WorkspaceConfig, period: Union[int, Quantity]) -> WorkspaceConfig:
        return replace(state, retention_period=as_quantity(period, "d"))

    def daily_quota(self, state: WorkspaceConfig, gigabytes: int) -> WorkspaceConfig:
        return replace(state, daily_quota_gb=gigabytes)

    def finalize(self, state: WorkspaceConfig) -> WorkspaceConfig:
        problems = []
        if state.name.is_empty:
            problems.append("workspace name is not set")
        if state.retention_period is not None and not 30 <= state.retention_period.value <= 730:
            problems.append(
                f"retention period must be between 30 and 730 days, got {state.retention_period.value}"
            )
        if problems:
            raise ValidationError("Invalid log analytics workspace", problems)
        return state

    def build(self, state: WorkspaceConfig, location: Location) -> List[ResourceDefinition]:
        return [
            ResourceDefinition(
                resource_id=state.resource_id,
                location=location,
                properties={
                    "sku": {"name": state.sku},
                    "retentionInDays": state.retention_period,
                    "workspaceCapping": (
                        {"dailyQuotaGb": state.daily_quota_gb} if state.daily_quota_gb is not None else None
                    ),
                },
                dependencies=state.dependencies,
                tags=state.tags,
            )
        ]


log_analytics = WorkspaceBuilder()
