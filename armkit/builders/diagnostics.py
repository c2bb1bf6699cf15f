"""
Diagnostic settings: route metrics and logs of one resource to storage
accounts, event hubs or log analytics workspaces.
"""
from dataclasses import dataclass, field, replace
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Tuple, Union

from armkit.builders.base import Builder, DependableMixin, Reference, TaggableMixin, reference_id
from armkit.errors import PreconditionError, UnsupportedReferenceError, ValidationError
from armkit.models.identity import (
    STORAGE_ACCOUNTS,
    WORKSPACES,
    ResourceId,
    ResourceName,
    diagnostic_settings_type,
)
from armkit.models.resource import FeatureFlag, Location, ResourceDefinition
from armkit.models.units import Quantity, as_quantity


@dataclass(frozen=True)
class RetentionPolicy:
    enabled: bool
    days: Quantity

    def to_arm(self) -> Dict[str, Any]:
        return {"enabled": self.enabled, "days": self.days}


def _retention(days: Union[None, int, Quantity]) -> Optional[RetentionPolicy]:
    if days is None:
        return None
    return RetentionPolicy(enabled=True, days=as_quantity(days, "d"))


@dataclass(frozen=True)
class MetricSetting:
    category: str
    enabled: bool = True
    time_grain: Optional[str] = None            # ISO 8601 duration, e.g. "PT1M"
    retention_policy: Optional[RetentionPolicy] = None

    @classmethod
    def create(cls, category: str, enabled: bool = True, time_grain: Optional[str] = None,
               retention_days: Union[None, int, Quantity] = None) -> "MetricSetting":
        return cls(category, enabled, time_grain, _retention(retention_days))

    def to_arm(self) -> Dict[str, Any]:
        return {
            "category": self.category,
            "enabled": self.enabled,
            "timeGrain": self.time_grain,
            "retentionPolicy": self.retention_policy.to_arm() if self.retention_policy else None,
        }


@dataclass(frozen=True)
class LogSetting:
    category: str
    enabled: bool = True
    retention_policy: Optional[RetentionPolicy] = None

    @classmethod
    def create(cls, category: str, enabled: bool = True,
               retention_days: Union[None, int, Quantity] = None) -> "LogSetting":
        return cls(category, enabled, _retention(retention_days))

    def to_arm(self) -> Dict[str, Any]:
        return {
            "category": self.category,
            "enabled": self.enabled,
            "retentionPolicy": self.retention_policy.to_arm() if self.retention_policy else None,
        }


@dataclass(frozen=True)
class EventHubSink:
    authorization_rule_id: ResourceId
    event_hub_name: Optional[ResourceName] = None   # None selects the namespace's default hub


@dataclass(frozen=True)
class Sinks:
    storage_account: Optional[ResourceId] = None
    event_hub: Optional[EventHubSink] = None
    log_analytics_workspace: Optional[ResourceId] = None
    dedicated_log_analytics_destination: Optional[FeatureFlag] = None

    @property
    def any_destination(self) -> bool:
        """
        True when data has somewhere to go. The dedicated log analytics flag
        only changes how a workspace stores the data, so it does not count.
        """
        return any(s is not None for s in (self.storage_account, self.event_hub, self.log_analytics_workspace))


@dataclass(frozen=True)
class DiagnosticSettingsConfig:
    name: ResourceName = ResourceName.EMPTY
    metrics_source: ResourceId = ResourceId.EMPTY
    sinks: Sinks = Sinks()
    metrics: Tuple[MetricSetting, ...] = ()
    logs: Tuple[LogSetting, ...] = ()
    dependencies: FrozenSet[ResourceId] = frozenset()
    tags: Dict[str, str] = field(default_factory=dict)

    @property
    def resource_id(self) -> ResourceId:
        return diagnostic_settings_type(self.metrics_source.type).resource_id(self.metrics_source, self.name)


# Destination kinds add_destination recognises, keyed by type string.
_DESTINATION_SINKS = {
    STORAGE_ACCOUNTS.type: "storage_account",
    WORKSPACES.type: "log_analytics_workspace",
}


class DiagnosticSettingsBuilder(TaggableMixin, DependableMixin, Builder[DiagnosticSettingsConfig]):
    kind = "diagnostic_settings"

    def initial(self) -> DiagnosticSettingsConfig:
        return DiagnosticSettingsConfig()

    def name(self, state: DiagnosticSettingsConfig, name: str) -> DiagnosticSettingsConfig:
        """Sets the name of the diagnostic settings."""
        return replace(state, name=ResourceName.of(name))

    def metrics_source(self, state: DiagnosticSettingsConfig, source: Reference) -> DiagnosticSettingsConfig:
        """The resource whose metrics and logs are captured."""
        return replace(state, metrics_source=reference_id(source))

    def add_destination(self, state: DiagnosticSettingsConfig, destination: Reference) -> DiagnosticSettingsConfig:
        """
        Adds a storage account or log analytics workspace sink. Accepts a
        ResourceId, or a storage/workspace config or definition to take the id from.
        """
        resource_id = reference_id(destination)
        sink = _DESTINATION_SINKS.get(resource_id.type.type)
        if sink is None:
            raise UnsupportedReferenceError(
                "Unsupported destination type; expected a storage account or log analytics workspace",
                resource_id,
            )
        return replace(state, sinks=replace(state.sinks, **{sink: resource_id}))

    def event_hub_authorization_rule_id(self, state: DiagnosticSettingsConfig,
                                        rule_id: ResourceId) -> DiagnosticSettingsConfig:
        """Sets the authorization rule of the event hub sink; clears any hub name set before."""
        return replace(state, sinks=replace(state.sinks, event_hub=EventHubSink(rule_id)))

    def event_hub_name(self, state: DiagnosticSettingsConfig,
                       name: Union[str, ResourceName]) -> DiagnosticSettingsConfig:
        """The name of the event hub. If none is specified, the default event hub is used."""
        hub = state.sinks.event_hub
        if hub is None:
            raise PreconditionError(
                "You must set the authorization rule id before setting the event hub name",
                {"event_hub_name": str(name)},
            )
        hub = replace(hub, event_hub_name=ResourceName.of(name))
        return replace(state, sinks=replace(state.sinks, event_hub=hub))

    def enable_dedicated_log_analytics(self, state: DiagnosticSettingsConfig) -> DiagnosticSettingsConfig:
        return replace(
            state,
            sinks=replace(state.sinks, dedicated_log_analytics_destination=FeatureFlag.ENABLED),
        )

    def capture_metrics(self, state: DiagnosticSettingsConfig,
                        metrics: Iterable[MetricSetting]) -> DiagnosticSettingsConfig:
        """Newly captured settings go ahead of the ones already present."""
        return replace(state, metrics=tuple(metrics) + state.metrics)

    def capture_logs(self, state: DiagnosticSettingsConfig,
                     logs: Iterable[LogSetting]) -> DiagnosticSettingsConfig:
        return replace(state, logs=tuple(logs) + state.logs)

    def finalize(self, state: DiagnosticSettingsConfig) -> DiagnosticSettingsConfig:
        problems = []
        if not state.metrics and not state.logs:
            problems.append("You must specify at least one metric or log setting.")
        if not state.sinks.any_destination:
            problems.append("You must specify at least one data sink.")
        if state.metrics_source.is_empty:
            problems.append("You must specify the metrics source.")
        if state.name.is_empty:
            problems.append("You must specify a name.")
        if problems:
            raise ValidationError(
                "Invalid diagnostic settings",
                problems,
                {"name": state.name.value or "<unnamed>"},
            )
        return state

    def build(self, state: DiagnosticSettingsConfig, location: Location) -> List[ResourceDefinition]:
        sinks = state.sinks
        hub = sinks.event_hub
        dedicated = sinks.dedicated_log_analytics_destination
        return [
            ResourceDefinition(
                resource_id=state.resource_id,
                location=location,
                arm_name=f"{state.metrics_source.qualified_name}/Microsoft.Insights/{state.name.value}",
                properties={
                    "storageAccountId": sinks.storage_account,
                    "eventHubAuthorizationRuleId": hub.authorization_rule_id if hub else None,
                    "eventHubName": hub.event_hub_name.value if hub and hub.event_hub_name else None,
                    "workspaceId": sinks.log_analytics_workspace,
                    "logAnalyticsDestinationType": (
                        "Dedicated" if dedicated is FeatureFlag.ENABLED else None
                    ),
                    "metrics": [m.to_arm() for m in state.metrics],
                    "logs": [log.to_arm() for log in state.logs],
                },
                dependencies=state.dependencies,
                tags=state.tags,
            )
        ]


diagnostic_settings = DiagnosticSettingsBuilder()
