"""
A deployment unit: every resource config emitted together into one template.
"""
from dataclasses import dataclass, replace
from typing import Any, Dict, List, Mapping, Tuple

from armkit.builders.base import Builder, Taggable, build_all
from armkit.engine.resolver import Resolution, resolve
from armkit.models.resource import Location, ResourceDefinition
from armkit.reporters import template


@dataclass(frozen=True)
class Deployment:
    location: Location
    entries: Tuple[Tuple[Builder, Any], ...] = ()

    def add(self, builder: Builder, config: Any) -> "Deployment":
        """Add a finalized config. Adding the very same config object again is a no-op."""
        if any(b is builder and c is config for b, c in self.entries):
            return self
        return replace(self, entries=self.entries + ((builder, config),))

    def add_tags(self, tags: Mapping[str, str]) -> "Deployment":
        """Merge ``tags`` into every taggable config; tags a config already has win."""
        entries = tuple(
            (b, b.add_tags(c, tags) if isinstance(b, Taggable) else c)
            for b, c in self.entries
        )
        return replace(self, entries=entries)

    def definitions(self) -> List[ResourceDefinition]:
        return build_all(self.entries, self.location)

    def resolve(self) -> Resolution:
        return resolve(self.definitions())

    def template(self) -> Dict[str, Any]:
        resolution = self.resolve()
        return template.build_template(resolution.order, resolution)

    def to_json(self) -> str:
        resolution = self.resolve()
        return template.build_report(resolution.order, resolution)
