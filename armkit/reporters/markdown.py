"""
Markdown + Mermaid deployment plan generator.
"""
import re
from collections import defaultdict
from datetime import datetime, timezone
from typing import Dict, List

from jinja2 import Environment

from armkit import __version__
from armkit.engine.resolver import Resolution
from armkit.models.resource import ResourceDefinition

_PROVIDER_GROUPS = {
    # Provider namespace → subgraph label
    "Microsoft.Network": "Networking",
    "Microsoft.Storage": "Data",
    "Microsoft.OperationalInsights": "Monitoring",
    "Microsoft.Insights": "Monitoring",
    "Microsoft.EventHub": "Messaging",
}

_GROUP_ORDER = ["Networking", "Data", "Messaging", "Monitoring", "Other"]


def _sanitize_node_id(name: str) -> str:
    return re.sub(r"[^a-zA-Z0-9_]", "_", name)


def _node_id(d: ResourceDefinition) -> str:
    return _sanitize_node_id(f"{d.resource_id.type.leaf}_{d.resource_id.qualified_name}")


def _group(d: ResourceDefinition) -> str:
    if "/providers/diagnosticSettings" in d.type:
        return "Monitoring"
    return _PROVIDER_GROUPS.get(d.resource_id.type.provider, "Other")


def _node_shape(d: ResourceDefinition) -> str:
    label = d.resource_id.qualified_name
    group = _group(d)
    # Child resources of another resource in the plan
    if d.resource_id.parent is not None and group != "Monitoring":
        return f"([{label}])"
    if group == "Data":
        return f"[({label})]"
    if group == "Networking":
        return f"{{{label}}}"
    return f"[{label}]"


def _build_mermaid(resolution: Resolution) -> str:
    index = {d.resource_id: d for d in resolution.order}
    groups: Dict[str, List[ResourceDefinition]] = defaultdict(list)
    for d in resolution.order:
        groups[_group(d)].append(d)

    lines = ["flowchart LR"]
    for group in _GROUP_ORDER:
        members = groups.get(group, [])
        if not members:
            continue
        lines.append(f"    subgraph {group}")
        for d in members:
            lines.append(f"        {_node_id(d)}{_node_shape(d)}")
        lines.append("    end")

    # Edges point from a resource to what it waits for.
    for d in resolution.order:
        for dep in sorted(resolution.dependencies_of(d.resource_id), key=lambda r: r.eval()):
            target = index.get(dep)
            if target is None:
                continue
            lines.append(f"    {_node_id(d)} -->|after| {_node_id(target)}")

    return "\n".join(lines)


_TEMPLATE = """\
# Deployment Plan

**Generated:** {{ generated }}
**Source:** {{ source }}
**Location:** {{ location }}
**Tool:** armkit v{{ version }}

---

## Summary

The template deploys **{{ resource_count }} resources** in the order below.
{% for group, count in group_counts %}
- **{{ group }}**: {{ count }}{% endfor %}

---

## Resources

| # | Name | Type | API version | Depends on |
|---|------|------|-------------|------------|
{% for row in rows %}| {{ loop.index }} | `{{ row.name }}` | `{{ row.type }}` | {{ row.api_version }} | {{ row.depends_on }} |
{% endfor %}

---

## Dependency Graph

```mermaid
{{ mermaid }}
```
"""


def build_report(resolution: Resolution, source_path: str) -> str:
    counts: Dict[str, int] = defaultdict(int)
    for d in resolution.order:
        counts[_group(d)] += 1
    group_counts = [(g, counts[g]) for g in _GROUP_ORDER if counts[g]]

    rows = []
    for d in resolution.order:
        deps = sorted(dep.qualified_name for dep in resolution.dependencies_of(d.resource_id))
        rows.append({
            "name": d.name,
            "type": d.type,
            "api_version": d.resource_id.type.api_version,
            "depends_on": ", ".join(f"`{n}`" for n in deps) if deps else "-",
        })

    locations = sorted({d.location.arm_value for d in resolution.order})

    env = Environment(autoescape=False)
    template = env.from_string(_TEMPLATE)

    return template.render(
        generated=datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M UTC"),
        source=source_path,
        location=", ".join(locations) if locations else "n/a",
        version=__version__,
        resource_count=len(resolution.order),
        group_counts=group_counts,
        rows=rows,
        mermaid=_build_mermaid(resolution),
    )
