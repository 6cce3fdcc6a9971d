"""Action Catalog: loads, validates, and serves action templates.

The catalog is the static set of remediation and optimization actions the
synthesizer may propose, plus the mapping from a signal's metric name to
the templates worth considering for it. Templates are defined either by
the built-in defaults or by YAML files in a catalog directory; each file
holds one template, and an optional ``metric_map.yaml`` holds the
metric mapping. Integrity is tracked with a SHA-256 per file.
"""

from __future__ import annotations

import hashlib
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from signal_governor.models import ActionCategory, ActionTemplate, ImpactEstimate

METRIC_MAP_FILENAME = "metric_map.yaml"


class CatalogError(Exception):
    """Raised when the catalog cannot load or resolve a template."""


class ActionCatalog:
    """In-memory catalog of action templates keyed by id.

    Template ids are unique; registering the same id twice is an error.
    Metric mappings may only reference registered templates.
    """

    def __init__(self) -> None:
        self._templates: dict[str, ActionTemplate] = {}
        self._metric_map: dict[str, list[str]] = {}
        self._file_hashes: dict[str, str] = {}  # template id -> sha256

    @property
    def templates(self) -> list[ActionTemplate]:
        return list(self._templates.values())

    @property
    def metric_map(self) -> dict[str, list[str]]:
        return {metric: list(ids) for metric, ids in self._metric_map.items()}

    @property
    def file_hashes(self) -> dict[str, str]:
        """SHA-256 hashes of loaded template files, keyed by template id."""
        return dict(self._file_hashes)

    def __len__(self) -> int:
        return len(self._templates)

    def __contains__(self, template_id: object) -> bool:
        return template_id in self._templates

    def get(self, template_id: str) -> ActionTemplate | None:
        """Look up a template by id. Returns None if not found."""
        return self._templates.get(template_id)

    def get_or_raise(self, template_id: str) -> ActionTemplate:
        """Look up a template by id. Raises CatalogError if not found."""
        template = self._templates.get(template_id)
        if template is None:
            raise CatalogError(f"Action template not registered: {template_id}")
        return template

    def list_templates(self) -> list[str]:
        """Return sorted list of registered template ids."""
        return sorted(self._templates.keys())

    def list_by_category(self, category: ActionCategory | str) -> list[ActionTemplate]:
        return [t for t in self._templates.values() if t.category == category]

    def register(self, template: ActionTemplate, file_hash: str = "") -> None:
        """Register a single template.

        Raises CatalogError if a template with the same id already exists.
        """
        if template.id in self._templates:
            raise CatalogError(f"Duplicate action template id '{template.id}'")
        self._templates[template.id] = template
        if file_hash:
            self._file_hashes[template.id] = file_hash

    def map_metric(self, metric: str, template_ids: list[str]) -> None:
        """Set the ordered list of candidate templates for a metric."""
        unknown = [tid for tid in template_ids if tid not in self._templates]
        if unknown:
            raise CatalogError(
                f"Metric '{metric}' references unknown template(s): {', '.join(unknown)}"
            )
        self._metric_map[metric] = list(template_ids)

    def templates_for_metric(self, metric: str) -> list[str]:
        """Return the candidate template ids for a metric (empty if unmapped)."""
        return list(self._metric_map.get(metric, []))


# --- Built-in defaults ---

_DEFAULT_TEMPLATES: list[dict[str, Any]] = [
    {
        "id": "enable_caching",
        "category": "optimization",
        "description": "Enable caching for improved performance",
        "base_risk": 0.1,
        "parameters": {"cache_type": "redis", "ttl": 3600},
        "estimated_impact": {
            "performance": 30, "reliability": 10, "cost": -5, "user_experience": 25,
        },
        "execution_time_seconds": 30,
        "requires_human_approval": False,
        "rollback_plan": "Disable caching and clear cache",
    },
    {
        "id": "scale_resources",
        "category": "remediation",
        "description": "Scale up resources to handle increased load",
        "base_risk": 0.6,
        "parameters": {"scale_factor": 1.5, "resource_type": "cpu"},
        "estimated_impact": {
            "performance": 40, "reliability": 30, "cost": 20, "user_experience": 35,
        },
        "execution_time_seconds": 120,
        "requires_human_approval": True,
        "rollback_plan": "Scale back to previous resource allocation",
    },
    {
        "id": "optimize_query",
        "category": "optimization",
        "description": "Optimize database query performance",
        "base_risk": 0.2,
        "parameters": {"query_id": "", "optimization_type": "index"},
        "estimated_impact": {
            "performance": 25, "reliability": 15, "cost": -10, "user_experience": 20,
        },
        "execution_time_seconds": 60,
        "requires_human_approval": False,
        "rollback_plan": "Revert query optimization changes",
    },
    {
        "id": "enable_circuit_breaker",
        "category": "remediation",
        "description": "Enable circuit breaker for failing service",
        "base_risk": 0.4,
        "parameters": {"service": "", "threshold": 0.5, "timeout": 30000},
        "estimated_impact": {
            "performance": 20, "reliability": 40, "cost": 0, "user_experience": 30,
        },
        "execution_time_seconds": 45,
        "requires_human_approval": False,
        "rollback_plan": "Disable circuit breaker",
    },
    {
        "id": "restart_service",
        "category": "remediation",
        "description": "Restart failing service",
        "base_risk": 0.8,
        "parameters": {"service": "", "graceful": True},
        "estimated_impact": {
            "performance": 15, "reliability": 35, "cost": 0, "user_experience": 25,
        },
        "execution_time_seconds": 90,
        "requires_human_approval": True,
        "rollback_plan": "Monitor service and restart if needed",
    },
    {
        "id": "optimize_ai_model",
        "category": "optimization",
        "description": "Optimize AI model configuration",
        "base_risk": 0.3,
        "parameters": {"model": "", "optimization_type": "prompt"},
        "estimated_impact": {
            "performance": 20, "reliability": 10, "cost": -15, "user_experience": 15,
        },
        "execution_time_seconds": 180,
        "requires_human_approval": False,
        "rollback_plan": "Revert AI model configuration",
    },
]

DEFAULT_METRIC_MAP: dict[str, list[str]] = {
    "error_rate": ["enable_circuit_breaker", "restart_service", "scale_resources"],
    "response_time_ms": ["optimize_query", "enable_caching", "scale_resources"],
    "memory_usage_percent": ["restart_service", "scale_resources"],
    "cpu_usage_percent": ["scale_resources", "optimize_query"],
    "ai_cost_per_hour": ["optimize_ai_model", "enable_caching"],
}


def default_catalog() -> ActionCatalog:
    """Build a catalog holding the built-in templates and metric mapping."""
    catalog = ActionCatalog()
    for raw in _DEFAULT_TEMPLATES:
        catalog.register(
            ActionTemplate(
                **{**raw, "estimated_impact": ImpactEstimate(**raw["estimated_impact"])}
            )
        )
    for metric, template_ids in DEFAULT_METRIC_MAP.items():
        catalog.map_metric(metric, template_ids)
    return catalog


# --- YAML loading ---


def _compute_file_hash(path: Path) -> str:
    """Compute SHA-256 hash of a file's contents."""
    return hashlib.sha256(path.read_bytes()).hexdigest()


def _read_yaml_mapping(path: Path) -> dict[str, Any]:
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise CatalogError(f"Invalid YAML in {path}: {e}") from e

    if not isinstance(raw, dict):
        raise CatalogError(f"Catalog file must contain a YAML mapping: {path}")
    return raw


def load_template_file(path: Path) -> tuple[ActionTemplate, str]:
    """Load and validate a single template YAML file.

    Returns (ActionTemplate, sha256_hash).
    Raises CatalogError on any failure.
    """
    if not path.exists():
        raise CatalogError(f"Template file not found: {path}")

    file_hash = _compute_file_hash(path)
    raw = _read_yaml_mapping(path)

    try:
        template = ActionTemplate(**raw)
    except (ValidationError, TypeError) as e:
        raise CatalogError(f"Invalid action template in {path}: {e}") from e

    return template, file_hash


def load_catalog(catalog_dir: str | Path) -> ActionCatalog:
    """Load all YAML template files from a directory into a catalog.

    Scans for *.yaml and *.yml files. ``metric_map.yaml`` is read last as
    a ``metrics:`` mapping of metric name to template id list; when absent,
    the default mapping is applied for every metric whose templates are
    all present.

    Raises CatalogError if the directory doesn't exist, any file is
    invalid, or a template id is duplicated or unknown.
    """
    catalog_dir = Path(catalog_dir)
    if not catalog_dir.is_dir():
        raise CatalogError(f"Catalog directory not found: {catalog_dir}")

    catalog = ActionCatalog()
    yaml_files = sorted(
        list(catalog_dir.glob("*.yaml")) + list(catalog_dir.glob("*.yml"))
    )
    map_file: Path | None = None

    for path in yaml_files:
        if path.name == METRIC_MAP_FILENAME:
            map_file = path
            continue
        template, file_hash = load_template_file(path)
        try:
            catalog.register(template, file_hash)
        except CatalogError as e:
            raise CatalogError(f"Error loading {path}: {e}") from e

    if map_file is None:
        for metric, template_ids in DEFAULT_METRIC_MAP.items():
            if all(tid in catalog for tid in template_ids):
                catalog.map_metric(metric, template_ids)
        return catalog

    raw = _read_yaml_mapping(map_file)
    metrics = raw.get("metrics")
    if not isinstance(metrics, dict):
        raise CatalogError(f"'metrics' must be a mapping: {map_file}")
    for metric, template_ids in metrics.items():
        if not isinstance(template_ids, list):
            raise CatalogError(f"Metric '{metric}' must map to a list: {map_file}")
        catalog.map_metric(str(metric), [str(t) for t in template_ids])

    return catalog
