"""
Versioned rule store.

Pure CRUD plus bounded version history; knows nothing about scoring. All
mutations are serialized through one store lock because version increment
and history append are not independently safe under concurrent writers.
Reads go straight to the backend, which hands out copies.
"""

import copy
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from loguru import logger

from regionfit.errors import NotFoundError, RegionFitError, ValidationError
from regionfit.events import RuleEvent, SubscriberBus
from regionfit.logging import log_rule_operation, track_rule_operation
from regionfit.persistence import (
    RULES_NAMESPACE,
    VERSIONS_NAMESPACE,
    InMemoryBackend,
    KeyValueBackend,
)
from regionfit.rules.schemas import (
    MANAGED_FIELDS,
    Rule,
    RuleCategory,
    RuleVersion,
    canonical_keys,
    generate_rule_id,
    serialized_key,
    increment_version,
    normalize_rule_data,
    parse_version,
    utc_now,
)

BUNDLE_FORMAT_VERSION = "1.0.0"

# Overlay markers that only exist on selected rules, never in storage
_TRANSIENT_FIELDS = ("abTestId", "abTestVariant", "versionCreatedAt")

# Bookkeeping that does not count as rule content when comparing
_NON_CONTENT_FIELDS = MANAGED_FIELDS + _TRANSIENT_FIELDS + ("restoredFrom",)


def _content(rule: Rule) -> Dict[str, Any]:
    return {k: v for k, v in rule.to_dict().items() if k not in _NON_CONTENT_FIELDS}


def _apply_patch(existing: Rule, patch: Dict[str, Any]) -> Dict[str, Any]:
    merged = existing.to_dict()
    # Only a restore records restoredFrom
    merged.pop("restoredFrom", None)
    ignored = MANAGED_FIELDS + ("restoredFrom",)
    merged.update({k: v for k, v in canonical_keys(patch).items() if k not in ignored})
    return merged


@dataclass
class ImportResult:
    """Outcome of importing a rule bundle."""

    imported: int = 0
    updated: int = 0
    skipped: int = 0
    ab_tests_imported: int = 0
    errors: List[Dict[str, Optional[str]]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "imported": self.imported,
            "updated": self.updated,
            "skipped": self.skipped,
            "abTestsImported": self.ab_tests_imported,
            "errors": list(self.errors),
        }


def _sort_value(rule: Rule, sort_by: str) -> Any:
    if sort_by == "priority":
        return rule.priority.rank
    if sort_by == "version":
        return parse_version(rule.version)
    return rule.to_dict().get(serialized_key(sort_by))


def sort_rules(rules: List[Rule], sort_by: str, sort_order: str = "asc") -> List[Rule]:
    """
    Sort rules by a field. Priority sorts by rank, version numerically.

    Rules missing the field sort last regardless of order.
    """
    present = [r for r in rules if _sort_value(r, sort_by) is not None]
    missing = [r for r in rules if _sort_value(r, sort_by) is None]
    present.sort(key=lambda r: _sort_value(r, sort_by), reverse=(sort_order == "desc"))
    return present + missing


class RuleStore:
    """
    Rule definitions plus per-rule FIFO version history.

    Example:
        >>> store = RuleStore()
        >>> rule = store.create_rule({"name": "Cookie banner", "category": "compliance"})
        >>> store.update_rule(rule.id, {"weight": 20}).version
        '1.0.1'
    """

    def __init__(
        self,
        backend: Optional[KeyValueBackend] = None,
        bus: Optional[SubscriberBus] = None,
        enable_versioning: bool = True,
        max_version_history: int = 10,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize the rule store.

        Args:
            backend: Key-value backend (in-memory if omitted)
            bus: Subscriber bus for lifecycle events
            enable_versioning: Record version snapshots on create/update
            max_version_history: Snapshots kept per rule
            clock: Source of the current time
        """
        if max_version_history <= 0:
            raise ValidationError("max_version_history must be positive")
        self.backend = backend or InMemoryBackend()
        self.bus = bus or SubscriberBus()
        self.enable_versioning = enable_versioning
        self.max_version_history = max_version_history
        self.clock = clock or utc_now
        self._lock = threading.RLock()
        self.metrics = {"rules_updated": 0, "versions_created": 0}
        self._log = logger.bind(component="rules")

    def _timestamp(self) -> str:
        return self.clock().isoformat()

    def _load(self, rule_id: str) -> Optional[Rule]:
        data = self.backend.get(RULES_NAMESPACE, rule_id)
        return Rule.from_dict(data) if data is not None else None

    def _append_version(self, rule: Rule) -> None:
        history = self.backend.get(VERSIONS_NAMESPACE, rule.id) or []
        history.append(RuleVersion.of(rule, self._timestamp()).to_dict())
        if len(history) > self.max_version_history:
            del history[: len(history) - self.max_version_history]
        self.backend.set(VERSIONS_NAMESPACE, rule.id, history)
        self.metrics["versions_created"] += 1

    def _notify(self, notify: bool, event: RuleEvent, *args: Any) -> None:
        if notify:
            self.bus.publish(event, *args)

    @track_rule_operation("create")
    def create_rule(self, data: Dict[str, Any], notify: bool = True) -> Rule:
        """
        Create a rule and record its first version.

        Args:
            data: Rule fields; id is generated from category and name if absent
            notify: Publish ruleCreated

        Returns:
            The stored rule

        Raises:
            ValidationError: If the data is invalid or the id already exists
        """
        normalized = normalize_rule_data(data)
        for key in _TRANSIENT_FIELDS + ("deleted", "deletedAt"):
            normalized.pop(key, None)

        with self._lock:
            if not normalized.get("id"):
                normalized["id"] = generate_rule_id(normalized["category"], normalized["name"])
            elif self.backend.get(RULES_NAMESPACE, normalized["id"]) is not None:
                raise ValidationError(f"Rule already exists: {normalized['id']}", field="id")

            now = self._timestamp()
            normalized["createdAt"] = now
            normalized["updatedAt"] = now
            rule = Rule.from_dict(normalized)

            self.backend.set(RULES_NAMESPACE, rule.id, rule.to_dict())
            if self.enable_versioning:
                self._append_version(rule)
            self.metrics["rules_updated"] += 1

        log_rule_operation(self._log, "created", rule.id, version=rule.version)
        self._notify(notify, RuleEvent.RULE_CREATED, rule)
        return rule

    def _write_update(
        self, existing: Rule, data: Dict[str, Any], notify: bool, create_version: bool
    ) -> Rule:
        data = dict(data)
        for key in _TRANSIENT_FIELDS:
            data.pop(key, None)
        data["id"] = existing.id
        data["createdAt"] = existing.created_at
        data["updatedAt"] = self._timestamp()
        data["version"] = increment_version(existing.version)
        if existing.deleted:
            data["deleted"] = True
            data["deletedAt"] = existing.deleted_at

        rule = Rule.from_dict(data)
        self.backend.set(RULES_NAMESPACE, rule.id, rule.to_dict())
        if self.enable_versioning and create_version:
            self._append_version(rule)
        self.metrics["rules_updated"] += 1

        log_rule_operation(
            self._log, "updated", rule.id, version=rule.version, previous=existing.version
        )
        self._notify(notify, RuleEvent.RULE_UPDATED, rule, existing)
        return rule

    @track_rule_operation("update")
    def update_rule(
        self,
        rule_id: str,
        patch: Dict[str, Any],
        notify: bool = True,
        create_version: bool = True,
    ) -> Rule:
        """
        Merge a patch over an existing rule and bump its patch version.

        Args:
            rule_id: Rule to update
            patch: Fields to change; store-managed fields are ignored
            notify: Publish ruleUpdated with (new, previous)
            create_version: Append a history snapshot (when versioning is on)

        Returns:
            The updated rule

        Raises:
            NotFoundError: If the rule does not exist
            ValidationError: If the merged rule is invalid (store unchanged)
        """
        if not isinstance(patch, dict):
            raise ValidationError("Rule patch must be a mapping")
        with self._lock:
            existing = self._load(rule_id)
            if existing is None:
                raise NotFoundError(f"Rule not found: {rule_id}", entity_id=rule_id)

            return self._write_update(existing, _apply_patch(existing, patch), notify, create_version)

    @track_rule_operation("delete")
    def delete_rule(self, rule_id: str, soft: bool = False, notify: bool = True) -> bool:
        """
        Delete a rule.

        Args:
            rule_id: Rule to delete
            soft: Mark as deleted and keep it (and its history) in storage
            notify: Publish ruleDeleted

        Returns:
            True if the rule existed, False otherwise
        """
        with self._lock:
            rule = self._load(rule_id)
            if rule is None:
                return False

            if soft:
                rule.deleted = True
                rule.deleted_at = self._timestamp()
                self.backend.set(RULES_NAMESPACE, rule_id, rule.to_dict())
            else:
                self.backend.delete(RULES_NAMESPACE, rule_id)
                self.backend.delete(VERSIONS_NAMESPACE, rule_id)

        log_rule_operation(self._log, "deleted", rule_id, soft=soft)
        self._notify(notify, RuleEvent.RULE_DELETED, rule)
        return True

    def get_rule(self, rule_id: str) -> Rule:
        """
        Get a rule by id, including soft-deleted rules.

        Raises:
            NotFoundError: If the rule does not exist
        """
        rule = self._load(rule_id)
        if rule is None:
            raise NotFoundError(f"Rule not found: {rule_id}", entity_id=rule_id)
        return rule

    def has_rule(self, rule_id: str, include_deleted: bool = False) -> bool:
        rule = self._load(rule_id)
        return rule is not None and (include_deleted or not rule.deleted)

    def get_all_rules(
        self,
        category: Optional[str] = None,
        region: Optional[str] = None,
        enabled_only: bool = False,
        include_deleted: bool = False,
        sort_by: Optional[str] = None,
        sort_order: str = "asc",
    ) -> List[Rule]:
        """
        List rules matching a filter.

        Args:
            category: Only rules in this category
            region: Only rules whose regions include this region or the wildcard
            enabled_only: Skip disabled rules
            include_deleted: Include soft-deleted rules
            sort_by: Field to sort by (insertion order otherwise)
            sort_order: "asc" or "desc"

        Returns:
            Matching rules
        """
        if category is not None:
            try:
                category = RuleCategory(category).value
            except ValueError:
                raise ValidationError(f"Invalid category: {category}", field="category") from None

        rules = [Rule.from_dict(data) for data in self.backend.values(RULES_NAMESPACE)]

        if not include_deleted:
            rules = [r for r in rules if not r.deleted]
        if category is not None:
            rules = [r for r in rules if r.category.value == category]
        if region is not None:
            rules = [r for r in rules if r.applies_to_region(region)]
        if enabled_only:
            rules = [r for r in rules if r.enabled]
        if sort_by:
            rules = sort_rules(rules, sort_by, sort_order)
        return rules

    def get_rule_versions(self, rule_id: str) -> List[RuleVersion]:
        """Version history for a rule, oldest first (empty if none)."""
        history = self.backend.get(VERSIONS_NAMESPACE, rule_id) or []
        return [RuleVersion.from_dict(entry) for entry in history]

    @track_rule_operation("restore")
    def restore_rule_version(self, rule_id: str, version: str, notify: bool = True) -> Rule:
        """
        Restore a rule's content from a historical snapshot.

        Restoring is itself a versioned update: the result carries a new,
        higher version and records which version it was restored from.

        Raises:
            NotFoundError: If the rule or the version does not exist
        """
        with self._lock:
            existing = self._load(rule_id)
            if existing is None:
                raise NotFoundError(f"Rule not found: {rule_id}", entity_id=rule_id)

            target = next(
                (v for v in self.get_rule_versions(rule_id) if v.version == version), None
            )
            if target is None:
                raise NotFoundError(
                    f"Version {version} not found for rule {rule_id}", entity_id=rule_id
                )

            restored = copy.deepcopy(target.snapshot)
            restored["restoredFrom"] = version
            rule = self._write_update(existing, restored, notify, create_version=True)

        log_rule_operation(self._log, "restored", rule_id, restored_from=version)
        return rule

    def count_versions(self) -> int:
        return sum(len(h) for h in self.backend.values(VERSIONS_NAMESPACE))

    def export_rules(self, include_versions: bool = False, **filters: Any) -> Dict[str, Any]:
        """
        Export rules as a bundle.

        Args:
            include_versions: Add the version history of every exported rule
            **filters: Passed to get_all_rules

        Returns:
            {version, exportedAt, count, rules[, versions]}
        """
        rules = self.get_all_rules(**filters)
        bundle: Dict[str, Any] = {
            "version": BUNDLE_FORMAT_VERSION,
            "exportedAt": self._timestamp(),
            "count": len(rules),
            "rules": [r.to_dict() for r in rules],
        }
        if include_versions:
            bundle["versions"] = {
                r.id: [v.to_dict() for v in self.get_rule_versions(r.id)] for r in rules
            }
        return bundle

    @staticmethod
    def _is_unchanged(existing: Rule, patch: Dict[str, Any]) -> bool:
        """True if applying the patch would leave the rule's content as it is."""
        try:
            candidate = Rule.from_dict(_apply_patch(existing, patch))
        except (ValidationError, TypeError, ValueError):
            return False
        return _content(candidate) == _content(existing)

    def import_rules(
        self, bundle: Dict[str, Any], overwrite: bool = False, notify: bool = True
    ) -> ImportResult:
        """
        Import rules from a bundle.

        Missing rules are created; existing rules are updated when overwrite
        is set and skipped otherwise. An existing rule whose content the entry
        would not change is skipped without a new version. A bad entry is
        recorded in errors and never aborts the batch.

        Raises:
            ValidationError: If the bundle has no rules list
        """
        if not isinstance(bundle, dict) or not isinstance(bundle.get("rules"), list):
            raise ValidationError("Invalid import data: rules array required", field="rules")

        result = ImportResult()
        for entry in bundle["rules"]:
            rule_id = entry.get("id") if isinstance(entry, dict) else None
            try:
                existing = self._load(rule_id) if rule_id else None
                if existing is not None and (
                    not overwrite or self._is_unchanged(existing, entry)
                ):
                    result.skipped += 1
                    continue
                if existing is not None:
                    self.update_rule(rule_id, entry, notify=notify)
                    result.updated += 1
                else:
                    self.create_rule(entry, notify=notify)
                    result.imported += 1
            except (RegionFitError, TypeError, ValueError) as e:
                result.errors.append({"ruleId": rule_id, "error": str(e)})

        self._log.info(
            f"Imported rules: {result.imported} new, {result.updated} updated, "
            f"{result.skipped} skipped, {len(result.errors)} errors"
        )
        return result


__all__ = ["RuleStore", "ImportResult", "sort_rules", "BUNDLE_FORMAT_VERSION"]
