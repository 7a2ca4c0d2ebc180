"""
Identity resolver: business id -> stable document key.

The document key is ``uuid5(namespace, "<entity_type>:<business_id>")``. It
depends on nothing else: not row content, not insertion order, not the clock.
The same business id therefore resolves to the same key within a run and
across runs, which is what makes the loader's upsert idempotent.

A key is never generated for an absent business id. Such rows are rejected
upstream with MISSING_BUSINESS_ID.

Per run, the resolver also keeps a business id -> key map per entity type so
references between entity types can be rewritten to document keys before
anything is written. Each entity type's map is frozen once that type has
been registered; it is read-only for the rest of the run.
"""

from __future__ import annotations

from enum import Enum
from typing import Any
from uuid import UUID, uuid5

from media_config.schema import DEFAULT_KEY_NAMESPACE, PipelineConfig
from media_kernel.exceptions import IdentityFrozenError, MissingBusinessIdError
from media_kernel.logging_config import get_logger

from media_ingestion.domain.types import (
    EntityType,
    IssueCode,
    RecordIssue,
    ResolvedDocument,
    TransformedRecord,
)
from media_ingestion.mapping.engine import business_id_of

logger = get_logger("ingestion.identity")


def _type_name(entity_type: EntityType | str) -> str:
    return entity_type.value if isinstance(entity_type, Enum) else str(entity_type)


def derive_document_key(
    entity_type: EntityType | str,
    business_id: Any,
    namespace: UUID = DEFAULT_KEY_NAMESPACE,
) -> UUID:
    """
    Pure function of (entity type, business id).

    Raises:
        MissingBusinessIdError: if business_id is null or blank.
    """
    type_name = _type_name(entity_type)
    bid = business_id_of(business_id)
    if bid is None:
        raise MissingBusinessIdError(type_name)
    return uuid5(namespace, f"{type_name}:{bid}")


class IdentityResolver:
    """Per-run business id -> document key mapping, one map per entity type."""

    def __init__(self, config: PipelineConfig | None = None):
        self._namespace = (config or PipelineConfig()).key_namespace
        self._maps: dict[str, dict[str, UUID]] = {}
        self._frozen: set[str] = set()

    def key_for(self, entity_type: EntityType | str, business_id: Any) -> UUID:
        """Derive a key without registering it."""
        return derive_document_key(entity_type, business_id, self._namespace)

    def register(self, entity_type: EntityType | str, business_id: Any) -> UUID:
        """Register a business id and return its key. Re-registering returns the same key."""
        type_name = _type_name(entity_type)
        key = self.key_for(type_name, business_id)
        bid = business_id_of(business_id)
        mapping = self._maps.setdefault(type_name, {})
        if bid in mapping:
            return mapping[bid]
        if type_name in self._frozen:
            raise IdentityFrozenError(type_name, bid)
        mapping[bid] = key
        return key

    def freeze(self, entity_type: EntityType | str) -> None:
        type_name = _type_name(entity_type)
        self._maps.setdefault(type_name, {})
        self._frozen.add(type_name)
        logger.debug(
            "identity_map_frozen",
            extra={"entity_type": type_name, "keys": len(self._maps[type_name])},
        )

    def is_frozen(self, entity_type: EntityType | str) -> bool:
        return _type_name(entity_type) in self._frozen

    def lookup(self, entity_type: EntityType | str, business_id: Any) -> UUID | None:
        """Key of a registered business id, else None."""
        bid = business_id_of(business_id)
        if bid is None:
            return None
        return self._maps.get(_type_name(entity_type), {}).get(bid)

    def mapping(self, entity_type: EntityType | str) -> dict[str, UUID]:
        """Copy of the business id -> key map for one entity type."""
        return dict(self._maps.get(_type_name(entity_type), {}))

    def resolve(self, record: TransformedRecord) -> tuple[ResolvedDocument, list[RecordIssue]]:
        """
        Attach the record's key and rewrite its references to parent keys.

        An unresolved required reference makes the record an orphan: the
        reference field keeps the raw source id instead of a key and is listed
        in ``orphanReferences``. One ORPHAN_RECORD issue is raised for the
        record however many of its references dangle. Unresolved optional user
        references are set to None and raise UNRESOLVED_USER instead.
        """
        type_name = record.entity_type.value
        key = self.lookup(type_name, record.business_id)
        if key is None:
            key = self.key_for(type_name, record.business_id)

        body = dict(record.body)
        issues: list[RecordIssue] = []
        dangling: list[dict[str, Any]] = []
        for ref in record.references:
            if ref.many:
                keys = [self.lookup(ref.target_type, v) for v in ref.raw_values]
                body[ref.field] = [
                    str(k) if k is not None else (raw if ref.required else None)
                    for raw, k in zip(ref.raw_values, keys)
                ]
                for raw, k in zip(ref.raw_values, keys):
                    if k is not None:
                        continue
                    if ref.required:
                        dangling.append(
                            {"field": ref.field, "targetType": ref.target_type.value, "rawValue": raw}
                        )
                    elif ref.target_type == EntityType.USER:
                        issues.append(
                            RecordIssue(
                                code=IssueCode.UNRESOLVED_USER,
                                message=f"{ref.field} references unknown user {raw!r}",
                                entity_type=type_name,
                                business_id=record.business_id,
                                field=ref.field,
                            )
                        )
                continue
            parent_key = self.lookup(ref.target_type, ref.raw_value)
            if parent_key is not None:
                body[ref.field] = str(parent_key)
                continue
            if ref.required:
                body[ref.field] = ref.raw_value
                dangling.append(
                    {
                        "field": ref.field,
                        "targetType": ref.target_type.value,
                        "rawValue": ref.raw_value,
                    }
                )
                continue
            body[ref.field] = None
            if ref.raw_value is not None and ref.target_type == EntityType.USER:
                issues.append(
                    RecordIssue(
                        code=IssueCode.UNRESOLVED_USER,
                        message=f"{ref.field} references unknown user {ref.raw_value!r}",
                        entity_type=type_name,
                        business_id=record.business_id,
                        field=ref.field,
                    )
                )

        orphan = bool(dangling)
        if orphan:
            body["orphanReferences"] = dangling
            issues.append(
                RecordIssue(
                    code=IssueCode.ORPHAN_RECORD,
                    message="; ".join(
                        f"{d['field']} -> {d['targetType']} {d['rawValue']!r} not found"
                        for d in dangling
                    ),
                    entity_type=type_name,
                    business_id=record.business_id,
                    field=dangling[0]["field"],
                )
            )

        return (
            ResolvedDocument(
                entity_type=record.entity_type,
                business_id=business_id_of(record.business_id),
                document_key=key,
                body=body,
                orphan=orphan,
            ),
            issues,
        )
