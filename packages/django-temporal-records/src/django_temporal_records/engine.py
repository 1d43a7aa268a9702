"""Copy-on-write engine for year-versioned records.

A logical edit to year Y never touches another year's payload. It either
updates Y's own record in place, or branches a fresh Y record from the
nearest earlier record and applies the change to the copy.

Provides:
- get_or_create_for_year: Read a year's record, optionally materializing it
- update_for_year: Apply a patch to a year with copy-on-write semantics
- clone_forward / persist_new_record / persist_changes: building blocks
  shared with bulk recalculation

The engine does not consult the year lock gate. Callers check
ensure_year_unlocked() first so nothing is written for a locked year.
"""
import logging

from django.db import IntegrityError, transaction
from django.utils import timezone

from .exceptions import ConcurrentModificationError
from .resolver import get_effective_record

logger = logging.getLogger(__name__)


def clone_forward(ancestor, year: int, actor=None):
    """
    Build an unsaved copy of ancestor for a later year.

    Payload (identity included) is copied; timestamps, audit and temporal
    system fields are not. Provenance points at the ancestor's year.
    """
    record = type(ancestor)(**ancestor.clone_payload())
    record.effective_year = year
    record.source_effective_year = ancestor.effective_year
    record.copied_at = timezone.now()
    record.created_by = actor
    return record


def _new_record(model, identity: dict, year: int, actor=None):
    return model(**identity, effective_year=year, created_by=actor)


def _apply_patch(record, patch):
    applied, ignored = record.apply_patch(patch or {})
    if ignored:
        logger.debug(
            f"Ignored non-payload keys {sorted(ignored)} for {record._meta.label} "
            f"{record.identity()} @ {record.effective_year}"
        )
    return applied


def _validate(record):
    record.full_clean(validate_unique=False, validate_constraints=False)


def _link_successor(ancestor, record):
    """Splice record into ancestor's version chain (chained kinds only)."""
    model = type(record)
    successor = None
    if ancestor.next_version_id:
        successor = model.all_objects.filter(pk=ancestor.next_version_id).first()

    record.previous_version = ancestor
    record.next_version = successor
    record.effective_year_end = ancestor.effective_year_end
    record.save(update_fields=[
        'previous_version', 'next_version', 'effective_year_end', 'updated_at',
    ])

    ancestor.next_version = record
    update_fields = ['next_version', 'updated_at']
    if ancestor.effective_year < record.effective_year:
        ancestor.effective_year_end = record.effective_year
        update_fields.append('effective_year_end')
    ancestor.save(update_fields=update_fields)

    if successor is not None:
        successor.previous_version = record
        successor.save(update_fields=['previous_version', 'updated_at'])


def _take_chain_position(replaced, record):
    """Put record where replaced sat in its version chain."""
    model = type(record)
    previous = successor = None
    if replaced.previous_version_id:
        previous = model.all_objects.filter(pk=replaced.previous_version_id).first()
    if replaced.next_version_id:
        successor = model.all_objects.filter(pk=replaced.next_version_id).first()

    record.previous_version = previous
    record.next_version = successor
    record.save(update_fields=['previous_version', 'next_version', 'updated_at'])

    if previous is not None:
        previous.next_version = record
        previous.save(update_fields=['next_version', 'updated_at'])
    if successor is not None:
        successor.previous_version = record
        successor.save(update_fields=['previous_version', 'updated_at'])


def _replace_record(exact, patch, actor=None):
    """
    Soft-delete a year's record and persist a patched copy in its place.

    The copy keeps the replaced record's provenance, end year and chain
    position. Must run inside the caller's transaction.
    """
    exact.delete()
    record = clone_forward(exact, exact.effective_year, actor=actor)
    record.source_effective_year = exact.source_effective_year
    record.effective_year_end = exact.effective_year_end
    _apply_patch(record, patch)
    persist_new_record(record)
    if record.chains_versions:
        _take_chain_position(exact, record)
    return record


def persist_new_record(record, ancestor=None):
    """
    Validate and insert a new year record.

    Runs in a savepoint so a lost (identity, year) race leaves no trace.
    For chained kinds the record is linked after its ancestor.

    Raises:
        ValidationError: If field validation fails (nothing is written)
        ConcurrentModificationError: If another writer created the same
            (identity, year) record first
    """
    _validate(record)
    try:
        with transaction.atomic():
            record.save()
            if ancestor is not None and record.chains_versions:
                _link_successor(ancestor, record)
    except IntegrityError as exc:
        raise ConcurrentModificationError(
            record._meta.label,
            record.identity(),
            record.effective_year,
            reason="a record for this year was created concurrently",
        ) from exc
    return record


def persist_changes(record):
    """Validate and save an existing record (optimistic lock applies)."""
    _validate(record)
    record.save()
    return record


def get_or_create_for_year(
    model,
    identity: dict,
    year: int,
    create_if_missing: bool = False,
    defaults: dict = None,
    actor=None,
):
    """
    Get the record for a year, materializing it on demand.

    Args:
        model: A YearVersionedModel subclass
        identity: Filter selecting the entity, e.g. {'property_id': 'P-1'}
        year: The year to get the record for
        create_if_missing: Create a physical record for the year if absent
        defaults: Payload for a brand-new entity with no earlier record
        actor: User creating the record (optional)

    Returns:
        - the exact-year record if one exists
        - otherwise, when create_if_missing is False, the inherited record
          (a read-only view belonging to an earlier year) or None
        - otherwise a new record cloned from the inherited one, or built
          from defaults when the entity has no history

    Calling twice with create_if_missing=True returns the same record.
    """
    exact = model.objects.for_identity(identity).exact_year(year).first()
    if exact is not None:
        return exact

    effective = get_effective_record(model, identity, year)
    if not create_if_missing:
        return effective

    if effective is None:
        record = _new_record(model, identity, year, actor=actor)
        _apply_patch(record, defaults)
    else:
        record = clone_forward(effective, year, actor=actor)

    try:
        persist_new_record(record, ancestor=effective)
    except ConcurrentModificationError:
        winner = model.objects.for_identity(identity).exact_year(year).first()
        if winner is None:
            raise
        return winner

    logger.debug(
        f"Materialized {model._meta.label} {identity} for {year}"
        + (f" from {effective.effective_year}" if effective else " from defaults")
    )
    return record


def update_for_year(
    model,
    identity: dict,
    year: int,
    patch: dict,
    create_new: bool = False,
    actor=None,
):
    """
    Apply a patch to an entity's values for a year, copy-on-write.

    - Exact-year record exists and create_new is False: patch it in place.
    - Otherwise: clone the record effective for the year, patch the clone,
      and save it as the year's record. An ancestor's payload is never
      modified.
    - create_new=True with an existing exact-year record: that record is
      soft-deleted and replaced by a patched copy of itself that keeps
      its provenance and chain position.

    Args:
        model: A YearVersionedModel subclass
        identity: Filter selecting the entity
        year: The year being edited
        patch: Payload field values to set
        create_new: Always write a new physical record
        actor: User making the change (optional)

    Returns:
        The updated or created record

    Raises:
        ValidationError: If the patched record fails field validation
        ConcurrentModificationError: If the record changed underneath us
    """
    with transaction.atomic():
        exact = (
            model.objects
            .select_for_update()
            .for_identity(identity)
            .exact_year(year)
            .first()
        )

        if exact is not None and not create_new:
            _apply_patch(exact, patch)
            if actor is not None:
                exact.updated_by = actor
            return persist_changes(exact)

        if exact is not None:
            record = _replace_record(exact, patch, actor=actor)
            logger.info(
                f"Replaced {model._meta.label} {identity} for {year} (was pk={exact.pk})"
            )
            return record

        ancestor = get_effective_record(model, identity, year)
        if ancestor is None:
            record = _new_record(model, identity, year, actor=actor)
        else:
            record = clone_forward(ancestor, year, actor=actor)
        _apply_patch(record, patch)
        persist_new_record(record, ancestor=ancestor)

    logger.info(
        f"Branched {model._meta.label} {identity} for {year}"
        + (f" from {ancestor.effective_year}" if ancestor else "")
    )
    return record
