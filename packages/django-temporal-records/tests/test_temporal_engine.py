"""Tests for the copy-on-write engine."""
from unittest.mock import patch

import pytest
from django.core.exceptions import ValidationError

from django_temporal_records.engine import get_or_create_for_year, update_for_year
from django_temporal_records.exceptions import ConcurrentModificationError
from django_temporal_records.resolver import get_effective_record
from temporal_testapp.models import ParcelRecord, RateTable


@pytest.mark.django_db
class TestGetOrCreateForYear:
    """Test suite for get_or_create_for_year()."""

    def test_returns_exact_year_record_unchanged(self, make_parcel):
        """An existing record for the year is returned as-is."""
        record = make_parcel('P-1', 2025, value=50)

        result = get_or_create_for_year(ParcelRecord, {'parcel_id': 'P-1'}, 2025, create_if_missing=True)

        assert result.pk == record.pk
        assert ParcelRecord.objects.count() == 1

    def test_without_create_returns_inherited_record(self, make_parcel):
        """Reads never materialize a record."""
        ancestor = make_parcel('P-1', 2024, value=50)

        result = get_or_create_for_year(ParcelRecord, {'parcel_id': 'P-1'}, 2025)

        assert result.pk == ancestor.pk
        assert result.effective_year == 2024
        assert ParcelRecord.objects.count() == 1

    def test_without_create_returns_none_when_no_data(self):
        """No history and no create means None."""
        assert get_or_create_for_year(ParcelRecord, {'parcel_id': 'P-1'}, 2025) is None

    def test_create_clones_inherited_record(self, make_parcel, user):
        """Materializing copies the payload and stamps provenance."""
        ancestor = make_parcel('P-1', 2024, value=50, note='corner lot', details={'acres': 2})

        record = get_or_create_for_year(
            ParcelRecord, {'parcel_id': 'P-1'}, 2025, create_if_missing=True, actor=user,
        )

        assert record.pk != ancestor.pk
        assert record.effective_year == 2025
        assert record.source_effective_year == 2024
        assert record.copied_at is not None
        assert record.created_by == user
        assert record.parcel_id == 'P-1'
        assert record.district == 'north'
        assert record.value == 50
        assert record.note == 'corner lot'
        assert record.details == {'acres': 2}
        assert record.is_inherited_copy is True

    def test_cloned_json_is_independent(self, make_parcel):
        """Mutating the clone's JSON payload does not touch the ancestor."""
        ancestor = make_parcel('P-1', 2024, details={'acres': 2})

        record = get_or_create_for_year(ParcelRecord, {'parcel_id': 'P-1'}, 2025, create_if_missing=True)
        record.details['acres'] = 3
        record.save()

        ancestor.refresh_from_db()
        assert ancestor.details == {'acres': 2}

    def test_create_is_idempotent(self, make_parcel):
        """Calling twice yields one record for the year."""
        make_parcel('P-1', 2024)

        first = get_or_create_for_year(ParcelRecord, {'parcel_id': 'P-1'}, 2025, create_if_missing=True)
        second = get_or_create_for_year(ParcelRecord, {'parcel_id': 'P-1'}, 2025, create_if_missing=True)

        assert first.pk == second.pk
        assert ParcelRecord.objects.filter(parcel_id='P-1', effective_year=2025).count() == 1

    def test_create_from_defaults_without_history(self):
        """A brand-new entity is built from identity plus defaults."""
        record = get_or_create_for_year(
            ParcelRecord,
            {'parcel_id': 'P-9'},
            2025,
            create_if_missing=True,
            defaults={'district': 'south', 'value': 12.5},
        )

        assert record.pk is not None
        assert record.parcel_id == 'P-9'
        assert record.district == 'south'
        assert record.value == 12.5
        assert record.source_effective_year is None

    def test_lost_create_race_returns_winner(self, make_parcel):
        """If another writer creates the year first, its record is returned."""
        make_parcel('P-1', 2024, value=50)

        def concurrent_insert(record, ancestor=None):
            make_parcel('P-1', 2025, value=77)
            raise ConcurrentModificationError('temporal_testapp.ParcelRecord', {'parcel_id': 'P-1'}, 2025)

        with patch('django_temporal_records.engine.persist_new_record', side_effect=concurrent_insert):
            result = get_or_create_for_year(
                ParcelRecord, {'parcel_id': 'P-1'}, 2025, create_if_missing=True,
            )

        assert result.effective_year == 2025
        assert result.value == 77


@pytest.mark.django_db
class TestUpdateForYear:
    """Test suite for update_for_year()."""

    def test_updates_exact_year_in_place(self, make_parcel, user):
        """An edit to a year with its own record modifies that record."""
        record = make_parcel('P-1', 2025, value=50)

        result = update_for_year(ParcelRecord, {'parcel_id': 'P-1'}, 2025, {'value': 60}, actor=user)

        assert result.pk == record.pk
        assert result.value == 60
        assert result.updated_by == user
        assert result.row_version == 2
        assert ParcelRecord.objects.count() == 1

    def test_branches_from_inherited_record(self, make_parcel):
        """An edit to an inherited year creates that year's record."""
        ancestor = make_parcel('P-1', 2024, value=50, note='original')

        result = update_for_year(ParcelRecord, {'parcel_id': 'P-1'}, 2025, {'value': 60})

        assert result.pk != ancestor.pk
        assert result.effective_year == 2025
        assert result.source_effective_year == 2024
        assert result.value == 60
        assert result.note == 'original'

    def test_branch_never_modifies_ancestor(self, make_parcel):
        """The ancestor's payload and version are untouched by a branch."""
        ancestor = make_parcel('P-1', 2024, value=50)

        update_for_year(ParcelRecord, {'parcel_id': 'P-1'}, 2025, {'value': 60})

        ancestor.refresh_from_db()
        assert ancestor.value == 50
        assert ancestor.row_version == 1
        assert ancestor.effective_year_end is None
        assert get_effective_record(ParcelRecord, {'parcel_id': 'P-1'}, 2024).value == 50
        assert get_effective_record(ParcelRecord, {'parcel_id': 'P-1'}, 2026).value == 60

    def test_creates_from_patch_without_history(self):
        """With no ancestor the record is built from identity and patch."""
        result = update_for_year(
            ParcelRecord, {'parcel_id': 'P-1'}, 2025, {'district': 'east', 'value': 5},
        )

        assert result.parcel_id == 'P-1'
        assert result.district == 'east'
        assert result.effective_year == 2025

    def test_create_new_replaces_exact_year_record(self, make_parcel):
        """create_new soft-deletes the year's record and branches a fresh one."""
        existing = make_parcel('P-1', 2025, value=50, note='keep me')

        result = update_for_year(
            ParcelRecord, {'parcel_id': 'P-1'}, 2025, {'value': 70}, create_new=True,
        )

        existing.refresh_from_db()
        assert result.pk != existing.pk
        assert existing.deleted_at is not None
        assert result.value == 70
        assert result.note == 'keep me'
        assert ParcelRecord.objects.filter(parcel_id='P-1', effective_year=2025).count() == 1
        assert ParcelRecord.all_objects.filter(parcel_id='P-1', effective_year=2025).count() == 2

    def test_system_and_unknown_keys_are_ignored(self, make_parcel):
        """Only payload fields can be patched."""
        make_parcel('P-1', 2024, value=50)

        result = update_for_year(
            ParcelRecord,
            {'parcel_id': 'P-1'},
            2025,
            {
                'value': 60,
                'parcel_id': 'P-999',
                'effective_year': 1999,
                'row_version': 42,
                'not_a_field': 'x',
            },
        )

        assert result.parcel_id == 'P-1'
        assert result.effective_year == 2025
        assert result.value == 60
        assert result.row_version == 1

    def test_validation_failure_writes_nothing(self, make_parcel):
        """A patch failing field validation leaves no trace."""
        make_parcel('P-1', 2024, value=50)

        with pytest.raises(ValidationError):
            update_for_year(ParcelRecord, {'parcel_id': 'P-1'}, 2025, {'note': 'x' * 500})

        assert ParcelRecord.objects.count() == 1

    def test_lost_branch_race_raises(self, make_parcel):
        """A concurrent create of the same year surfaces as a conflict."""
        ancestor = make_parcel('P-1', 2024, value=50)

        def resolve_then_race(model, identity, year):
            make_parcel('P-1', 2025, value=99)
            return ancestor

        with patch('django_temporal_records.engine.get_effective_record', side_effect=resolve_then_race):
            with pytest.raises(ConcurrentModificationError):
                update_for_year(ParcelRecord, {'parcel_id': 'P-1'}, 2025, {'value': 60})


@pytest.mark.django_db
class TestOptimisticLocking:
    """Test suite for row_version conflict detection."""

    def test_stale_save_raises(self, make_parcel):
        """Saving a copy read before another save is rejected."""
        record = make_parcel('P-1', 2025, value=50)
        first = ParcelRecord.objects.get(pk=record.pk)
        second = ParcelRecord.objects.get(pk=record.pk)

        first.value = 60
        first.save()
        second.value = 70
        with pytest.raises(ConcurrentModificationError):
            second.save()

        record.refresh_from_db()
        assert record.value == 60
        assert record.row_version == 2

    def test_sequential_saves_bump_version(self, make_parcel):
        """Each save increments row_version."""
        record = make_parcel('P-1', 2025)

        record.value = 1
        record.save()
        record.value = 2
        record.save(update_fields=['value'])

        record.refresh_from_db()
        assert record.row_version == 3
        assert record.value == 2


@pytest.mark.django_db
class TestChainedVersions:
    """Test suite for kinds that keep an explicit version chain."""

    def test_branch_links_and_closes_ancestor(self):
        """A new version points back, and the ancestor is closed at its year."""
        ancestor = RateTable.objects.create(district='north', effective_year=2020, rate=1.0)

        new = update_for_year(RateTable, {'district': 'north'}, 2023, {'rate': 2.0})

        ancestor.refresh_from_db()
        assert new.previous_version_id == ancestor.pk
        assert new.next_version_id is None
        assert new.effective_year_end is None
        assert ancestor.next_version_id == new.pk
        assert ancestor.effective_year_end == 2023
        assert ancestor.rate == 1.0

    def test_chain_resolution_by_year(self):
        """Closed versions stop applying where their successor starts."""
        RateTable.objects.create(district='north', effective_year=2020, rate=1.0)
        update_for_year(RateTable, {'district': 'north'}, 2023, {'rate': 2.0})

        assert get_effective_record(RateTable, {'district': 'north'}, 2022).rate == 1.0
        assert get_effective_record(RateTable, {'district': 'north'}, 2023).rate == 2.0
        assert get_effective_record(RateTable, {'district': 'north'}, 2030).rate == 2.0

    def test_branch_between_versions_splices_chain(self):
        """Inserting a middle version keeps links and end years consistent."""
        first = RateTable.objects.create(district='north', effective_year=2020, rate=1.0)
        last = update_for_year(RateTable, {'district': 'north'}, 2025, {'rate': 3.0})

        middle = update_for_year(RateTable, {'district': 'north'}, 2023, {'rate': 2.0})

        first.refresh_from_db()
        last.refresh_from_db()
        assert first.next_version_id == middle.pk
        assert first.effective_year_end == 2023
        assert middle.previous_version_id == first.pk
        assert middle.next_version_id == last.pk
        assert middle.effective_year_end == 2025
        assert last.previous_version_id == middle.pk
        assert [
            get_effective_record(RateTable, {'district': 'north'}, year).rate
            for year in (2021, 2023, 2024, 2025)
        ] == [1.0, 2.0, 2.0, 3.0]

    def test_get_or_create_links_materialized_version(self):
        """Materializing a chained kind links the copy into the chain."""
        ancestor = RateTable.objects.create(district='north', effective_year=2020, rate=1.0)

        record = get_or_create_for_year(RateTable, {'district': 'north'}, 2024, create_if_missing=True)

        ancestor.refresh_from_db()
        assert record.previous_version_id == ancestor.pk
        assert ancestor.next_version_id == record.pk
        assert ancestor.effective_year_end == 2024

    def test_create_new_takes_replaced_version_chain_position(self):
        """Replacing a middle version relinks both neighbours to the copy."""
        first = RateTable.objects.create(district='north', effective_year=2022, rate=1.0)
        last = update_for_year(RateTable, {'district': 'north'}, 2026, {'rate': 3.0})
        middle = update_for_year(RateTable, {'district': 'north'}, 2024, {'rate': 2.0})

        replacement = update_for_year(
            RateTable, {'district': 'north'}, 2024, {'rate': 2.5}, create_new=True,
        )

        first.refresh_from_db()
        middle.refresh_from_db()
        last.refresh_from_db()
        assert middle.deleted_at is not None
        assert first.next_version_id == replacement.pk
        assert replacement.previous_version_id == first.pk
        assert replacement.next_version_id == last.pk
        assert last.previous_version_id == replacement.pk
        assert replacement.source_effective_year == 2022
        assert replacement.effective_year_end == 2026
        assert get_effective_record(RateTable, {'district': 'north'}, 2025).pk == replacement.pk
