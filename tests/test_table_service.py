from __future__ import annotations

import unittest
from decimal import Decimal

from app.models import UnitStatus
from app.services.table_service import (
    RowNotFoundError,
    TableAccessError,
    UnknownTableError,
    delete_from_table,
    fetch_from_table,
    insert_into_table,
    subscribe_to_table,
    update_in_table,
)
from tests.support import add_unit, make_session_factory


class TableServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.session_factory = make_session_factory()
        self.db = self.session_factory()
        self.addCleanup(self.db.close)

    def _unit_values(self, number: str, **extra) -> dict:
        values = {
            'unit_number': number,
            'unit_type': '1br',
            'floor': 2,
            'size_sqm': Decimal('30'),
            'monthly_rent': Decimal('3000000'),
            'features': ['Balcony'],
        }
        values.update(extra)
        return values

    def test_insert_returns_full_row_with_defaults(self) -> None:
        row = insert_into_table(self.db, 'units', self._unit_values('C-1'))
        self.assertIsNotNone(row['id'])
        self.assertEqual(row['unit_number'], 'C-1')
        self.assertEqual(row['status'], 'available')
        self.assertEqual(row['features'], ['Balcony'])

    def test_enum_values_are_accepted_and_returned_as_strings(self) -> None:
        row = insert_into_table(self.db, 'units', self._unit_values('C-2', status=UnitStatus.RESERVED))
        self.assertEqual(row['status'], 'reserved')

    def test_fetch_filters_orders_and_limits(self) -> None:
        add_unit(self.db, 'B-2', status=UnitStatus.AVAILABLE)
        add_unit(self.db, 'B-1', status=UnitStatus.AVAILABLE)
        add_unit(self.db, 'B-3', status=UnitStatus.OCCUPIED)

        rows = fetch_from_table(self.db, 'units', filters={'status': UnitStatus.AVAILABLE}, order_by='unit_number')
        self.assertEqual([row['unit_number'] for row in rows], ['B-1', 'B-2'])

        rows = fetch_from_table(self.db, 'units', columns=['unit_number'], order_by='unit_number', ascending=False, limit=1)
        self.assertEqual(rows, [{'unit_number': 'B-3'}])

    def test_fetch_ignores_filters_without_a_value(self) -> None:
        add_unit(self.db, 'B-1')
        add_unit(self.db, 'B-2', status=UnitStatus.OCCUPIED)
        rows = fetch_from_table(self.db, 'units', filters={'status': None})
        self.assertEqual(len(rows), 2)

    def test_fetch_with_zero_limit_returns_nothing(self) -> None:
        add_unit(self.db, 'B-1')
        self.assertEqual(fetch_from_table(self.db, 'units', limit=0), [])

    def test_unknown_table_and_column_are_rejected(self) -> None:
        with self.assertRaises(UnknownTableError):
            fetch_from_table(self.db, 'towers')
        with self.assertRaises(TableAccessError):
            fetch_from_table(self.db, 'units', filters={'colour': 'red'})
        with self.assertRaises(TableAccessError):
            insert_into_table(self.db, 'units', {'colour': 'red'})

    def test_update_returns_new_row(self) -> None:
        unit = add_unit(self.db, 'B-1')
        row = update_in_table(self.db, 'units', unit.id, {'status': UnitStatus.MAINTENANCE, 'floor': 7})
        self.assertEqual(row['status'], 'maintenance')
        self.assertEqual(row['floor'], 7)

    def test_update_with_no_values_returns_current_row(self) -> None:
        unit = add_unit(self.db, 'B-1')
        row = update_in_table(self.db, 'units', unit.id, {})
        self.assertEqual(row['unit_number'], 'B-1')

    def test_update_and_delete_missing_rows_raise(self) -> None:
        with self.assertRaises(RowNotFoundError):
            update_in_table(self.db, 'units', 404, {'floor': 3})
        with self.assertRaises(RowNotFoundError):
            delete_from_table(self.db, 'units', 404)

    def test_delete_removes_row(self) -> None:
        unit = add_unit(self.db, 'B-1')
        delete_from_table(self.db, 'units', unit.id)
        self.assertEqual(fetch_from_table(self.db, 'units', filters={'id': unit.id}), [])

    def test_constraint_violation_is_wrapped(self) -> None:
        add_unit(self.db, 'B-1')
        with self.assertRaises(TableAccessError):
            insert_into_table(self.db, 'units', self._unit_values('B-1'))


class ChangeFeedTests(unittest.TestCase):
    def setUp(self) -> None:
        self.session_factory = make_session_factory()
        self.db = self.session_factory()
        self.addCleanup(self.db.close)
        self.events = []

    def _unit_values(self, number: str) -> dict:
        return {'unit_number': number, 'unit_type': 'studio', 'floor': 1, 'size_sqm': Decimal('20'), 'monthly_rent': Decimal('1')}

    def _subscribe(self, table_name: str, filter: dict | None = None) -> None:
        self.addCleanup(subscribe_to_table(table_name, self.events.append, filter))

    def test_changes_are_published_after_commit(self) -> None:
        self._subscribe('units')
        unit = add_unit(self.db, 'B-1')
        self.db.commit()
        update_in_table(self.db, 'units', unit.id, {'status': UnitStatus.RESERVED})
        self.assertEqual(self.events, [])

        self.db.commit()
        self.assertEqual(len(self.events), 1)
        change = self.events[0]
        self.assertEqual(change.table, 'units')
        self.assertEqual(change.event_type, 'UPDATE')
        self.assertEqual(change.old['status'], 'available')
        self.assertEqual(change.new['status'], 'reserved')

    def test_rollback_discards_pending_changes(self) -> None:
        self._subscribe('units')
        unit = add_unit(self.db, 'B-1')
        self.db.commit()
        update_in_table(self.db, 'units', unit.id, {'status': UnitStatus.RESERVED})
        self.db.rollback()
        self.db.commit()
        self.assertEqual(self.events, [])

    def test_savepoint_rollback_keeps_earlier_changes(self) -> None:
        self._subscribe('units')
        insert_into_table(self.db, 'units', self._unit_values('B-1'))
        with self.assertRaises(TableAccessError):
            with self.db.begin_nested():
                insert_into_table(self.db, 'units', self._unit_values('B-2'))
                insert_into_table(self.db, 'units', self._unit_values('B-1'))
        self.db.commit()

        self.assertEqual([change.new['unit_number'] for change in self.events], ['B-1'])
        self.assertEqual([row['unit_number'] for row in fetch_from_table(self.db, 'units')], ['B-1'])

    def test_released_savepoint_waits_for_outer_commit(self) -> None:
        self._subscribe('units')
        add_unit(self.db, 'B-1')
        with self.db.begin_nested():
            insert_into_table(self.db, 'units', self._unit_values('B-2'))
        self.assertEqual(self.events, [])

        self.db.commit()
        self.assertEqual([change.new['unit_number'] for change in self.events], ['B-2'])

    def test_outer_rollback_discards_released_savepoint_changes(self) -> None:
        self._subscribe('units')
        add_unit(self.db, 'B-1')
        with self.db.begin_nested():
            insert_into_table(self.db, 'units', self._unit_values('B-2'))
        self.db.rollback()
        self.db.commit()
        self.assertEqual(self.events, [])

    def test_filter_limits_delivered_events(self) -> None:
        self._subscribe('units', {'status': UnitStatus.OCCUPIED})
        first = add_unit(self.db, 'B-1')
        second = add_unit(self.db, 'B-2')
        self.db.commit()
        update_in_table(self.db, 'units', first.id, {'status': UnitStatus.OCCUPIED})
        update_in_table(self.db, 'units', second.id, {'floor': 9})
        self.db.commit()
        self.assertEqual([change.new['unit_number'] for change in self.events], ['B-1'])

    def test_delete_event_carries_old_row(self) -> None:
        self._subscribe('units')
        unit = add_unit(self.db, 'B-1')
        self.db.commit()
        delete_from_table(self.db, 'units', unit.id)
        self.db.commit()
        self.assertEqual(self.events[0].event_type, 'DELETE')
        self.assertIsNone(self.events[0].new)
        self.assertEqual(self.events[0].old['unit_number'], 'B-1')

    def test_unsubscribe_stops_delivery(self) -> None:
        unsubscribe = subscribe_to_table('units', self.events.append)
        unsubscribe()
        add_unit(self.db, 'B-1')
        insert_into_table(
            self.db,
            'units',
            {'unit_number': 'B-2', 'unit_type': 'studio', 'floor': 1, 'size_sqm': Decimal('20'), 'monthly_rent': Decimal('1')},
        )
        self.db.commit()
        self.assertEqual(self.events, [])

    def test_failing_listener_does_not_break_others(self) -> None:
        def explode(change) -> None:
            raise RuntimeError('listener bug')

        self.addCleanup(subscribe_to_table('units', explode))
        self._subscribe('units')
        insert_into_table(
            self.db,
            'units',
            {'unit_number': 'B-2', 'unit_type': 'studio', 'floor': 1, 'size_sqm': Decimal('20'), 'monthly_rent': Decimal('1')},
        )
        with self.assertLogs('app.services.table_service', level='ERROR'):
            self.db.commit()
        self.assertEqual(len(self.events), 1)


if __name__ == '__main__':
    unittest.main()
