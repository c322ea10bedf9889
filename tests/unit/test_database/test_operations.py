"""
Unit tests for database operations
"""

import asyncio
import pytest
from datetime import datetime

from sqlalchemy import select

from database.models import QuoteCounterDB, QuoteDB
from pricing import QuoteDraft, LineItemDraft, LaborBlock, PaintingBlock, apply_totals, QuoteNumberGenerator
from utils.exceptions import DuplicateKeyError, ValidationError


def _draft(client="Acme", material_id=1, quantity=2, unit_price=10.0, status="draft"):
    return QuoteDraft(
        client=client,
        project="Warehouse roof",
        line_items=[LineItemDraft(material_id=material_id, quantity=quantity, unit_price=unit_price)],
        labor=LaborBlock(hours=1, rate_per_hour=25),
        painting=PaintingBlock(area_sq_meters=0, rate_per_sq_meter=15),
        status=status,
    )


def _prepare_with(generator):
    async def prepare(draft, next_sequence):
        apply_totals(draft)
        await generator.assign(draft, next_sequence)
    return prepare


@pytest.mark.unit
class TestMaterialOperations:
    """Test cases for material queries"""

    async def test_create_and_get_material(self, db_ops, material_factory):
        payload = material_factory.create_material(name="Sand", unit="m³", unit_price=45)
        created = await db_ops.create_material(payload)

        assert created['id'] is not None
        assert created['unit_price_formatted'] == "$45.00"
        assert created['active'] is True

        fetched = await db_ops.get_material(created['id'])
        assert fetched['name'] == "Sand"
        assert fetched['unit'] == "m³"

    async def test_get_missing_material(self, db_ops):
        assert await db_ops.get_material(12345) is None

    async def test_list_materials_filters_and_pagination(self, db_ops, material_factory):
        for name in ["Gravel", "Bricks", "Sand", "Sandpaper"]:
            await db_ops.create_material(material_factory.create_material(name=name))
        await db_ops.create_material(material_factory.create_material(name="Old sand", active=False))

        items, total = await db_ops.get_materials(search="SAND")
        assert total == 3
        assert [m['name'] for m in items] == ["Old sand", "Sand", "Sandpaper"]

        items, total = await db_ops.get_materials(search="sand", active=True)
        assert total == 2

        items, total = await db_ops.get_materials(page=2, limit=2)
        assert total == 5
        assert [m['name'] for m in items] == ["Old sand", "Sand"]

        active = await db_ops.get_active_materials()
        assert [m['name'] for m in active] == ["Bricks", "Gravel", "Sand", "Sandpaper"]

    async def test_search_wildcards_match_literally(self, db_ops, material_factory):
        for name in ["Tile 50%", "Tile 500", "Wire_2mm", "Wire 2mm"]:
            await db_ops.create_material(material_factory.create_material(name=name))

        items, total = await db_ops.get_materials(search="50%")
        assert total == 1
        assert items[0]["name"] == "Tile 50%"

        items, total = await db_ops.get_materials(search="e_2")
        assert total == 1
        assert items[0]["name"] == "Wire_2mm"

    async def test_update_and_delete_material(self, db_ops, material_factory):
        created = await db_ops.create_material(material_factory.create_material(unit_price=10))

        updated = await db_ops.update_material(created['id'], {'unit_price': 12.5, 'active': False})
        assert updated['unit_price'] == 12.5
        assert updated['active'] is False

        assert await db_ops.update_material(9999, {'unit_price': 1}) is None
        assert await db_ops.delete_material(created['id']) is True
        assert await db_ops.delete_material(created['id']) is False

    async def test_material_statistics(self, db_ops, material_factory):
        empty = await db_ops.get_material_statistics()
        assert empty['general']['total_materials'] == 0
        assert empty['general']['average_price'] == 0
        assert empty['by_unit'] == []

        await db_ops.create_material(material_factory.create_material(unit="kg", unit_price=10))
        await db_ops.create_material(material_factory.create_material(unit="kg", unit_price=20))
        await db_ops.create_material(material_factory.create_material(unit="l", unit_price=30, active=False))

        stats = await db_ops.get_material_statistics()
        assert stats['general'] == {
            'total_materials': 3,
            'active_materials': 2,
            'inactive_materials': 1,
            'average_price': 20.0,
            'min_price': 10.0,
            'max_price': 30.0,
        }
        assert stats['by_unit'] == [{'unit': 'kg', 'count': 2}, {'unit': 'l', 'count': 1}]


@pytest.mark.unit
class TestQuoteNumbering:
    """Test cases for counter-based quote numbering"""

    async def test_sequential_numbers_within_month(self, db_ops, number_generator, fixed_now):
        prepare = _prepare_with(number_generator)

        numbers = []
        for _ in range(3):
            quote = await db_ops.create_quote(_draft(), prepare, created_at=fixed_now)
            numbers.append(quote['number'])

        assert numbers == ["COT-202503-001", "COT-202503-002", "COT-202503-003"]

    async def test_counter_row_tracks_last_value(self, db_ops, test_database, number_generator, fixed_now):
        prepare = _prepare_with(number_generator)
        await db_ops.create_quote(_draft(), prepare, created_at=fixed_now)
        await db_ops.create_quote(_draft(), prepare, created_at=fixed_now)

        async with test_database.get_async_session() as session:
            counter = (await session.execute(
                select(QuoteCounterDB).filter(QuoteCounterDB.period == "202503")
            )).scalar_one()
        assert counter.last_value == 2

    async def test_months_are_numbered_independently(self, db_ops):
        march = QuoteNumberGenerator(prefix="COT", clock=lambda: datetime(2025, 3, 10))
        april = QuoteNumberGenerator(prefix="COT", clock=lambda: datetime(2025, 4, 1))

        await db_ops.create_quote(_draft(), _prepare_with(march), created_at=datetime(2025, 3, 10))
        first_april = await db_ops.create_quote(_draft(), _prepare_with(april), created_at=datetime(2025, 4, 1))

        assert first_april['number'] == "COT-202504-001"

    async def test_counter_seeded_from_existing_quotes(self, db_ops, test_database):
        """Quotes stored before the counter existed are counted once"""
        async with test_database.get_async_session() as session:
            for seq in (1, 2):
                session.add(QuoteDB(number=f"COT-202502-00{seq}", client="Legacy", project="Imported",
                                    created_at=datetime(2025, 2, seq)))
            await session.commit()

        february = QuoteNumberGenerator(prefix="COT", clock=lambda: datetime(2025, 2, 20))
        quote = await db_ops.create_quote(_draft(), _prepare_with(february), created_at=datetime(2025, 2, 20))

        assert quote['number'] == "COT-202502-003"

    async def test_conflict_is_retried(self, db_ops, test_database, number_generator, fixed_now):
        """A stale counter collides with an existing number and the retry moves past it"""
        async with test_database.get_async_session() as session:
            session.add(QuoteDB(number="COT-202503-001", client="Legacy", project="Imported",
                                created_at=datetime(2025, 1, 1)))
            await session.commit()

        quote = await db_ops.create_quote(_draft(), _prepare_with(number_generator), created_at=fixed_now)
        assert quote['number'] == "COT-202503-002"

    async def test_exhausted_retries_raise_duplicate_key(self, db_ops, fixed_now):
        async def prepare(draft, next_sequence):
            apply_totals(draft)
            await next_sequence(2025, 3)
            draft.number = "COT-202503-001"

        await db_ops.create_quote(_draft(), prepare, created_at=fixed_now)

        with pytest.raises(DuplicateKeyError) as exc_info:
            await db_ops.create_quote(_draft(), prepare, max_retries=3, created_at=fixed_now)
        assert exc_info.value.status_code == 409

        quotes, total = await db_ops.get_quotes()
        assert total == 1

    async def test_sequence_failure_writes_nothing(self, db_ops, fixed_now):
        async def prepare(draft, next_sequence):
            raise RuntimeError("counter unavailable")

        with pytest.raises(RuntimeError):
            await db_ops.create_quote(_draft(), prepare, created_at=fixed_now)

        _, total = await db_ops.get_quotes()
        assert total == 0

    async def test_concurrent_creates_get_unique_numbers(self, db_ops, number_generator, fixed_now):
        prepare = _prepare_with(number_generator)

        quotes = await asyncio.gather(*(
            db_ops.create_quote(_draft(client=f"Client {i}"), prepare, max_retries=10, created_at=fixed_now)
            for i in range(8)
        ))

        numbers = sorted(q["number"] for q in quotes)
        assert numbers == [f"COT-202503-{seq:03d}" for seq in range(1, 9)]

        _, total = await db_ops.get_quotes()
        assert total == 8


@pytest.mark.unit
class TestQuoteOperations:
    """Test cases for quote queries"""

    @pytest.fixture
    def prepare(self, number_generator):
        return _prepare_with(number_generator)

    async def test_stored_totals(self, db_ops, prepare, fixed_now):
        quote = await db_ops.create_quote(_draft(quantity=4, unit_price=25), prepare, created_at=fixed_now)

        assert quote['line_items'][0]['line_subtotal'] == 100
        assert quote['materials_subtotal'] == 100
        assert quote['labor'] == {'hours': 1, 'rate_per_hour': 25, 'total': 25}
        assert quote['grand_total'] == 125
        assert quote['grand_total_formatted'] == "$125.00"
        assert quote['created_at'] == fixed_now

    async def test_deleted_material_keeps_line_item(self, db_ops, prepare, material_factory, fixed_now):
        material = await db_ops.create_material(material_factory.create_material(unit_price=10))
        quote = await db_ops.create_quote(_draft(material_id=material['id']), prepare, created_at=fixed_now)
        assert quote['line_items'][0]['material']['id'] == material['id']

        await db_ops.delete_material(material['id'])

        reloaded = await db_ops.get_quote(quote['id'])
        assert reloaded['line_items'][0]['material_id'] == material['id']
        assert reloaded['line_items'][0]['material'] is None
        assert reloaded['grand_total'] == quote['grand_total']

    async def test_update_replaces_line_items_and_keeps_number(self, db_ops, prepare, fixed_now):
        quote = await db_ops.create_quote(_draft(), prepare, created_at=fixed_now)

        draft = _draft(quantity=10, unit_price=3)
        draft.line_items.append(LineItemDraft(material_id=2, quantity=1, unit_price=5))
        apply_totals(draft)
        updated = await db_ops.update_quote(quote['id'], draft)

        assert updated['number'] == quote['number']
        assert len(updated['line_items']) == 2
        assert updated['materials_subtotal'] == 35
        assert await db_ops.update_quote(9999, draft) is None

    async def test_list_filters_and_sort(self, db_ops, prepare, fixed_now):
        for client, status in [("Juan Pérez", "draft"), ("María García", "sent"), ("Juan López", "sent")]:
            await db_ops.create_quote(_draft(client=client, status=status), prepare, created_at=fixed_now)

        _, total = await db_ops.get_quotes(client="juan")
        assert total == 2

        _, total = await db_ops.get_quotes(client="_")
        assert total == 0

        _, total = await db_ops.get_quotes(status="sent")
        assert total == 2

        items, _ = await db_ops.get_quotes(search="202503-002")
        assert [q['client'] for q in items] == ["María García"]

        items, _ = await db_ops.get_quotes(sort="client")
        assert [q['client'] for q in items] == ["Juan López", "Juan Pérez", "María García"]

        items, _ = await db_ops.get_quotes(sort="-number")
        assert items[0]['number'] == "COT-202503-003"

        with pytest.raises(ValidationError):
            await db_ops.get_quotes(sort="secret")

    async def test_delete_quote(self, db_ops, prepare, fixed_now):
        quote = await db_ops.create_quote(_draft(), prepare, created_at=fixed_now)

        assert await db_ops.delete_quote(quote['id']) is True
        assert await db_ops.get_quote(quote['id']) is None
        assert await db_ops.delete_quote(quote['id']) is False

    async def test_quote_statistics(self, db_ops, fixed_now):
        months = [datetime(2025, 1, 5), datetime(2025, 3, 1), datetime(2025, 3, 2)]
        for created in months:
            generator = QuoteNumberGenerator(prefix="COT", clock=lambda created=created: created)
            await db_ops.create_quote(_draft(unit_price=50), _prepare_with(generator), created_at=created)

        stats = await db_ops.get_quote_statistics()

        assert stats['general']['total_quotes'] == 3
        assert stats['general']['total_billed'] == 375
        assert stats['general']['average_quote'] == 125
        assert stats['by_status'] == [{'status': 'draft', 'count': 3}]
        assert stats['by_month'] == [
            {'year': 2025, 'month': 3, 'count': 2, 'total': 250.0},
            {'year': 2025, 'month': 1, 'count': 1, 'total': 125.0},
        ]

    async def test_clients_summary(self, db_ops, prepare, fixed_now):
        await db_ops.create_quote(_draft(client="Acme", unit_price=10), prepare, created_at=fixed_now)
        await db_ops.create_quote(_draft(client="Acme", unit_price=10), prepare, created_at=fixed_now)
        await db_ops.create_quote(_draft(client="Globex", unit_price=100), prepare, created_at=fixed_now)

        summary = await db_ops.get_clients_summary()

        assert [c['client'] for c in summary] == ["Globex", "Acme"]
        assert summary[1]['quote_count'] == 2
        assert summary[1]['total_billed'] == 90
        assert summary[1]['first_quote_at'] == fixed_now

    async def test_export_dataframe(self, db_ops, prepare, fixed_now):
        await db_ops.create_quote(_draft(client="Acme"), prepare, created_at=fixed_now)
        await db_ops.create_quote(_draft(client="Globex"), prepare, created_at=fixed_now)

        df = await db_ops.get_quotes_dataframe(client="acme")

        assert list(df['client']) == ["Acme"]
        assert {'number', 'grand_total', 'created_at'} <= set(df.columns)


@pytest.mark.unit
class TestDashboardOperations:
    """Test cases for dashboard aggregation"""

    async def test_empty_dashboard(self, db_ops, fixed_now):
        stats = await db_ops.get_dashboard_statistics(now=fixed_now)

        assert stats['quotes'] == {'total_quotes': 0, 'total_billed': 0, 'average_quote': 0, 'quotes_this_month': 0}
        assert stats['materials']['total_materials'] == 0
        assert stats['by_status'] == []
        assert stats['top_clients'] == []
        assert stats['most_used_materials'] == []
        assert [(m['year'], m['month']) for m in stats['by_month']] == [
            (2024, 10), (2024, 11), (2024, 12), (2025, 1), (2025, 2), (2025, 3)
        ]
        assert all(m['count'] == 0 for m in stats['by_month'])

    async def test_dashboard_aggregates(self, db_ops, material_factory, fixed_now):
        cement = await db_ops.create_material(material_factory.create_material(name="Cement", unit_price=15.5))
        sand = await db_ops.create_material(material_factory.create_material(name="Sand", unit_price=45))

        for created, client, material in [
            (datetime(2025, 3, 1), "Acme", cement),
            (datetime(2025, 3, 2), "Acme", sand),
            (datetime(2025, 1, 9), "Globex", cement),
            (datetime(2023, 1, 1), "Initech", cement),
        ]:
            generator = QuoteNumberGenerator(prefix="COT", clock=lambda created=created: created)
            await db_ops.create_quote(
                _draft(client=client, material_id=material['id'], unit_price=material['unit_price']),
                _prepare_with(generator),
                created_at=created,
            )

        stats = await db_ops.get_dashboard_statistics(now=fixed_now)

        assert stats['quotes']['total_quotes'] == 4
        assert stats['quotes']['quotes_this_month'] == 2
        assert stats['materials']['total_materials'] == 2
        assert stats['by_status'][0]['status'] == 'draft'
        assert stats['by_status'][0]['count'] == 4
        assert stats['top_clients'][0]['client'] == "Acme"
        assert stats['top_clients'][0]['quotes'] == 2
        assert stats['most_used_materials'][0] == {
            'material_id': cement['id'], 'name': "Cement", 'times_used': 3, 'total_quantity': 6.0
        }

        by_month = {(m['year'], m['month']): m for m in stats['by_month']}
        assert len(by_month) == 6
        assert by_month[(2025, 3)]['count'] == 2
        assert by_month[(2025, 1)]['count'] == 1
        assert (2023, 1) not in by_month

        await db_ops.delete_material(sand['id'])
        stats = await db_ops.get_dashboard_statistics(now=fixed_now)
        assert [m['name'] for m in stats['most_used_materials']] == ["Cement"]

    async def test_recent_activity_and_summary(self, db_ops, material_factory, number_generator, fixed_now):
        material = await db_ops.create_material(material_factory.create_material(name="Gravel"))
        await db_ops.create_quote(_draft(client="Acme", material_id=material['id']),
                                  _prepare_with(number_generator), created_at=fixed_now)

        activity = await db_ops.get_recent_activity(limit=10)
        assert {entry['type'] for entry in activity} == {'quote', 'material'}
        quote_entry = next(e for e in activity if e['type'] == 'quote')
        assert quote_entry['action'] == 'created'
        assert quote_entry['description'] == "Quote COT-202503-001 created for Acme"

        assert len(await db_ops.get_recent_activity(limit=1)) == 1

        summary = await db_ops.get_dashboard_summary(now=fixed_now)
        assert summary == {
            'total_quotes': 1,
            'total_materials': 1,
            'quotes_this_month': 1,
            'total_billed': 45.0,
        }
