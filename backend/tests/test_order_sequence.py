"""
Order number allocation tests.

Format: {prefix}{YYYYMMDD}{NNNN}, counter restarts at 0001 each day.
"""

import re
from datetime import datetime

from storefront.models import OrderSequence
from storefront.services.sequence_service import format_order_number, next_order_number


MAY_1 = datetime(2024, 5, 1, 9, 30)
MAY_2 = datetime(2024, 5, 2, 0, 0, 1)


class TestFormatOrderNumber:

    def test_pads_to_four_digits(self):
        assert format_order_number("EA", "20240501", 7) == "EA202405010007"

    def test_wider_numbers_are_not_truncated(self):
        assert format_order_number("EA", "20240501", 12345) == "EA2024050112345"


class TestNextOrderNumber:

    def test_first_of_day_is_0001(self, db_session):
        assert next_order_number(now=MAY_1) == "EA202405010001"
        db_session.commit()

    def test_increments_within_day(self, db_session):
        numbers = [next_order_number(now=MAY_1) for _ in range(3)]
        db_session.commit()

        assert numbers == ["EA202405010001", "EA202405010002", "EA202405010003"]

    def test_counter_survives_commit(self, db_session):
        next_order_number(now=MAY_1)
        db_session.commit()

        assert next_order_number(now=MAY_1) == "EA202405010002"
        db_session.commit()

    def test_restarts_each_day(self, db_session):
        next_order_number(now=MAY_1)
        next_order_number(now=MAY_1)

        assert next_order_number(now=MAY_2) == "EA202405020001"
        db_session.commit()

        rows = {r.day_key: r.next_number for r in db_session.query(OrderSequence).all()}
        assert rows == {"20240501": 3, "20240502": 2}

    def test_rollback_releases_number(self, db_session):
        next_order_number(now=MAY_1)
        db_session.rollback()

        assert next_order_number(now=MAY_1) == "EA202405010001"
        db_session.commit()

    def test_prefix_override(self, db_session):
        assert next_order_number(now=MAY_1, prefix="XX") == "XX202405010001"
        db_session.commit()

    def test_many_allocations_are_unique(self, db_session):
        numbers = [next_order_number(now=MAY_1) for _ in range(250)]
        db_session.commit()

        assert len(set(numbers)) == 250
        assert all(re.fullmatch(r"EA20240501\d{4}", n) for n in numbers)
