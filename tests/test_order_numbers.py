"""Tests for order number generation."""

from __future__ import annotations

import re
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone

from sqlmodel import Session, select

from storefront.config import StockPolicy
from storefront.models import Order
from storefront.schemas import OrderCreate
from storefront.workflow import build_workflow, generate_order_number

ORDER_NUMBER = re.compile(r"^ORD-\d{8}-[0-9A-F]{10}$")


def test_order_number_embeds_the_date() -> None:
    number = generate_order_number(datetime(2024, 2, 29, 23, 59, tzinfo=timezone.utc))

    assert ORDER_NUMBER.match(number)
    assert number.startswith("ORD-20240229-")


def test_concurrent_generation_yields_distinct_numbers() -> None:
    with ThreadPoolExecutor(max_workers=16) as pool:
        numbers = list(pool.map(lambda _: generate_order_number(), range(2000)))

    assert len(set(numbers)) == len(numbers)
    assert all(ORDER_NUMBER.match(number) for number in numbers)


def test_orders_placed_concurrently_get_distinct_numbers(engine, make_product, order_payload) -> None:
    product_id = make_product(engine, variants=(("M", "White", 50),))
    request = OrderCreate.model_validate(
        order_payload([{"product": str(product_id), "variant": {"size": "M", "color": "White"}, "quantity": 1}])
    )

    def place(_: int) -> str:
        with Session(engine) as session:
            return build_workflow(session, StockPolicy.ATOMIC).create_order(request).order_number

    with ThreadPoolExecutor(max_workers=8) as pool:
        numbers = list(pool.map(place, range(24)))

    with Session(engine) as session:
        stored = session.exec(select(Order.order_number)).all()
    assert len(set(numbers)) == 24
    assert sorted(stored) == sorted(numbers)
