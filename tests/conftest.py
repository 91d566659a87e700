from io import BytesIO
from typing import Dict, List, Optional

import numpy as np
import pytest
from PIL import Image
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from db import Base
from models import ProductVariant
from print_area import PrintArea
from printful import MockupResult, MockupTask, MockupTaskError, PrintfulError

MAGENTA = (255, 0, 255)
PRODUCT_GREY = (128, 128, 128)


@pytest.fixture
async def session_maker():
    engine = create_async_engine("sqlite+aiosqlite://", poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


async def add_variants(session_maker, *variants: Dict) -> None:
    async with session_maker() as db:
        db.add_all([ProductVariant(**v) for v in variants])
        await db.commit()


def make_png(pixels: np.ndarray) -> bytes:
    buf = BytesIO()
    Image.fromarray(pixels.astype(np.uint8), "RGB").save(buf, format="PNG")
    return buf.getvalue()


def product_photo(width: int, height: int, background=PRODUCT_GREY) -> np.ndarray:
    pixels = np.zeros((height, width, 3), dtype=np.uint8)
    pixels[:, :] = background
    return pixels


class FakePrintfulClient:
    """In-memory stand-in for PrintfulMockupClient."""

    def __init__(
        self,
        mockups: Optional[Dict[int, List[MockupResult]]] = None,
        failing_products: Optional[Dict[int, str]] = None,
        product_ids: Optional[Dict[int, int]] = None,
    ):
        self.mockups = mockups or {}
        self.failing_products = failing_products or {}
        self.product_ids = product_ids or {}
        self.submitted: List[tuple] = []
        self._tasks: Dict[str, int] = {}

    async def get_variant_product_id(self, variant_id: int) -> int:
        if variant_id not in self.product_ids:
            raise PrintfulError(f"Failed to fetch variant {variant_id}")
        return self.product_ids[variant_id]

    async def create_task(self, product_id, variant_ids, placement, artwork_url, image_format=None):
        self.submitted.append((product_id, list(variant_ids), placement, artwork_url))
        task_key = f"gt-{len(self.submitted)}"
        self._tasks[task_key] = product_id
        return task_key

    async def wait_for_task(self, task_key: str) -> MockupTask:
        product_id = self._tasks[task_key]
        if product_id in self.failing_products:
            raise MockupTaskError(self.failing_products[product_id])
        return MockupTask(
            task_key=task_key, status="completed", mockups=self.mockups.get(product_id, [])
        )


class RecordingSleep:
    def __init__(self, on_sleep=None):
        self.calls: List[float] = []
        self.on_sleep = on_sleep

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        if self.on_sleep is not None:
            self.on_sleep()


def fixed_detector(area: PrintArea):
    def detect(image_bytes: bytes) -> PrintArea:
        return area
    return detect


async def fake_fetch(url: str) -> bytes:
    return b"template-bytes"
