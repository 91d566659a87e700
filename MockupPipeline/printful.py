# printful.py
"""
Printful Mockup Generator adapter.

Wraps the three vendor calls the pipeline needs (catalog variant lookup,
task creation, task status) and normalizes Printful's mockup results into
`MockupResult` objects, so callers never probe raw response fields.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

import httpx
from pydantic import BaseModel, Field

from settings import settings

# --- Configuration & Setup ---
logger = logging.getLogger(__name__)

TASK_PENDING = "pending"
TASK_COMPLETED = "completed"
TASK_FAILED = "failed"


class PrintfulError(Exception):
    """A Printful request failed or returned an unusable response."""


class MockupTaskError(PrintfulError):
    """A mockup task ended in failure or never left the pending state."""


# ===================================================================
# Pydantic Schemas
# ===================================================================

class MockupResult(BaseModel):
    """One rendered mockup, which may cover several variants sharing geometry."""
    variant_ids: List[int] = Field(default_factory=list)
    image_url: Optional[str] = None

    def covers(self, variant_id: int) -> bool:
        return variant_id in self.variant_ids


class MockupTask(BaseModel):
    task_key: str
    status: str = TASK_PENDING
    mockups: List[MockupResult] = Field(default_factory=list)
    error: Optional[str] = None


def normalize_mockup(entry: Dict[str, Any]) -> MockupResult:
    """
    Flattens one raw mockup entry.

    Printful reports covered variants as a `variant_ids` list, but single
    variant renders may carry a scalar `variant_id` instead. The image URL is
    normally `mockup_url`; some renders only expose it in the `extra` list of
    alternate images.

    Ids that are not integers are dropped, so the variants they were meant to
    cover end up without a render instead of failing the whole task.
    """
    raw_ids = entry.get("variant_ids", entry.get("variantIds"))
    if raw_ids is None:
        raw_ids = entry.get("variant_id", entry.get("id"))
    if not isinstance(raw_ids, (list, tuple)):
        raw_ids = [] if raw_ids is None else [raw_ids]
    variant_ids = [v for v in (_as_variant_id(raw) for raw in raw_ids) if v is not None]

    image_url = _as_url(entry.get("mockup_url")) or _as_url(entry.get("url")) or _as_url(entry.get("mockupUrl"))
    if not image_url:
        for alternate in _as_list(entry.get("extra")):
            if isinstance(alternate, dict) and _as_url(alternate.get("url")):
                image_url = alternate["url"]
                break

    return MockupResult(variant_ids=variant_ids, image_url=image_url)


def _as_variant_id(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value)
    return None


def _as_list(value: Any) -> List[Any]:
    return value if isinstance(value, list) else []


def _as_url(value: Any) -> Optional[str]:
    return value if isinstance(value, str) and value else None


def find_image_url(mockups: List[MockupResult], variant_id: int) -> Optional[str]:
    """Returns the first image URL rendered for `variant_id`, or None."""
    for mockup in mockups:
        if mockup.covers(variant_id) and mockup.image_url:
            return mockup.image_url
    return None


def _error_message(response: httpx.Response) -> str:
    """Printful errors look like {code: 400, result: "Reason", error: {message: "..."}}."""
    try:
        body = response.json()
    except ValueError:
        return f"HTTP {response.status_code}: {response.text[:200]}"

    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict) and error.get("message"):
        return error["message"]
    if isinstance(error, str) and error:
        return error
    if isinstance(body, dict) and isinstance(body.get("result"), str):
        return body["result"]
    return f"HTTP {response.status_code}"


# ===================================================================
# Client
# ===================================================================

class PrintfulMockupClient:
    """Thin async client for the Printful endpoints used by the pipeline."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        poll_interval: Optional[float] = None,
        max_poll_attempts: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.PRINTFUL_API_KEY
        self.base_url = (base_url or settings.PRINTFUL_API_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.PRINTFUL_TIMEOUT
        self.poll_interval = (
            poll_interval if poll_interval is not None else settings.MOCKUP_POLL_INTERVAL_SECONDS
        )
        self.max_poll_attempts = (
            max_poll_attempts if max_poll_attempts is not None else settings.MOCKUP_POLL_MAX_ATTEMPTS
        )
        self._transport = transport

        if not self.api_key:
            logger.warning("PRINTFUL_API_KEY is not set. Printful calls will be rejected.")

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers={"Authorization": f"Bearer {self.api_key}"},
            timeout=self.timeout,
            transport=self._transport,
        )

    async def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        """Performs one request and returns the `result` object of the response."""
        try:
            async with self._client() as client:
                response = await client.request(method, path, **kwargs)
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            message = _error_message(e.response)
            logger.error(f"Printful {method} {path} failed ({e.response.status_code}): {message}")
            raise PrintfulError(f"Printful error: {message}") from e
        except httpx.RequestError as e:
            logger.error(f"Network error calling Printful {method} {path}: {e}")
            raise PrintfulError(f"Printful network error: {e}") from e

        try:
            data = response.json()
        except ValueError as e:
            raise PrintfulError(f"Printful returned invalid JSON for {path}") from e

        result = data.get("result") if isinstance(data, dict) else None
        if not isinstance(result, dict):
            raise PrintfulError(f"Printful response for {path} has no result object")
        return result

    async def get_variant_product_id(self, variant_id: int) -> int:
        """Looks up the catalog product a variant belongs to."""
        result = await self._request("GET", f"/products/variant/{variant_id}")
        variant = result.get("variant")
        product_id = _as_variant_id(variant.get("product_id")) if isinstance(variant, dict) else None
        if not product_id:
            raise PrintfulError(f"Printful variant {variant_id} has no product_id")
        return product_id

    async def create_task(
        self,
        product_id: int,
        variant_ids: List[int],
        placement: str,
        artwork_url: str,
        image_format: Optional[str] = None,
    ) -> str:
        """
        Submits one mockup task covering `variant_ids`.

        Not idempotent: a retried submission renders (and bills) again.
        """
        payload = {
            "variant_ids": list(variant_ids),
            "format": image_format or settings.MOCKUP_FORMAT,
            "files": [{"placement": placement, "image_url": artwork_url}],
        }
        result = await self._request(
            "POST", f"/mockup-generator/create-task/{product_id}", json=payload
        )
        task_key = result.get("task_key")
        if not task_key:
            raise PrintfulError("Printful mockup API did not return a task_key")
        logger.info(f"Printful mockup task created: {task_key} (product {product_id}, {len(variant_ids)} variants)")
        return task_key

    async def get_task(self, task_key: str) -> MockupTask:
        """Reads the current state of a mockup task once."""
        result = await self._request(
            "GET", "/mockup-generator/task", params={"task_key": task_key}
        )
        status = result.get("status")
        if status not in (TASK_COMPLETED, TASK_FAILED):
            status = TASK_PENDING

        error = result.get("error")
        if isinstance(error, dict):
            error = error.get("message")

        return MockupTask(
            task_key=task_key,
            status=status,
            mockups=[normalize_mockup(m) for m in _as_list(result.get("mockups")) if isinstance(m, dict)],
            error=str(error) if error else None,
        )

    async def wait_for_task(self, task_key: str) -> MockupTask:
        """
        Polls until the task leaves `pending`.

        Raises MockupTaskError when the task fails or the attempt bound is hit.
        """
        for attempt in range(1, self.max_poll_attempts + 1):
            await asyncio.sleep(self.poll_interval)
            task = await self.get_task(task_key)

            if task.status == TASK_COMPLETED:
                logger.info(f"Printful mockup task {task_key} completed with {len(task.mockups)} mockups.")
                return task
            if task.status == TASK_FAILED:
                logger.error(f"Printful mockup task {task_key} failed: {task.error}")
                raise MockupTaskError(task.error or "Mockup task failed")

            logger.debug(f"Mockup task {task_key} pending (attempt {attempt}/{self.max_poll_attempts})")

        logger.error(f"Printful mockup task {task_key} timed out.")
        raise MockupTaskError("timed out")
