"""Extraction worker pool: one candidate record per content unit.

# --- DESIGN -----------------------------------------------------------
#
#   units --> asyncio.Queue --> K worker tasks --> records[position]
#
# * K workers pull units until the queue is empty; K is the pool's
#   concurrency limit.
# * Every model call goes through a CallThrottle (at most N calls in
#   flight, minimum stagger between call starts).  The throttle is the
#   only state shared between workers.
# * Per unit, strictly sequential:
#       fetch (retry; image units fall back to the originally discovered
#       URL) -> text or image -> model call (retry on transient errors)
#       -> JSON recovery -> parse/validate
# * The whole unit is bounded by ``unit_timeout``; on expiry the unit is
#   abandoned and yields an empty TIMEOUT record.
# * Any other failure yields an empty FAILED record.  The pool itself
#   never raises for a unit's sake.
# * Setting ``cancel_event`` cancels in-flight units and skips queued
#   ones; they come back as CANCELLED records so callers can aggregate
#   whatever completed.
# ----------------------------------------------------------------------
"""

from __future__ import annotations

import asyncio
import re
from collections.abc import Awaitable, Callable

import structlog
from bs4 import BeautifulSoup

from src.interfaces.content_fetcher import IContentFetcher
from src.interfaces.llm_provider import ILLMProvider
from src.models.content import ContentKind, ContentUnit, FetchedContent
from src.models.extraction import CandidateRecord, UnitStatus
from src.services.candidate_parser import parse_candidate_payload
from src.utils.concurrency import CallThrottle
from src.utils.errors import FetchError, KaraokeScoutError, UnitProcessingError
from src.utils.json_extraction import extract_json_object
from src.utils.retry import retry_async

logger = structlog.get_logger(logger_name=__name__)

UnitCallback = Callable[[CandidateRecord], Awaitable[None] | None]

_MIN_TEXT_CHARS = 40
_BLANK_LINES_RE = re.compile(r"\n\s*\n+")

_RESPONSE_SHAPE = """{
  "vendor": {"name": "...", "website": "...", "description": "...", "confidence": 0.0},
  "djs": [{"name": "...", "confidence": 0.0, "context": "...", "aliases": []}],
  "shows": [{
    "venue": "...", "address": "...", "city": "...", "state": "...", "zip": "...",
    "lat": null, "lng": null, "day": "friday", "startTime": "20:00", "endTime": "00:00",
    "djName": "...", "vendorName": "...", "description": "...",
    "venuePhone": "...", "venueWebsite": "...", "confidence": 0.0
  }]
}"""

EXTRACTION_SYSTEM_PROMPT = f"""You extract karaoke schedule data from web pages.

Return ONE JSON object with this shape and nothing else:
{_RESPONSE_SHAPE}

Rules:
- "vendor" is the karaoke company or host business running the shows; null if none is named.
- "djs" are the karaoke jockeys (KJs) or DJs who host shows.
- One entry in "shows" per recurring weekly show: venue name, weekday, start time.
  A venue with karaoke on two nights is two shows.
- Use 24-hour HH:MM times and lowercase full weekday names.
- Only include what the page actually states; use null for unknown fields.
- confidence is 0.0-1.0: how sure you are the entry is a real karaoke show or host.
- If the page has no karaoke information return {{"vendor": null, "djs": [], "shows": []}}."""

IMAGE_EXTRACTION_PROMPT = (
    EXTRACTION_SYSTEM_PROMPT
    + "\n\nThe input is an image (a flyer, poster or screenshot of a schedule). "
    "Read every venue, day and time printed on it."
)


def html_to_text(html_text: str, max_chars: int) -> str:
    """Reduce a page to readable text for the model, capped at *max_chars*."""
    soup = BeautifulSoup(html_text, "html.parser")
    for tag in soup(["script", "style", "noscript", "svg", "iframe", "template"]):
        tag.decompose()
    title = soup.title.get_text(strip=True) if soup.title else ""
    body = soup.get_text("\n", strip=True)
    text = _BLANK_LINES_RE.sub("\n", body)
    if title and not text.startswith(title):
        text = f"{title}\n{text}"
    return text[:max_chars]


class ExtractionPool:
    """Bounded pool that turns content units into candidate records.

    Parameters
    ----------
    llm:
        Model backend used for text and vision analysis.
    fetcher:
        Fetcher used to retrieve each unit's bytes.
    throttle:
        Optional shared call throttle (e.g. one per process so concurrent
        runs share the provider's rate limit).  When omitted each
        :meth:`extract_all` call builds its own from ``max_concurrent_calls``
        and ``call_stagger``.
    """

    def __init__(
        self,
        llm: ILLMProvider,
        fetcher: IContentFetcher,
        throttle: CallThrottle | None = None,
        max_concurrent_calls: int = 3,
        call_stagger: float = 0.5,
        unit_timeout: float = 100.0,
        max_attempts: int = 3,
        retry_base_delay: float = 2.0,
        retry_max_delay: float = 30.0,
        fetch_max_attempts: int = 3,
        html_max_chars: int = 60000,
    ) -> None:
        self._llm = llm
        self._fetcher = fetcher
        self._throttle = throttle
        self._max_concurrent_calls = max_concurrent_calls
        self._call_stagger = call_stagger
        self._unit_timeout = unit_timeout
        self._max_attempts = max_attempts
        self._retry_base_delay = retry_base_delay
        self._retry_max_delay = retry_max_delay
        self._fetch_max_attempts = fetch_max_attempts
        self._html_max_chars = html_max_chars

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def extract_all(
        self,
        units: list[ContentUnit],
        concurrency_limit: int | None = None,
        cancel_event: asyncio.Event | None = None,
        on_unit_done: UnitCallback | None = None,
    ) -> list[CandidateRecord]:
        """Process every unit and return one record per unit, in input order."""
        if not units:
            return []

        limit = concurrency_limit or self._max_concurrent_calls
        throttle = self._throttle or CallThrottle(limit, self._call_stagger)
        cancel_event = cancel_event or asyncio.Event()

        queue: asyncio.Queue[tuple[int, ContentUnit]] = asyncio.Queue()
        for position, unit in enumerate(units):
            queue.put_nowait((position, unit))
        results: list[CandidateRecord | None] = [None] * len(units)

        async def _worker() -> None:
            while True:
                try:
                    position, unit = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return
                if cancel_event.is_set():
                    record = self._cancelled(unit)
                else:
                    record = await self._run_cancellable(unit, throttle, cancel_event)
                results[position] = record
                if on_unit_done is not None:
                    await self._notify(on_unit_done, record)

        workers = min(limit, len(units))
        logger.info("extraction_started", units=len(units), workers=workers)
        await asyncio.gather(*(_worker() for _ in range(workers)))

        records = [r for r in results if r is not None]
        logger.info(
            "extraction_complete",
            units=len(units),
            ok=sum(r.status is UnitStatus.OK for r in records),
            empty=sum(r.status is UnitStatus.EMPTY for r in records),
            failed=sum(r.status is UnitStatus.FAILED for r in records),
            timed_out=sum(r.status is UnitStatus.TIMEOUT for r in records),
            cancelled=sum(r.status is UnitStatus.CANCELLED for r in records),
            peak_in_flight=throttle.peak_in_flight,
        )
        return records

    async def extract_unit(self, unit: ContentUnit, throttle: CallThrottle) -> CandidateRecord:
        """Process one unit under the per-unit time bound; never raises."""
        try:
            return await asyncio.wait_for(
                self._process_unit(unit, throttle), timeout=self._unit_timeout
            )
        except asyncio.TimeoutError:
            logger.warning("unit_timed_out", unit_url=unit.url, timeout=self._unit_timeout)
            return CandidateRecord.empty(
                unit.url,
                unit.index,
                status=UnitStatus.TIMEOUT,
                error=f"Abandoned after {self._unit_timeout:.0f}s",
            )
        except KaraokeScoutError as exc:
            logger.warning(
                "unit_failed",
                unit_url=unit.url,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return CandidateRecord.empty(
                unit.url, unit.index, status=UnitStatus.FAILED, error=str(exc)
            )
        except Exception as exc:
            logger.error(
                "unit_processing_error",
                unit_url=unit.url,
                error=str(exc),
                error_type=type(exc).__name__,
                exc_info=True,
            )
            return CandidateRecord.empty(
                unit.url,
                unit.index,
                status=UnitStatus.FAILED,
                error=str(UnitProcessingError(f"{type(exc).__name__}: {exc}")),
            )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _run_cancellable(
        self, unit: ContentUnit, throttle: CallThrottle, cancel_event: asyncio.Event
    ) -> CandidateRecord:
        unit_task = asyncio.ensure_future(self.extract_unit(unit, throttle))
        cancel_wait = asyncio.ensure_future(cancel_event.wait())
        try:
            done, _pending = await asyncio.wait(
                {unit_task, cancel_wait}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            cancel_wait.cancel()
        if unit_task in done:
            return unit_task.result()

        unit_task.cancel()
        await asyncio.gather(unit_task, return_exceptions=True)
        logger.info("unit_cancelled", unit_url=unit.url)
        return self._cancelled(unit)

    @staticmethod
    def _cancelled(unit: ContentUnit) -> CandidateRecord:
        return CandidateRecord.empty(
            unit.url, unit.index, status=UnitStatus.CANCELLED, error="Run cancelled"
        )

    @staticmethod
    async def _notify(callback: UnitCallback, record: CandidateRecord) -> None:
        try:
            result = callback(record)
            if asyncio.iscoroutine(result):
                await result
        except Exception as exc:
            logger.warning("unit_callback_error", unit_url=record.unit_url, error=str(exc))

    async def _process_unit(self, unit: ContentUnit, throttle: CallThrottle) -> CandidateRecord:
        content = await self._fetch_unit(unit)

        if unit.kind is ContentKind.IMAGE or content.is_image:
            if not self._llm.supports_vision():
                raise UnitProcessingError(
                    f"{self._llm.get_provider_name()} cannot analyse images",
                    provider_name=self._llm.get_provider_name(),
                )
            image_bytes = content.content
            reply = await self._call_model(
                lambda: self._llm.vision_extract(image_bytes, IMAGE_EXTRACTION_PROMPT),
                throttle,
                unit,
            )
        else:
            text = html_to_text(content.text(), self._html_max_chars)
            if len(text) < _MIN_TEXT_CHARS:
                logger.info("unit_has_no_text", unit_url=unit.url, chars=len(text))
                return CandidateRecord.empty(unit.url, unit.index)
            user_prompt = f"Page URL: {unit.url}\n\n{text}"
            reply = await self._call_model(
                lambda: self._llm.complete(
                    system_prompt=EXTRACTION_SYSTEM_PROMPT,
                    user_prompt=user_prompt,
                ),
                throttle,
                unit,
            )

        payload = extract_json_object(reply)
        record = parse_candidate_payload(payload, unit)
        logger.debug(
            "unit_extracted",
            unit_url=unit.url,
            shows=len(record.shows),
            djs=len(record.djs),
            vendor=record.vendor.name if record.vendor else None,
        )
        return record

    async def _fetch_unit(self, unit: ContentUnit) -> FetchedContent:
        try:
            content = await self._fetch_with_retry(unit.url)
            if unit.kind is ContentKind.IMAGE and not content.is_image:
                raise UnitProcessingError(
                    f"Expected an image at {unit.url}, got {content.media_type or 'unknown'}"
                )
            return content
        except (FetchError, UnitProcessingError) as exc:
            if unit.kind is not ContentKind.IMAGE or not unit.fallback_url:
                raise
            logger.info(
                "image_fallback_used",
                unit_url=unit.url,
                fallback_url=unit.fallback_url,
                error=str(exc),
            )
            return await self._fetch_with_retry(unit.fallback_url)

    async def _fetch_with_retry(self, url: str) -> FetchedContent:
        return await retry_async(
            lambda: self._fetcher.fetch(url),
            max_attempts=self._fetch_max_attempts,
            base_delay=self._retry_base_delay,
            max_delay=self._retry_max_delay,
            operation="unit_fetch",
        )

    async def _call_model(
        self,
        call: Callable[[], Awaitable[str]],
        throttle: CallThrottle,
        unit: ContentUnit,
    ) -> str:
        async def _throttled() -> str:
            async with throttle:
                return await call()

        return await retry_async(
            _throttled,
            max_attempts=self._max_attempts,
            base_delay=self._retry_base_delay,
            max_delay=self._retry_max_delay,
            operation=f"model_call:{unit.url}",
        )
