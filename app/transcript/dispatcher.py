"""
Bounded-concurrency dispatch of chunks to the correction service.

Chunks go out in batches of ``concurrency_limit``. Every call in a batch
runs concurrently and the dispatcher waits for the whole batch before the
next one starts. A failure stops the dispatch once its batch has settled;
there is no partial result and no retry (retries belong to the service
client).
"""
import asyncio
import inspect
import logging
from typing import Awaitable, Callable, Optional, Sequence, Union

from app.core.errors import ChunkError, CorrectionParseError, CorrectionServiceError
from app.transcript.models import Chunk, RawCorrectionResult

logger = logging.getLogger(__name__)

PromptBuilder = Callable[[Chunk], str]
ResponseParser = Callable[[Chunk, str], RawCorrectionResult]
Invoker = Callable[[str], Awaitable[str]]
ProgressSink = Callable[[int, int], Union[None, Awaitable[None]]]


async def _default_invoke(prompt: str) -> str:
    # Imported lazily so engine code can run without a configured LLM client
    from app.core.llm_client import invoke_with_retry
    return await invoke_with_retry(prompt)


class CorrectionDispatcher:
    def __init__(
        self,
        build_prompt: PromptBuilder,
        parse_response: ResponseParser,
        concurrency_limit: int = 3,
        invoke: Optional[Invoker] = None,
        on_progress: Optional[ProgressSink] = None,
    ):
        if concurrency_limit < 1:
            raise ValueError(f"concurrency_limit must be >= 1, got {concurrency_limit}")
        self.build_prompt = build_prompt
        self.parse_response = parse_response
        self.concurrency_limit = concurrency_limit
        self.invoke = invoke or _default_invoke
        self.on_progress = on_progress
        self._pending_reports: set[asyncio.Task] = set()
        self._last_report: Optional[asyncio.Task] = None

    async def dispatch(self, chunks: Sequence[Chunk]) -> dict[int, RawCorrectionResult]:
        """Run every chunk and return one result per ``chunk_index``."""
        total = len(chunks)
        results: dict[int, RawCorrectionResult] = {}

        for batch_start in range(0, total, self.concurrency_limit):
            batch = chunks[batch_start:batch_start + self.concurrency_limit]
            logger.info(
                f"Dispatching chunks {batch[0].index}-{batch[-1].index} of {total} "
                f"(concurrency {self.concurrency_limit})"
            )
            # Issued calls are never cancelled: the batch settles before any failure is raised
            outcomes = await asyncio.gather(
                *(self._run_chunk(chunk) for chunk in batch), return_exceptions=True
            )
            failures = [o for o in outcomes if isinstance(o, BaseException)]
            if failures:
                logger.error(f"Aborting dispatch: {len(failures)} chunk(s) failed in this batch")
                raise failures[0]

            for result in outcomes:
                results[result.chunk_index] = result

            self._report_progress(len(results), total)

        return results

    async def drain_progress(self) -> None:
        """Wait for progress reports that are still being delivered."""
        if self._pending_reports:
            await asyncio.gather(*list(self._pending_reports))

    async def _run_chunk(self, chunk: Chunk) -> RawCorrectionResult:
        try:
            prompt = self.build_prompt(chunk)
        except Exception as e:
            logger.error(f"Chunk {chunk.index}: prompt building failed: {e}")
            raise ChunkError(f"prompt building failed: {e}", chunk.index) from e
        logger.debug(f"Chunk {chunk.index}: prompt length {len(prompt)}")

        try:
            response = await self.invoke(prompt)
        except Exception as e:
            logger.error(f"Chunk {chunk.index}: correction service call failed: {e}")
            raise CorrectionServiceError(str(e), chunk.index) from e

        try:
            result = self.parse_response(chunk, response)
        except CorrectionParseError as e:
            logger.error(f"Chunk {chunk.index}: unparsable response: {e.detail}")
            if e.chunk_index is None:
                raise CorrectionParseError(e.detail, chunk.index) from e
            raise
        except Exception as e:
            logger.error(f"Chunk {chunk.index}: parser failed: {e!r}")
            raise CorrectionParseError(f"unexpected parser failure: {e!r}", chunk.index) from e

        logger.info(f"Chunk {chunk.index}: received {len(result.fragments)} fragment(s)")
        return result

    def _report_progress(self, completed: int, total: int) -> None:
        """Hand progress to the sink without letting it block or fail the dispatch."""
        if self.on_progress is None:
            return
        task = asyncio.ensure_future(self._deliver(completed, total, self._last_report))
        self._last_report = task
        self._pending_reports.add(task)
        task.add_done_callback(self._pending_reports.discard)

    async def _deliver(self, completed: int, total: int, previous: Optional[asyncio.Task]) -> None:
        # Reports reach the sink in the order they were made
        if previous is not None:
            await asyncio.wait([previous])
        try:
            if inspect.iscoroutinefunction(self.on_progress):
                await self.on_progress(completed, total)
                return
            # Sync sinks run in a worker thread so a slow one cannot stall the loop
            outcome = await asyncio.to_thread(self.on_progress, completed, total)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as e:
            logger.warning(f"Progress sink failed ({completed}/{total}): {e}")
