import anyio
import polars as pl


class PolarsExecutor:
    '''
    Collects polars lazy frames on polars' own thread pool, awaiting the
    result so the event loop stays free. A capacity limiter bounds how many
    query plans run at the same time (the environment parallelism).

    '''
    def __init__(
        self,
        limit: int = 1
    ) -> None:
        if limit < 1:
            raise ValueError(f'executor limit must be >= 1, got {limit}')

        self._limiter = anyio.CapacityLimiter(limit)

    @property
    def limit(self) -> int:
        return int(self._limiter.total_tokens)

    async def collect(
        self,
        frame: pl.LazyFrame
    ) -> pl.DataFrame:
        async with self._limiter:
            return await frame.collect_async()
