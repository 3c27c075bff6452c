from __future__ import annotations

import polars as pl

from flowtable.connectors.base import Connector, StagedWrite
from flowtable.lowlevel import PolarsExecutor


class BlackHoleConnector(Connector):
    '''
    Sink that runs the query and discards its rows.

    '''
    identifier = 'blackhole'

    async def stage(
        self,
        frame: pl.LazyFrame,
        *,
        overwrite: bool,
        executor: PolarsExecutor,
    ) -> StagedWrite:
        df = await executor.collect(frame.select(pl.len()))
        return StagedWrite(df.item())
