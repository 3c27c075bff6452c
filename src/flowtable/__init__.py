'''
Glossary:
    - Table environment: entry point holding the catalog of registered tables
      and running queries and insert jobs.
    - Table: a lazy relational view, built from a registered table, in-memory
      elements or a SQL query.
    - Connector: binds a registered table to external storage (filesystem,
      print, blackhole).
    - Sink: a registered table an insert job writes into.

'''

from .descriptors import (
    FormatDescriptor as FormatDescriptor,
    TableDescriptor as TableDescriptor,
)
from .dtypes import DataTypes as DataTypes
from .environment import (
    EnvironmentSettings as EnvironmentSettings,
    StatementSet as StatementSet,
    TableEnvironment as TableEnvironment,
)
from .expressions import Expression as Expression, col as col, lit as lit
from .result import ResultKind as ResultKind, TableResult as TableResult
from .schema import Column as Column, Schema as Schema
from .table import GroupedTable as GroupedTable, Table as Table
