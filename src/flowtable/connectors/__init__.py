from __future__ import annotations

from pathlib import Path

from flowtable.connectors.base import Connector as Connector
from flowtable.connectors.base import StagedWrite as StagedWrite
from flowtable.connectors.blackhole import BlackHoleConnector as BlackHoleConnector
from flowtable.connectors.filesystem import FileSystemConnector as FileSystemConnector
from flowtable.connectors.printer import PrintConnector as PrintConnector
from flowtable.errors import ConnectorError
from flowtable.schema import Schema


_registry: dict[str, type[Connector]] = {}


def register_connector(cls: type[Connector]) -> type[Connector]:
    '''
    Make a connector class available under its `identifier`, usable as a
    class decorator.

    '''
    _registry[cls.identifier] = cls
    return cls


def connector_for(identifier: str) -> type[Connector]:
    try:
        return _registry[identifier]

    except KeyError:
        raise ConnectorError(
            f'Unknown connector {identifier!r}, available: '
            f'{", ".join(sorted(_registry))}'
        ) from None


def create_connector(
    table: str,
    schema: Schema,
    options: dict[str, str],
    *,
    datadir: Path,
) -> Connector:
    identifier = options.get('connector')
    if not identifier:
        raise ConnectorError(f'Table {table!r} has no \'connector\' option')

    return connector_for(identifier)(table, schema, options, datadir=datadir)


for _cls in (FileSystemConnector, PrintConnector, BlackHoleConnector):
    register_connector(_cls)
