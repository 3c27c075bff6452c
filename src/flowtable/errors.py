class FlowTableError(Exception):
    ...


class SqlParseError(FlowTableError):
    def __init__(self, msg: str, statement: str | None = None) -> None:
        super().__init__(msg)
        self.statement = statement


class UnsupportedTypeError(FlowTableError):
    ...


class CatalogError(FlowTableError):
    ...


class TableNotFoundError(CatalogError):
    def __init__(self, name: str) -> None:
        super().__init__(f'Table {name!r} was not found')
        self.name = name


class TableAlreadyExistsError(CatalogError):
    def __init__(self, name: str) -> None:
        super().__init__(f'Table {name!r} already exists')
        self.name = name


class ConnectorError(FlowTableError):
    ...


class SinkExistsError(ConnectorError):
    '''
    Raised when a sink target is already present on disk and the insert was
    not an overwrite, remove the path or use INSERT OVERWRITE.

    '''
    def __init__(self, path) -> None:
        super().__init__(
            f'Sink path {path} already exists, delete it or insert with overwrite'
        )
        self.path = path


class ValidationError(FlowTableError):
    ...


class JobExecutionError(FlowTableError):
    ...
