from __future__ import annotations

from flowtable.schema import Schema, SchemaLike, SchemaMeta
from flowtable.structs import FrozenStruct


class FormatDescriptor(FrozenStruct, frozen=True):
    '''
    A format and its options, keys are relative to the format (`field-delimiter`
    rather than `csv.field-delimiter`).

    '''
    format: str
    options: dict[str, str] = {}

    @staticmethod
    def for_format(format: str) -> FormatDescriptorBuilder:
        return FormatDescriptorBuilder(format)

    def to_options(self) -> dict[str, str]:
        opts = {'format': self.format}
        opts.update(
            (f'{self.format}.{key}', value)
            for key, value in self.options.items()
        )
        return opts


class FormatDescriptorBuilder:
    def __init__(self, format: str) -> None:
        self._format = format
        self._options: dict[str, str] = {}

    def option(self, key: str, value: object) -> FormatDescriptorBuilder:
        self._options[key] = _option_str(value)
        return self

    def build(self) -> FormatDescriptor:
        return FormatDescriptor(format=self._format, options=dict(self._options))


class TableDescriptor(FrozenStruct, frozen=True):
    '''
    Connector backed table definition, the programmatic twin of a
    `CREATE TABLE ... WITH (...)` statement.

    '''
    connector: str
    schema: SchemaMeta | None = None
    options: dict[str, str] = {}
    comment: str | None = None

    @staticmethod
    def for_connector(connector: str) -> TableDescriptorBuilder:
        return TableDescriptorBuilder(connector)

    def get_schema(self) -> Schema | None:
        return Schema.from_like(self.schema) if self.schema else None

    def to_options(self) -> dict[str, str]:
        return {'connector': self.connector, **self.options}


class TableDescriptorBuilder:
    def __init__(self, connector: str) -> None:
        self._connector = connector
        self._schema: Schema | None = None
        self._options: dict[str, str] = {}
        self._comment: str | None = None

    def schema(self, schema: SchemaLike) -> TableDescriptorBuilder:
        self._schema = Schema.from_like(schema)
        return self

    def option(self, key: str, value: object) -> TableDescriptorBuilder:
        self._options[key] = _option_str(value)
        return self

    def format(
        self,
        format: str | FormatDescriptor
    ) -> TableDescriptorBuilder:
        if isinstance(format, str):
            format = FormatDescriptor(format=format)

        self._options.update(format.to_options())
        return self

    def comment(self, comment: str) -> TableDescriptorBuilder:
        self._comment = comment
        return self

    def build(self) -> TableDescriptor:
        return TableDescriptor(
            connector=self._connector,
            schema=self._schema.encode() if self._schema else None,
            options=dict(self._options),
            comment=self._comment,
        )


def _option_str(value: object) -> str:
    # option values are strings, as they would be written in DDL
    if isinstance(value, bool):
        return 'true' if value else 'false'

    return str(value)
