'''
msgspec base structs for settings, catalog entries and parsed statements.

Only builtin types travel through `to_dict` / `to_json`, the hooks below
cover the few extra types those structs carry.

'''
from pathlib import Path
from typing import Any, Self

import msgspec


def enc_hook(obj: Any) -> Any:
    match obj:
        case Path():
            return str(obj)

    raise NotImplementedError(f'Objects of type {type(obj)} are not supported')


def dec_hook(type: type, obj: Any) -> Any:
    if type is Path:
        return Path(obj)

    raise NotImplementedError(f'Objects of type {type} are not supported')


_json_encoder = msgspec.json.Encoder(enc_hook=enc_hook)


class _Struct:
    @classmethod
    def from_other(cls, other: Self, **kwargs) -> Self:
        '''
        Copy of `other` with some fields replaced, the result is validated
        the same way a decoded struct is.

        '''
        params = other.to_dict()
        params.update(kwargs)
        return cls.convert(params)

    @classmethod
    def from_json(cls, s: str | bytes) -> Self:
        return msgspec.json.decode(s, type=cls, dec_hook=dec_hook)

    @classmethod
    def convert(cls, obj: Any) -> Self:
        return msgspec.convert(obj, type=cls, dec_hook=dec_hook)

    def to_dict(self) -> dict:
        return msgspec.to_builtins(self, enc_hook=enc_hook)

    def to_json(self) -> str:
        return _json_encoder.encode(self).decode()


class FrozenStruct(msgspec.Struct, _Struct, frozen=True): ...
