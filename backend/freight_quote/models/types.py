import enum

from sqlalchemy import Enum as SAEnum


class CaseInsensitiveEnum(SAEnum):
    """Enum column storing lowercase values; accepts any casing on write.

    Status strings arrive from provider payloads in whatever case the
    provider uses ("CONFIRMED", "Pending"), so both bind and result values are
    folded to lowercase before the enum lookup.
    """

    def __init__(self, enum_cls, **kwargs):
        self._enum_cls = enum_cls
        self._enum_kwargs = kwargs.copy()
        kwargs.setdefault("values_callable", lambda members: [m.value for m in members])
        super().__init__(enum_cls, **kwargs)

    def adapt(self, impltype, **kw):
        return CaseInsensitiveEnum(self._enum_cls, **{**self._enum_kwargs, **kw})

    @staticmethod
    def _fold(value):
        if isinstance(value, enum.Enum):
            value = value.value
        if isinstance(value, str):
            return value.strip().lower()
        return value

    def bind_processor(self, dialect):
        parent = super().bind_processor(dialect)

        def process(value):
            if value is None:
                return None
            value = self._fold(value)
            return parent(value) if parent else value

        return process

    def result_processor(self, dialect, coltype):
        parent = super().result_processor(dialect, coltype)

        def process(value):
            if value is None:
                return None
            value = self._fold(value)
            return parent(value) if parent else value

        return process
