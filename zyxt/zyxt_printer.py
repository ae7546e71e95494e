"""
A pretty-printer for Zyxt values and types.
"""
from zyxt.zyxt_types import Type, TypeDefinition
from zyxt.zyxt_values import BuiltinProc, ReturnValue, UserProc, Value

_ESCAPES = {"\\": "\\\\", '"': '\\"', "\n": "\\n", "\t": "\\t", "\r": "\\r", "\0": "\\0"}


class Printer:
    """Formats Zyxt values as source-like strings."""

    def __init__(self, indent_width=2):
        self._indent_char = " " * indent_width
        self._handlers = self._create_handlers()

    def pformat(self, obj, level=0):
        """Public entry point to format an object."""
        handler = self._get_handler(obj)
        return handler(obj, level)

    def _get_handler(self, obj):
        obj_type = type(obj)
        if obj_type in self._handlers:
            return self._handlers[obj_type]
        if isinstance(obj, Type):
            return self._pformat_type
        # Syntax tree nodes render as reconstructed source
        if hasattr(obj, "reconstruct"):
            return lambda o, l: o.reconstruct()
        return lambda o, l: repr(o)

    def _create_handlers(self):
        return {
            Value: self._pformat_value,
            ReturnValue: lambda o, l: self.pformat(o.value, l),
            str: self._pformat_str,
            bool: self._pformat_bool,
            int: self._pformat_primitive,
            float: self._pformat_float,
            type(None): self._pformat_unit,
            dict: self._pformat_fields,
            BuiltinProc: self._pformat_proc,
            UserProc: self._pformat_proc,
        }

    def _pformat_value(self, obj, level):
        data = obj.data
        if isinstance(data, Type):
            return self._pformat_type(data, level)
        if isinstance(data, dict):
            return f"{obj.ty}{self._pformat_fields(data, level)}"
        return self.pformat(data, level)

    def _pformat_primitive(self, obj, level):
        return str(obj)

    def _pformat_float(self, obj, level):
        if obj != obj:
            return "nan"
        if obj in (float("inf"), float("-inf")):
            return "inf" if obj > 0 else "-inf"
        return repr(obj)

    def _pformat_str(self, obj, level):
        return '"' + "".join(_ESCAPES.get(c, c) for c in obj) + '"'

    def _pformat_bool(self, obj, level):
        return 'true' if obj else 'false'

    def _pformat_unit(self, obj, level):
        return '()'

    def _pformat_type(self, obj, level):
        if isinstance(obj, TypeDefinition) and obj.inst_fields:
            fields = ", ".join(f"{k}: {v[0]}" for k, v in obj.inst_fields.items())
            return f"{obj}{{{fields}}}"
        return str(obj)

    def _pformat_proc(self, obj, level):
        return f"<{obj.name}: {obj.ty}>"

    def _pformat_fields(self, obj, level):
        if not obj:
            return "{}"
        items = [f"{k}: {self.pformat(v, level + 1)}" for k, v in obj.items()]
        one_line = "{" + ", ".join(items) + "}"
        if len(one_line) <= 60:
            return one_line
        inner = self._indent_char * (level + 1)
        outer = self._indent_char * level
        return "{\n" + ",\n".join(inner + item for item in items) + f"\n{outer}}}"
