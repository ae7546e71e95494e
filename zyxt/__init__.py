from zyxt.zyxt_config import RunConfig, load_config
from zyxt.zyxt_errors import CliError, ParseError, ScopeError, TypeCheckError, ZError, ZRuntimeError
from zyxt.zyxt_runtime import ExecutionResult, ScriptRunner

__version__ = "0.1.0"

__all__ = [
    "RunConfig", "load_config",
    "ZError", "ParseError", "TypeCheckError", "ScopeError", "ZRuntimeError", "CliError",
    "ExecutionResult", "ScriptRunner",
]
