__version__ = "1.0.1"

from .artillery import ArtilleryWrapper, ExecutionResult, QuickTestRequest, RunOptions
from .config import ExecutionConfig, load_config
from .errors import ArtilleryError
from .summary import ResultSummary, summarize
from .tools import ArtilleryTools, ToolOutput

__all__ = [
    "__version__",
    "ArtilleryError",
    "ArtilleryTools",
    "ArtilleryWrapper",
    "ExecutionConfig",
    "ExecutionResult",
    "QuickTestRequest",
    "ResultSummary",
    "RunOptions",
    "ToolOutput",
    "load_config",
    "summarize",
]
