from .context import RunContext, RunParameters
from .engine import FrontierPipeline
