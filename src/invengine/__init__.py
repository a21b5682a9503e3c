"""
invengine - AI-assisted investigation orchestration engine

Turns a free-text problem description into a phased root-cause
investigation over telemetry query results, and synthesizes a report
from the evidence it collects.
"""

__version__ = "0.1.0"

# Core API exports
from .config import InvengineConfig
from .controller import InvestigationController, create_controller
from .models import InvestigationOptions, InvestigationProblem

__all__ = [
    "InvengineConfig",
    "InvestigationController",
    "InvestigationOptions",
    "InvestigationProblem",
    "create_controller",
    "__version__",
]
