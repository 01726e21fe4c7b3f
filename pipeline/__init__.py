"""
Pipeline package -- run logging for the CEDA harvester.

Re-exports key entry points so callers can do::

    from pipeline import PipelineLogger, StageReport
"""

from pipeline.logging import PipelineLogger, StageReport

__all__ = [
    "PipelineLogger",
    "StageReport",
]
