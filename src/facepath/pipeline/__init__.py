"""Pipeline scheduler: bounded admission, concurrent analysis, ordered emission."""

from facepath.pipeline.reorder import ReorderBuffer
from facepath.pipeline.scheduler import FacePipeline, PipelineRun, RunSummary
from facepath.pipeline.stats import PipelineStats, StatsSnapshot

__all__ = [
    "FacePipeline",
    "PipelineRun",
    "RunSummary",
    "ReorderBuffer",
    "PipelineStats",
    "StatsSnapshot",
]
