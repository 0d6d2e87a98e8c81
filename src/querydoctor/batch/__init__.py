"""
Batch analysis across many databases.

Module structure:
- models.py: Targets, per-target results, summary
- cache.py: Shared TTL/LRU result cache and cache keys
- events.py: Progress events and sinks
- targets.py: Target analyzers (what runs for each database)
- orchestrator.py: Bounded-concurrency runner with retries and timeouts
"""

from querydoctor.batch.cache import ResultCache, cache_key, target_fingerprint
from querydoctor.batch.events import BatchEvent, BatchEventType, InMemoryEventSink, LoggingEventSink
from querydoctor.batch.models import (
    AnalysisTarget,
    BatchAnalysisResult,
    BatchResult,
    BatchStatus,
    BatchSummary,
    HealthDistribution,
    TargetHealth,
    TargetPriority,
)
from querydoctor.batch.orchestrator import BatchOrchestrator, summarize
from querydoctor.batch.targets import PipelineTargetAnalyzer, health_score

__all__ = [
    "AnalysisTarget",
    "BatchAnalysisResult",
    "BatchEvent",
    "BatchEventType",
    "BatchOrchestrator",
    "BatchResult",
    "BatchStatus",
    "BatchSummary",
    "HealthDistribution",
    "InMemoryEventSink",
    "LoggingEventSink",
    "PipelineTargetAnalyzer",
    "ResultCache",
    "TargetHealth",
    "TargetPriority",
    "cache_key",
    "health_score",
    "summarize",
    "target_fingerprint",
]
