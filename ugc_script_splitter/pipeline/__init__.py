"""Generation pipeline: prompts, resilience, JSON recovery, orchestration.

WHY: Turning text chunks into structured segments means many calls to an
unreliable upstream model. This package holds everything between the
segmenter and the HTTP boundary.

HOW: errors.py defines the failure taxonomy, resilience.py wraps calls
with timeout/retry/bounded concurrency, json_recovery.py turns raw model
text into JSON, prompts.py assembles the per-kind requests, and
orchestrator.py runs the whole thing.

RULES:
- Every upstream call goes through resilience + JSON recovery
- GenerationService never reads the environment; PipelineSettings is passed in
"""
