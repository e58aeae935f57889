"""
crawlcore

A concurrent web crawler: bounded worker pool, deduplicating frontier with
per-domain parallelism limits, and explicit completion tracking.
"""

__version__ = "1.0.0"
__description__ = "Concurrent web crawler core with frontier, worker pool and completion tracking"
