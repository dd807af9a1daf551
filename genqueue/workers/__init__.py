"""Worker package exports."""

from genqueue.workers.pipeline import QueueWorker, TaskHandler, default_worker_id

__all__ = ["QueueWorker", "TaskHandler", "default_worker_id"]
