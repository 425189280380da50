"""Background workers for async processing tasks."""

from atelier.workers.generation_worker import WorkerSignal, run_generation_worker
from atelier.workers.reaper import run_reaper_worker

__all__ = [
    "run_generation_worker",
    "run_reaper_worker",
    "WorkerSignal",
]
