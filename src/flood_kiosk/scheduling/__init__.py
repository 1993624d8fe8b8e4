from .scheduler import AsyncioScheduler, CancelToken, ManualScheduler, Scheduler

__all__ = ["AsyncioScheduler", "CancelToken", "ManualScheduler", "Scheduler"]
