from . import escalations, jobs, tasks

__all__ = ["escalations", "jobs", "tasks"]
