"""Periodic maintenance jobs."""
from app.jobs.cleanup import cleanup_loop, run_cleanup_cycle

__all__ = ["cleanup_loop", "run_cleanup_cycle"]
