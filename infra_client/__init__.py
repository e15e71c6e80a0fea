from .client import cancel_job, get_job_status, submit_job, wait_for_job

__all__ = ["cancel_job", "get_job_status", "submit_job", "wait_for_job"]
