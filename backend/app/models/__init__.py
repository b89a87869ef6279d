from .job import BackendType, Job, JobStatus
