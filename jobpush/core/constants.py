# jobpush/core/constants.py
"""Fixed names shared by the notifiers, the store and the trigger adapter."""

# Collections in the document store
USERS_COLLECTION = "users"
JOBS_COLLECTION = "jobs"

# Worker fan-out page size (documents per query)
WORKER_PAGE_SIZE = 500

# Trigger event kinds
EVENT_JOB_CREATED = "jobs.created"
EVENT_JOB_UPDATED = "jobs.updated"

# Notification titles
NEW_JOB_TITLE = "New Job Request"
JOB_STATUS_TITLE = "Job Status Update"
