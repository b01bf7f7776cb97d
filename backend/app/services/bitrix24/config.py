"""Bitrix24 mirror — constants: REST methods, field lists, limits.

Pure constants, no imports from the rest of the app.
"""

# settings table key holding the inbound webhook base URL
WEBHOOK_SETTING_KEY = "bitrix_webhook"

# REST methods consumed
METHOD_DEPARTMENTS = "department.get"
METHOD_GROUPS = "sonet_group.get"
METHOD_USERS = "user.get"
METHOD_TASKS = "tasks.task.list"
METHOD_PROFILE = "profile"

TASK_SELECT_FIELDS = [
    "ID", "PARENT_ID", "TITLE", "DESCRIPTION", "STATUS", "RESPONSIBLE_ID",
    "CREATED_BY", "GROUP_ID", "DEADLINE", "CHANGED_DATE", "STATUS_CHANGED_DATE",
    "PRIORITY", "CREATED_DATE", "COMMENTS_COUNT", "TIME_ESTIMATE",
    "TIME_SPENT_IN_LOGS", "START_DATE_PLAN", "END_DATE_PLAN", "CLOSED_DATE",
    "ACCOMPLICES", "AUDITORS", "TAGS", "UF_CRM_TASK",
]

# tasks.task.list filter key for incremental fetches
CHANGED_SINCE_FILTER = ">CHANGED_DATE"

# Bitrix24 task status meaning "completed": the active copy is dropped
FINAL_STATUS_DEFAULT = "5"

# Text columns are capped before saving
DESCRIPTION_MAX_LEN = 500_000

# Throttle between pages (seconds)
PAGE_DELAY_FULL = 0.2
PAGE_DELAY_INCREMENTAL = 0.1

# Incremental checkpoint is shifted back by this many seconds
SAFETY_WINDOW_SECONDS = 300
