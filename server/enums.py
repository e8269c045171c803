import enum
# =========================================================
# ENUMS
# =========================================================
class TaskStatus(str, enum.Enum):
    open = "open"
    done = "done"
