from datetime import datetime
from sqlalchemy import Column, Integer, String, Text, Boolean, Date, Time, DateTime, ForeignKey, UniqueConstraint, Enum as SQLEnum
from sqlalchemy.orm import relationship
from server.database import Base
from server.enums import TaskStatus

# =========================================================
# DATABASE MODELS
# =========================================================
class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True)
    line_user_id = Column(String(64), unique=True, nullable=False)
    email = Column(String(255))
    notifications_enabled = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class Todo(Base):
    __tablename__ = "todos"
    id = Column(Integer, primary_key=True)
    user_id = Column(String(64), nullable=False, index=True)  # LINE user id of the owner
    label = Column(Text, nullable=False)
    deadline_date = Column(Date)
    deadline_time = Column(Time)
    status = Column(SQLEnum(TaskStatus), nullable=False, default=TaskStatus.open)
    is_notified = Column(Boolean, nullable=False, default=False)  # overdue notice sent
    email = Column(String(255))
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    reminders = relationship("TaskReminder", back_populates="task", cascade="all, delete-orphan")

    @property
    def notified_offsets(self):
        return sorted(r.offset_minutes for r in self.reminders)


class TaskReminder(Base):
    """One row per pre-deadline reminder already sent for a todo."""
    __tablename__ = "task_reminders"
    __table_args__ = (UniqueConstraint("task_id", "offset_minutes", name="uq_task_reminder_offset"),)
    id = Column(Integer, primary_key=True)
    task_id = Column(Integer, ForeignKey("todos.id", ondelete="CASCADE"), nullable=False)
    offset_minutes = Column(Integer, nullable=False)
    sent_at = Column(DateTime, default=datetime.utcnow)

    task = relationship("Todo", back_populates="reminders")
