"""Task domain models: Task (with one level of subtasks) and TaskComment."""

from datetime import datetime, timezone

from agiletrack.models import db

TASK_STATUSES = ("TODO", "IN_PROGRESS", "IN_REVIEW", "DONE", "BLOCKED")


class Task(db.Model):
    __tablename__ = "tasks"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True
    )
    phase_id = db.Column(
        db.Integer, db.ForeignKey("project_phases.id", ondelete="SET NULL"), nullable=True, index=True
    )
    parent_id = db.Column(
        db.Integer, db.ForeignKey("tasks.id", ondelete="CASCADE"), nullable=True, index=True
    )
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text)
    status = db.Column(
        db.String(20), nullable=False, default="TODO",
        comment="TODO | IN_PROGRESS | IN_REVIEW | DONE | BLOCKED",
    )
    priority = db.Column(db.String(20), nullable=False, default="MEDIUM")
    assignee_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    creator_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    estimated_hours = db.Column(db.Float, nullable=True, comment="Effort in person-hours")
    actual_hours = db.Column(db.Float, nullable=True, comment="Actual effort logged")
    due_date = db.Column(db.DateTime, nullable=True)
    completed_at = db.Column(db.DateTime, nullable=True)
    # Flags such as is_deliverable / acceptance_criteria
    meta = db.Column("metadata", db.JSON, default=dict)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    project = db.relationship("Project", back_populates="tasks")
    phase = db.relationship("ProjectPhase", back_populates="tasks")
    parent = db.relationship("Task", remote_side=[id], back_populates="subtasks")
    subtasks = db.relationship("Task", back_populates="parent", passive_deletes=True)
    assignee = db.relationship("User", foreign_keys=[assignee_id])
    creator = db.relationship("User", foreign_keys=[creator_id])
    comments = db.relationship(
        "TaskComment", back_populates="task", lazy="dynamic",
        cascade="all, delete-orphan", passive_deletes=True,
        order_by="TaskComment.created_at",
    )

    __table_args__ = (
        db.Index("ix_tasks_project_status", "project_id", "status"),
    )

    def to_dict(self, include_subtasks=False):
        d = {
            "id": self.id,
            "project_id": self.project_id,
            "phase_id": self.phase_id,
            "parent_id": self.parent_id,
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "priority": self.priority,
            "assignee_id": self.assignee_id,
            "assignee": self.assignee.to_summary() if self.assignee else None,
            "creator_id": self.creator_id,
            "estimated_hours": self.estimated_hours,
            "actual_hours": self.actual_hours,
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "metadata": self.meta or {},
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_subtasks:
            d["subtasks"] = [s.to_dict() for s in self.subtasks]
        return d

    def __repr__(self):
        return f"<Task {self.id}: {self.title[:40]}>"


class TaskComment(db.Model):
    __tablename__ = "task_comments"

    id = db.Column(db.Integer, primary_key=True)
    task_id = db.Column(
        db.Integer, db.ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True
    )
    author_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    content = db.Column(db.Text, nullable=False)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    task = db.relationship("Task", back_populates="comments")
    author = db.relationship("User")

    def to_dict(self):
        return {
            "id": self.id,
            "task_id": self.task_id,
            "content": self.content,
            "author": self.author.to_summary() if self.author else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
