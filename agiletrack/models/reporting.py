"""Progress reporting model."""

from datetime import datetime, timezone

from agiletrack.models import db

REPORT_TYPES = ("DAILY", "WEEKLY", "MONTHLY", "QUARTERLY", "MILESTONE", "FINAL")
REPORT_STATUSES = ("DRAFT", "SUBMITTED", "APPROVED", "REJECTED")


class ProgressReport(db.Model):
    """Periodic status narrative for a project, optionally approved by a sponsor."""

    __tablename__ = "progress_reports"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True
    )
    reporter_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    approver_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    report_type = db.Column(db.String(20), nullable=False, default="WEEKLY")
    status = db.Column(
        db.String(20), nullable=False, default="SUBMITTED",
        comment="DRAFT | SUBMITTED | APPROVED | REJECTED",
    )
    title = db.Column(db.String(300), nullable=False)
    # summary, achievements, challenges, next_steps, metrics snapshot, ...
    content = db.Column(db.JSON, default=dict)
    period_start = db.Column(db.Date)
    period_end = db.Column(db.Date)
    submitted_at = db.Column(db.DateTime)
    approved_at = db.Column(db.DateTime)
    review_comment = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    project = db.relationship("Project", back_populates="progress_reports")
    reporter = db.relationship("User", foreign_keys=[reporter_id])
    approver = db.relationship("User", foreign_keys=[approver_id])

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "report_type": self.report_type,
            "status": self.status,
            "title": self.title,
            "content": self.content or {},
            "period_start": self.period_start.isoformat() if self.period_start else None,
            "period_end": self.period_end.isoformat() if self.period_end else None,
            "reporter": self.reporter.to_summary() if self.reporter else None,
            "approver": self.approver.to_summary() if self.approver else None,
            "submitted_at": self.submitted_at.isoformat() if self.submitted_at else None,
            "approved_at": self.approved_at.isoformat() if self.approved_at else None,
            "review_comment": self.review_comment,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
