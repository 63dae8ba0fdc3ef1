"""Project domain models: Organization -> Project -> Phase."""

from datetime import datetime, timezone

from agiletrack.models import db

PROJECT_METHODOLOGIES = ("AGILE", "WATERFALL", "HYBRID", "KANBAN", "SCRUM")
PROJECT_STATUSES = ("DRAFT", "PLANNING", "ACTIVE", "ON_HOLD", "COMPLETED", "CANCELLED")
PRIORITIES = ("LOW", "MEDIUM", "HIGH", "CRITICAL")
PROJECT_TEMPLATES = ("GOVERNMENT", "NGO", "CORPORATE", "AGILE", "WATERFALL", "CUSTOM")
PHASE_STATUSES = ("PLANNED", "NOT_STARTED", "IN_PROGRESS", "COMPLETED", "ON_HOLD")

# Phase names seeded when a project is created from a template
TEMPLATE_PHASES = {
    "GOVERNMENT": ["Planning", "Requirements", "Design", "Implementation", "Testing", "Deployment", "Closure"],
    "NGO": ["Planning", "Community Engagement", "Implementation", "Monitoring", "Evaluation"],
    "CORPORATE": ["Discovery", "Planning", "Development", "Testing", "Release", "Support"],
    "AGILE": ["Sprint 0", "Sprint Planning", "Development Sprints", "Release", "Retrospective"],
    "WATERFALL": ["Requirements", "Design", "Implementation", "Testing", "Deployment", "Maintenance"],
    "CUSTOM": ["Planning", "Execution", "Monitoring", "Closure"],
}


class Project(db.Model):
    """Unit of delivery owned by exactly one organization."""

    __tablename__ = "projects"

    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(
        db.Integer,
        db.ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    methodology = db.Column(
        db.String(20), nullable=False, default="AGILE",
        comment="AGILE | WATERFALL | HYBRID | KANBAN | SCRUM",
    )
    status = db.Column(
        db.String(20), nullable=False, default="PLANNING",
        comment="DRAFT | PLANNING | ACTIVE | ON_HOLD | COMPLETED | CANCELLED",
    )
    priority = db.Column(
        db.String(20), nullable=False, default="MEDIUM",
        comment="LOW | MEDIUM | HIGH | CRITICAL",
    )
    template = db.Column(db.String(20), nullable=False, default="CUSTOM")
    start_date = db.Column(db.Date, nullable=True)
    end_date = db.Column(db.Date, nullable=True)
    budget = db.Column(db.Numeric(14, 2, asdecimal=False), nullable=True)
    currency = db.Column(db.String(3), nullable=False, default="USD")
    # Free-form: wizard sections, tags, programme (PQG) keys
    meta = db.Column("metadata", db.JSON, default=dict)
    settings = db.Column(db.JSON, default=dict)
    created_by_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    organization = db.relationship("Organization", back_populates="projects")
    created_by = db.relationship("User", foreign_keys=[created_by_id])
    phases = db.relationship(
        "ProjectPhase", back_populates="project", lazy="dynamic",
        cascade="all, delete-orphan", passive_deletes=True,
        order_by="ProjectPhase.order",
    )
    tasks = db.relationship(
        "Task", back_populates="project", lazy="dynamic",
        cascade="all, delete-orphan", passive_deletes=True,
    )
    budgets = db.relationship(
        "ProjectBudget", back_populates="project", lazy="dynamic",
        cascade="all, delete-orphan", passive_deletes=True,
    )
    progress_reports = db.relationship(
        "ProgressReport", back_populates="project", lazy="dynamic",
        cascade="all, delete-orphan", passive_deletes=True,
    )

    __table_args__ = (
        db.Index("ix_projects_org_status", "organization_id", "status"),
    )

    def to_dict(self) -> dict:
        """Serialize core project fields for API responses."""
        return {
            "id": self.id,
            "organization_id": self.organization_id,
            "name": self.name,
            "description": self.description,
            "methodology": self.methodology,
            "status": self.status,
            "priority": self.priority,
            "template": self.template,
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "budget": self.budget,
            "currency": self.currency,
            "metadata": self.meta or {},
            "settings": self.settings or {},
            "created_by_id": self.created_by_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Project {self.id}: {self.name}>"


class ProjectPhase(db.Model):
    __tablename__ = "project_phases"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer,
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text)
    order = db.Column(db.Integer, nullable=False, default=0)
    status = db.Column(
        db.String(20), nullable=False, default="PLANNED",
        comment="PLANNED | NOT_STARTED | IN_PROGRESS | COMPLETED | ON_HOLD",
    )
    start_date = db.Column(db.Date)
    end_date = db.Column(db.Date)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    project = db.relationship("Project", back_populates="phases")
    tasks = db.relationship("Task", back_populates="phase", lazy="dynamic")

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "name": self.name,
            "description": self.description,
            "order": self.order,
            "status": self.status,
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "end_date": self.end_date.isoformat() if self.end_date else None,
        }
