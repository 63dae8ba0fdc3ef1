"""
AgileTrack Pro
Finance models.

Tables:
    1. project_budgets  One row per (project, category) with running totals
    2. expenses         Expense ledger entries submitted against a budget row

Invariants kept by ``budget_service`` / ``expense_service``:
    - allocated_amount is never edited below spent_amount (approvals may
      still overspend, which is what utilization > 100% reports)
    - spent_amount only moves when an expense is approved
    - an expense leaves PENDING exactly once
"""

import uuid
from datetime import datetime, timezone

from agiletrack.models import db

EXPENSE_PENDING = "PENDING"
EXPENSE_APPROVED = "APPROVED"
EXPENSE_REJECTED = "REJECTED"
EXPENSE_STATUSES = (EXPENSE_PENDING, EXPENSE_APPROVED, EXPENSE_REJECTED)

TOTAL_CATEGORY = "TOTAL"
DEFAULT_EXPENSE_CATEGORY = "General"

# Money columns come back as float, matching the JSON the API emits.
Money = db.Numeric(14, 2, asdecimal=False)


# ═══════════════════════════════════════════════════════════════
# 1. PROJECT_BUDGETS
# ═══════════════════════════════════════════════════════════════
class ProjectBudget(db.Model):
    __tablename__ = "project_budgets"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True
    )
    category = db.Column(db.String(100), nullable=False)
    allocated_amount = db.Column(Money, nullable=False, default=0)
    spent_amount = db.Column(Money, nullable=False, default=0)
    approved_amount = db.Column(Money, nullable=False, default=0)
    # description, created_by, last_modified_by, last_modified_at
    meta = db.Column("metadata", db.JSON, default=dict)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.UniqueConstraint("project_id", "category", name="uq_budget_project_category"),
    )

    project = db.relationship("Project", back_populates="budgets")
    expenses = db.relationship(
        "Expense", back_populates="budget", lazy="dynamic",
        cascade="all, delete-orphan", passive_deletes=True,
        order_by="Expense.reported_at.desc()",
    )

    @property
    def remaining_amount(self):
        return (self.allocated_amount or 0) - (self.spent_amount or 0)

    def to_dict(self):
        meta = self.meta or {}
        return {
            "id": self.id,
            "project_id": self.project_id,
            "category": self.category,
            "allocated_amount": self.allocated_amount,
            "spent_amount": self.spent_amount,
            "approved_amount": self.approved_amount,
            "remaining_amount": self.remaining_amount,
            "description": meta.get("description"),
            "metadata": meta,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<ProjectBudget {self.id}: {self.category}>"


# ═══════════════════════════════════════════════════════════════
# 2. EXPENSES
# ═══════════════════════════════════════════════════════════════
class Expense(db.Model):
    __tablename__ = "expenses"

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    budget_id = db.Column(
        db.Integer, db.ForeignKey("project_budgets.id", ondelete="CASCADE"), nullable=False, index=True
    )
    amount = db.Column(Money, nullable=False)
    description = db.Column(db.Text, nullable=False)
    expense_date = db.Column(db.Date, nullable=False)
    status = db.Column(
        db.String(20), nullable=False, default=EXPENSE_PENDING,
        comment="PENDING | APPROVED | REJECTED",
    )
    reported_by_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    reported_at = db.Column(db.DateTime, nullable=False, default=lambda: datetime.now(timezone.utc))
    approved_by_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    approved_at = db.Column(db.DateTime, nullable=True)
    # "<budget_id>_<reported_at ISO>" for entries imported from the metadata ledger
    legacy_ref = db.Column(db.String(120), nullable=True, unique=True)

    __table_args__ = (
        db.CheckConstraint("amount > 0", name="ck_expense_amount_positive"),
        db.Index("ix_expenses_budget_status", "budget_id", "status"),
    )

    budget = db.relationship("ProjectBudget", back_populates="expenses")
    reported_by = db.relationship("User", foreign_keys=[reported_by_id])
    approved_by = db.relationship("User", foreign_keys=[approved_by_id])

    def to_dict(self):
        budget = self.budget
        return {
            "id": self.id,
            "budget_id": self.budget_id,
            "project_id": budget.project_id if budget else None,
            "project_name": budget.project.name if budget and budget.project else None,
            "category": budget.category if budget else None,
            "amount": self.amount,
            "description": self.description,
            "expense_date": self.expense_date.isoformat() if self.expense_date else None,
            "status": self.status,
            "reported_by": self.reported_by.to_summary() if self.reported_by else None,
            "reported_at": self.reported_at.isoformat() if self.reported_at else None,
            "approved_by": self.approved_by.to_summary() if self.approved_by else None,
            "approved_at": self.approved_at.isoformat() if self.approved_at else None,
        }

    def __repr__(self):
        return f"<Expense {self.id}: {self.amount} {self.status}>"
