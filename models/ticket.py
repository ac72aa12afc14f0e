from extensions import db

from datetime import datetime, timezone


TICKET_STATUSES = ("open", "in_progress", "resolved", "closed")
TICKET_PRIORITIES = ("low", "medium", "high", "urgent")

# Статусы, при входе в которые проставляется resolved_at
FINAL_STATUSES = ("resolved", "closed")


class Ticket(db.Model):
    __tablename__ = "tickets"
    __table_args__ = (
        db.Index('idx_tickets_user_email_status', 'user_email', 'status'),
    )
    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=False)
    status = db.Column(db.String(20), nullable=False, default="open", index=True)
    priority = db.Column(db.String(20), nullable=False, default="medium")
    category = db.Column(db.String(100))

    # Владелец тикета: email для REST-бэкенда, id для локальных пользователей
    user_email = db.Column(db.String(255), nullable=False)
    created_by = db.Column(db.String(64))

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime(timezone=True), onupdate=lambda: datetime.now(timezone.utc))
    resolved_at = db.Column(db.DateTime(timezone=True))


class TicketComment(db.Model):
    __tablename__ = "ticket_comments"

    id = db.Column(db.Integer, primary_key=True)
    ticket_id = db.Column(
        db.Integer,
        db.ForeignKey('tickets.id', ondelete='CASCADE'),
        nullable=False,
        index=True
    )
    user_email = db.Column(db.String(255), nullable=False)
    author_name = db.Column(db.String(100))
    comment = db.Column(db.Text, nullable=False)
    is_internal = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
