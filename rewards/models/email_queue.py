"""
Outbound email queue.
"""
from ..extensions import db
from ..utils.clock import utcnow


class EmailQueue(db.Model):
    """
    Emails waiting to be sent. Producers insert 'pending' rows and move on;
    `flask rewards send-emails` drains the queue through SendGrid.
    """
    __tablename__ = 'email_queue'

    id = db.Column(db.Integer, primary_key=True)
    to_email = db.Column(db.String(255), nullable=False)
    to_name = db.Column(db.String(255))
    subject = db.Column(db.String(255), nullable=False)
    html_content = db.Column(db.Text, nullable=False)
    text_content = db.Column(db.Text)
    email_type = db.Column(db.String(50), nullable=False, default='general')  # reward_notification, ...

    status = db.Column(db.String(20), nullable=False, default='pending', index=True)  # pending, sent, failed
    attempts = db.Column(db.Integer, nullable=False, default=0)
    last_error = db.Column(db.String(500))
    sent_at = db.Column(db.DateTime)

    created_at = db.Column(db.DateTime, default=utcnow)

    def __repr__(self):
        return f'<EmailQueue {self.id}: {self.email_type} to {self.to_email} ({self.status})>'

    def to_dict(self):
        return {
            'id': self.id,
            'to_email': self.to_email,
            'to_name': self.to_name,
            'subject': self.subject,
            'email_type': self.email_type,
            'status': self.status,
            'attempts': self.attempts,
            'last_error': self.last_error,
            'sent_at': self.sent_at.isoformat() if self.sent_at else None,
            'created_at': self.created_at.isoformat() if self.created_at else None
        }
