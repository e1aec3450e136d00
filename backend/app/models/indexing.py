from datetime import datetime

from app.extensions import db


class IndexingQueueItem(db.Model):
    __tablename__ = "indexing_queue"

    id = db.Column(db.Integer, primary_key=True)
    url = db.Column(db.String(1024), nullable=False)
    # URL_UPDATED | URL_DELETED
    action = db.Column(db.String(24), nullable=False, default="URL_UPDATED")
    # pending | submitted | failed | queued_no_credentials
    status = db.Column(db.String(32), nullable=False, default="pending", index=True)
    attempts = db.Column(db.Integer, nullable=False, default=0)
    last_error = db.Column(db.String(240), nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    submitted_at = db.Column(db.DateTime, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "url": self.url,
            "action": self.action,
            "status": self.status,
            "attempts": int(self.attempts or 0),
            "last_error": self.last_error or "",
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "submitted_at": self.submitted_at.isoformat() if self.submitted_at else None,
        }
