from datetime import datetime

from werkzeug.security import generate_password_hash, check_password_hash

from app.extensions import db


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)

    display_name = db.Column(db.String(120), nullable=False, default="")
    email = db.Column(db.String(255), unique=True, index=True, nullable=False)
    phone = db.Column(db.String(32), nullable=True)
    password_hash = db.Column(db.String(255), nullable=False)

    # user | moderator | admin
    role = db.Column(db.String(32), nullable=False, default="user")
    is_verified = db.Column(db.Boolean, nullable=False, default=False)
    is_suspended = db.Column(db.Boolean, nullable=False, default=False)

    # KYC: not_started | pending | approved | rejected
    kyc_status = db.Column(db.String(24), nullable=False, default="not_started")
    kyc_documents_submitted = db.Column(db.Boolean, nullable=False, default=False)
    kyc_verified_at = db.Column(db.DateTime, nullable=True)

    address_line1 = db.Column(db.String(255), nullable=True)
    city = db.Column(db.String(120), nullable=True)
    postal_code = db.Column(db.String(32), nullable=True)
    country = db.Column(db.String(64), nullable=True, default="RO")

    iban = db.Column(db.String(64), nullable=True)
    account_number = db.Column(db.String(32), nullable=True)
    sort_code = db.Column(db.String(16), nullable=True)
    stripe_account_id = db.Column(db.String(120), nullable=True)
    paypal_email = db.Column(db.String(255), nullable=True)

    withdrawal_blocked = db.Column(db.Boolean, nullable=False, default=False)
    fraud_score = db.Column(db.Integer, nullable=False, default=0)
    last_login_ip = db.Column(db.String(64), nullable=True, index=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    def set_password(self, raw_password: str) -> None:
        self.password_hash = generate_password_hash(raw_password)

    def check_password(self, raw_password: str) -> bool:
        return check_password_hash(self.password_hash, raw_password)

    @property
    def is_admin(self) -> bool:
        return (self.role or "").strip().lower() == "admin"

    def to_dict(self, *, include_private: bool = False) -> dict:
        payload = {
            "id": self.id,
            "display_name": self.display_name or "",
            "role": self.role or "user",
            "is_verified": bool(self.is_verified),
            "kyc_status": self.kyc_status or "not_started",
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
        if include_private:
            payload.update(
                {
                    "email": self.email,
                    "phone": self.phone or "",
                    "is_suspended": bool(self.is_suspended),
                    "withdrawal_blocked": bool(self.withdrawal_blocked),
                    "kyc_documents_submitted": bool(self.kyc_documents_submitted),
                    "has_stripe_account": bool((self.stripe_account_id or "").strip()),
                    "fraud_score": int(self.fraud_score or 0),
                }
            )
        return payload
