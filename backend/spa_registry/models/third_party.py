from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class ThirdPartyCredential(db.Model):
    """
    Temporary government officer account.

    WHY: External reviewers get a short-lived, read-only therapist lookup.
    expires_at is fixed at issue time (issued_at + duration) and never slides.

    Expiry is derived (now >= expires_at), never stored as a flag, and an
    expired credential is kept until an administrator revokes (deletes) it.
    Usernames are not unique across history: an expired username can be
    issued again, so uniqueness among *active* credentials is enforced
    through ThirdPartyUsernameClaim.
    """
    __tablename__ = "third_party_credentials"
    __table_args__ = (
        db.Index("ix_third_party_credentials_username_expires", "username", "expires_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(64), nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    department = db.Column(db.String(128), nullable=True)

    issued_at = db.Column(db.DateTime(timezone=True), nullable=False)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False)
    last_login_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    tokens = db.relationship(
        "ThirdPartyToken",
        backref="credential",
        lazy=True,
        cascade="all, delete-orphan",
    )

    def is_expired(self, now) -> bool:
        return now >= self.expires_at

    def status(self, now) -> str:
        return "expired" if self.is_expired(now) else "active"

    def to_dict(self, now=None) -> dict:
        data = {
            "id": self.id,
            "username": self.username,
            "department": self.department,
            "issued_at": to_utc_z(self.issued_at),
            "expires_at": to_utc_z(self.expires_at),
            "last_login_at": to_utc_z(self.last_login_at) if self.last_login_at else None,
            "created_by_user_id": self.created_by_user_id,
        }
        if now is not None:
            data["status"] = self.status(now)
        return data


class ThirdPartyToken(db.Model):
    """
    Bearer grant minted on a successful third-party login.

    Usable only while its credential is active. The periodic grant sweep
    revokes tokens of expired credentials (once each).
    """
    __tablename__ = "third_party_tokens"
    __table_args__ = (
        db.Index("ix_third_party_tokens_credential_active", "credential_id", "is_revoked"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    credential_id = db.Column(db.Integer, db.ForeignKey("third_party_credentials.id"), nullable=False, index=True)

    token_hash = db.Column(db.String(255), nullable=False, unique=True, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False)

    is_revoked = db.Column(db.Boolean, nullable=False, default=False, index=True)
    revoked_at = db.Column(db.DateTime(timezone=True), nullable=True)
    revoked_reason = db.Column(db.String(255), nullable=True)


class ThirdPartyUsernameClaim(db.Model):
    """
    One row per username ever issued: which credential holds it, and until when.

    issue() takes the claim with a conditional UPDATE (only once the previous
    holder has expired) or, for a new username, an INSERT guarded by the
    primary key. Either way concurrent issuers get exactly one winner.
    """
    __tablename__ = "third_party_username_claims"

    username = db.Column(db.String(64), primary_key=True)
    credential_id = db.Column(
        db.Integer,
        db.ForeignKey("third_party_credentials.id", ondelete="SET NULL"),
        nullable=True,
    )
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False)
