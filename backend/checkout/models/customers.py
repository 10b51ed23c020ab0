from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class BranchClient(db.Model):
    """
    Client known to a branch (registered user or walk-in identified by DNI).

    Created on demand when a sale is left partially paid, so the branch can
    follow up the outstanding balance.

    client_key is "user:<id>" or "dni:<value>" and makes registration
    idempotent per branch.
    """
    __tablename__ = "branch_clients"
    __table_args__ = (
        db.UniqueConstraint("branch_id", "client_key", name="uq_branch_clients_branch_key"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    client_key = db.Column(db.String(96), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    client_dni = db.Column(db.String(64), nullable=True, index=True)
    client_name = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    branch = db.relationship("Branch")
    user = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "user_id": self.user_id,
            "client_dni": self.client_dni,
            "client_name": self.client_name,
            "created_at": to_utc_z(self.created_at),
        }
