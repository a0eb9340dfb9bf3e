from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Document(db.Model):
    """
    One JSON document of the tenant-scoped document store.

    A document is addressed by the path "{tenant_id}/{collection}/{doc_key}".
    The body keeps the camelCase field layout of the original datasets
    (currentStock, remainingBalance, ...), so existing exports can be loaded
    as-is.

    ORDERING: id is autoincrement; list() returns documents of a collection in
    insertion order, which is the replay order of append-only facts
    (stockMovements, oldBatteries, oldBatteryConsumptions).
    """
    __tablename__ = "documents"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "collection", "doc_key", name="uq_documents_tenant_path"),
        db.Index("ix_documents_tenant_collection", "tenant_id", "collection"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.String(128), nullable=False, index=True)
    collection = db.Column(db.String(64), nullable=False)
    doc_key = db.Column(db.String(255), nullable=False)

    body = db.Column(db.JSON, nullable=False, default=dict)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def path(self) -> str:
        return f"{self.tenant_id}/{self.collection}/{self.doc_key}"

    def __repr__(self) -> str:
        return f"<Document path={self.path!r} version={self.version_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "path": self.path,
            "body": self.body,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
