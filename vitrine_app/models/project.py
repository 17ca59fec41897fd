# vitrine_app/models/project.py
from __future__ import annotations
from ..extensions import db
from ..timeutils import utcnow

class Project(db.Model):
    """Item à venda. Somente leitura para o núcleo de pagamentos."""
    __tablename__ = "projects"
    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, default="")
    # preço em R$ com 2 casas
    price = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    active = db.Column(db.Boolean, default=True)

    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)
