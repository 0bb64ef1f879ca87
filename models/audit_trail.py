from models import db
from models.base import BaseModel, utcnow


class AuditTrail(BaseModel):
    __tablename__ = 'audit_trail'
    audit_id = db.Column(db.String(20), primary_key=True)
    email = db.Column(db.String(120))
    role = db.Column(db.String(20))
    table_name = db.Column(db.String(50))
    record_id = db.Column(db.String(30))
    operation = db.Column(db.String(50))
    change_datetime = db.Column(db.DateTime, default=utcnow)
    action_desc = db.Column(db.String(10000))
