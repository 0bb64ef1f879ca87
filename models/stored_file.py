from models import db
from models.base import BaseModel, utcnow

BUCKETS = ('research_papers', 'profile_images', 'documents')


class StoredFile(BaseModel):
    """Uploaded file content kept in the database, grouped by bucket."""
    __tablename__ = 'stored_files'
    __hidden_fields__ = ('data',)

    file_id = db.Column(db.String(20), primary_key=True)
    bucket = db.Column(db.String(30), nullable=False, index=True)
    filename = db.Column(db.String(255), nullable=False)
    original_name = db.Column(db.String(255))
    content_type = db.Column(db.String(120))
    size = db.Column(db.Integer, nullable=False, default=0)
    data = db.Column(db.LargeBinary, nullable=False)
    owner_id = db.Column(db.String(20), db.ForeignKey('users.user_id'), index=True)
    file_metadata = db.Column(db.JSON, default=dict)
    upload_date = db.Column(db.DateTime, default=utcnow)

    def __repr__(self):
        return f"<StoredFile {self.file_id} {self.bucket}/{self.filename}>"
