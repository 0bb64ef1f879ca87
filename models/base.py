from datetime import datetime, date, timezone
from models import db


def utcnow():
    """Naive UTC timestamp, the form every DateTime column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def serialize_value(value):
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


class BaseModel(db.Model):
    """Base model to inherit common properties."""
    __abstract__ = True

    # Columns left out of to_dict()
    __hidden_fields__ = ()

    @classmethod
    def get(cls, record_id):
        """Retrieve a record by primary key, or None."""
        if record_id is None:
            return None
        return db.session.get(cls, record_id)

    def update_from(self, data, fields):
        """Copy the keys of `data` listed in `fields` onto the record."""
        changed = []
        for field in fields:
            if field in data:
                setattr(self, field, data[field])
                changed.append(field)
        return changed

    def to_dict(self):
        return {
            column.name: serialize_value(getattr(self, column.name))
            for column in self.__table__.columns
            if column.name not in self.__hidden_fields__
        }
