from models import db
from models.base import BaseModel, utcnow

DEPARTMENTS = (
    'Human Resources', 'Information Technology', 'Finance', 'Marketing',
    'Research & Development', 'Operations', 'Administration', 'Legal',
    'Customer Support', 'Sales'
)
EMPLOYMENT_STATUSES = ('active', 'inactive', 'terminated', 'on-leave')


class Employee(BaseModel):
    __tablename__ = 'employees'

    employee_id = db.Column(db.String(20), primary_key=True)
    user_id = db.Column(db.String(20), db.ForeignKey('users.user_id'), unique=True, nullable=False)
    employee_code = db.Column(db.String(10), unique=True, nullable=False)
    department = db.Column(db.String(40), nullable=False)
    position = db.Column(db.String(100), nullable=False)
    phone = db.Column(db.String(30))
    date_of_joining = db.Column(db.Date)
    employment_status = db.Column(db.String(20), nullable=False, default='active')
    work_start = db.Column(db.String(5), nullable=False, default='09:00')
    work_end = db.Column(db.String(5), nullable=False, default='17:00')
    manager_id = db.Column(db.String(20), db.ForeignKey('users.user_id'))
    created_by = db.Column(db.String(20), db.ForeignKey('users.user_id'))
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    user = db.relationship('User', back_populates='employee', foreign_keys=[user_id])
    attendance = db.relationship('Attendance', back_populates='employee',
                                 cascade='all, delete-orphan')

    @staticmethod
    def next_code():
        """One past the highest code in use; gaps left by removed staff stay unused."""
        highest = max((int(code[3:]) for (code,) in db.session.query(Employee.employee_code)), default=0)
        return f"EMP{highest + 1:04d}"

    def to_dict(self):
        data = super().to_dict()
        if self.user is not None:
            data.update({
                "full_name": self.user.full_name,
                "email": self.user.email,
            })
        return data
