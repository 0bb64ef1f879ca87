from datetime import datetime
from models import db
from models.base import BaseModel, utcnow

ATTENDANCE_STATUSES = ('present', 'absent', 'late', 'half-day', 'work-from-home', 'on-leave')
REGULARIZATION_STATUSES = ('pending', 'approved', 'rejected')
DEVICE_TYPES = ('mobile', 'desktop', 'tablet')

HALF_DAY_HOURS = 4


def at_clock(day, hhmm):
    """datetime for `hhmm` ("09:00") on `day`."""
    return datetime.strptime(f"{day.isoformat()} {hhmm}", '%Y-%m-%d %H:%M')


class Attendance(BaseModel):
    """One row per employee per working day. Times are institute-local."""
    __tablename__ = 'attendance'
    __table_args__ = (db.UniqueConstraint('employee_id', 'work_date', name='uq_attendance_day'),)

    attendance_id = db.Column(db.String(20), primary_key=True)
    employee_id = db.Column(db.String(20), db.ForeignKey('employees.employee_id'), nullable=False)
    work_date = db.Column(db.Date, nullable=False, index=True)
    check_in_time = db.Column(db.DateTime)
    check_out_time = db.Column(db.DateTime)
    status = db.Column(db.String(20), nullable=False, default='present')
    working_hours = db.Column(db.Float, nullable=False, default=0)
    break_minutes = db.Column(db.Integer, nullable=False, default=0)
    overtime = db.Column(db.Float, nullable=False, default=0)
    location = db.Column(db.JSON, default=dict)
    notes = db.Column(db.String(500))
    is_late_arrival = db.Column(db.Boolean, nullable=False, default=False)
    is_early_departure = db.Column(db.Boolean, nullable=False, default=False)
    approved_by = db.Column(db.String(20), db.ForeignKey('users.user_id'))
    device_type = db.Column(db.String(10), nullable=False, default='desktop')

    regularization_requested = db.Column(db.Boolean, nullable=False, default=False)
    regularization_reason = db.Column(db.String(500))
    regularization_status = db.Column(db.String(10))
    regularization_requested_at = db.Column(db.DateTime)
    regularization_reviewed_by = db.Column(db.String(20), db.ForeignKey('users.user_id'))
    regularization_reviewed_at = db.Column(db.DateTime)

    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    employee = db.relationship('Employee', back_populates='attendance')

    def record_check_in(self, at, work_start):
        self.check_in_time = at
        self.is_late_arrival = at > at_clock(self.work_date, work_start)
        if self.status != 'work-from-home':
            self.status = 'late' if self.is_late_arrival else 'present'

    def record_check_out(self, at, work_end, standard_hours=8):
        self.check_out_time = at
        self.recalculate(work_end, standard_hours)

    def recalculate(self, work_end, standard_hours=8):
        if not (self.check_in_time and self.check_out_time):
            return
        worked = (self.check_out_time - self.check_in_time).total_seconds() / 3600
        worked -= (self.break_minutes or 0) / 60
        self.working_hours = round(max(worked, 0), 2)
        self.overtime = round(max(self.working_hours - standard_hours, 0), 2)
        self.is_early_departure = self.check_out_time < at_clock(self.work_date, work_end)
        if self.working_hours < HALF_DAY_HOURS and self.status in ('present', 'late'):
            self.status = 'half-day'

    def to_dict(self):
        data = super().to_dict()
        if self.employee is not None:
            data['employee_code'] = self.employee.employee_code
            if self.employee.user is not None:
                data['employee_name'] = self.employee.user.full_name
        return data
