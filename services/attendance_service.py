import calendar
from datetime import date, datetime
import pytz
from flask import current_app
from models import db
from models.attendance import Attendance
from services.auth_services import formatting_id
from services.errors import APIError


def institute_tz():
    return pytz.timezone(current_app.config.get('INSTITUTE_TIMEZONE', 'Asia/Kolkata'))


def parse_local_datetime(value):
    """ISO 8601 string to a naive institute-local datetime."""
    parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(institute_tz()).replace(tzinfo=None)
    return parsed


def local_now():
    """Current institute-local time as a naive datetime."""
    return datetime.now(institute_tz()).replace(tzinfo=None)


def record_for(employee, day):
    return Attendance.query.filter_by(employee_id=employee.employee_id, work_date=day).first()


def check_in(employee, now=None, work_from_home=False, location=None, notes=None, device_type=None):
    now = now or local_now()
    if employee.employment_status != 'active':
        raise APIError("Only active employees can check in", 403)
    if record_for(employee, now.date()) is not None:
        raise APIError("Already checked in today", 400)

    record = Attendance(
        attendance_id=formatting_id('AT', Attendance, 'attendance_id'),
        employee_id=employee.employee_id,
        work_date=now.date(),
        status='work-from-home' if work_from_home else 'present',
        location=location or {},
        notes=notes,
        device_type=device_type or 'desktop'
    )
    record.record_check_in(now, employee.work_start)
    db.session.add(record)
    db.session.commit()
    return record


def check_out(employee, now=None, break_minutes=None, notes=None):
    now = now or local_now()
    record = record_for(employee, now.date())
    if record is None or record.check_in_time is None:
        raise APIError("You have not checked in today", 400)
    if record.check_out_time is not None:
        raise APIError("Already checked out today", 400)

    if break_minutes is not None:
        record.break_minutes = int(break_minutes)
    if notes:
        record.notes = notes
    record.record_check_out(now, employee.work_end,
                            current_app.config.get('STANDARD_WORK_HOURS', 8))
    db.session.commit()
    return record


def month_range(year, month):
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


def working_days_elapsed(year, month, today):
    """Mon-Fri days of the month up to and including today."""
    start, end = month_range(year, month)
    if today < start:
        return 0
    end = min(end, today)
    return sum(
        1 for day in range(start.day, end.day + 1)
        if date(year, month, day).weekday() < 5
    )


def history(employee, year, month):
    start, end = month_range(year, month)
    return Attendance.query.filter(
        Attendance.employee_id == employee.employee_id,
        Attendance.work_date >= start,
        Attendance.work_date <= end
    ).order_by(Attendance.work_date.desc()).all()


def monthly_summary(employee, year, month, today=None):
    today = today or local_now().date()
    records = history(employee, year, month)
    counts = {status: 0 for status in ('present', 'late', 'half-day', 'work-from-home', 'on-leave', 'absent')}
    for record in records:
        counts[record.status] = counts.get(record.status, 0) + 1

    attended = counts['present'] + counts['late'] + counts['half-day'] + counts['work-from-home']
    working_days = working_days_elapsed(year, month, today)
    percentage = round(attended / working_days * 100, 2) if working_days else 0

    return {
        "month": month,
        "year": year,
        "total_records": len(records),
        "present_days": counts['present'],
        "late_days": counts['late'],
        "half_days": counts['half-day'],
        "work_from_home_days": counts['work-from-home'],
        "leave_days": counts['on-leave'],
        "absent_days": counts['absent'],
        "total_working_hours": round(sum(r.working_hours or 0 for r in records), 2),
        "total_overtime": round(sum(r.overtime or 0 for r in records), 2),
        "late_arrivals": sum(1 for r in records if r.is_late_arrival),
        "early_departures": sum(1 for r in records if r.is_early_departure),
        "working_days": working_days,
        "attendance_percentage": min(percentage, 100),
    }
