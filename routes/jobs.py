import logging
import json
from io import BytesIO
from flask import Blueprint, request, jsonify, send_file
from sqlalchemy import or_, func
from models import db, Job, JobApplication, StoredFile
from models.base import utcnow
from models.job import APPLICATION_STATUSES
from services import auth_services, file_storage, mail
from services.auth_services import admin_required, get_current_user
from services.errors import APIError
from services.pagination import paginate
from services.validation import validate_job, validate_application

jobs = Blueprint('jobs', __name__)
logger = logging.getLogger(__name__)

JOB_FIELDS = (
    'title', 'department', 'location', 'type', 'experience', 'description',
    'requirements', 'responsibilities', 'skills', 'salary_min', 'salary_max',
    'salary_currency', 'salary_negotiable', 'is_active'
)
APPLICATION_FIELDS = (
    'phone', 'address', 'experience_type', 'experience_years', 'previous_roles',
    'education', 'skills', 'languages', 'cover_letter', 'expected_salary',
    'salary_currency', 'notice_period', 'willing_to_relocate'
)
# multipart fields that arrive as JSON-encoded strings
JSON_FORM_FIELDS = ('address', 'previous_roles', 'education', 'skills', 'languages')


def get_job(job_id):
    job = Job.get(job_id)
    if job is None:
        raise APIError("Job not found", 404)
    return job


def get_application(application_id):
    application = JobApplication.get(application_id)
    if application is None:
        raise APIError("Application not found", 404)
    return application


def application_payload():
    """Application body from JSON or multipart form data."""
    if request.is_json:
        return request.get_json(silent=True) or {}

    data = request.form.to_dict()
    for field in JSON_FORM_FIELDS:
        if data.get(field):
            try:
                data[field] = json.loads(data[field])
            except ValueError:
                raise APIError(f"{field} must be valid JSON", 400)
    if 'willing_to_relocate' in data:
        data['willing_to_relocate'] = data['willing_to_relocate'].lower() in ('true', '1', 'yes')
    return data


@jobs.route('', methods=['GET'])
def list_jobs():
    query = Job.query.filter(Job.is_active.is_(True), Job.application_deadline >= utcnow())

    for field in ('type', 'experience'):
        value = request.args.get(field)
        if value:
            query = query.filter(getattr(Job, field) == value)

    department = request.args.get('department')
    if department:
        query = query.filter(Job.department.ilike(f"%{department}%"))

    search = request.args.get('search')
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(
            Job.title.ilike(pattern),
            Job.description.ilike(pattern),
            Job.location.ilike(pattern)
        ))

    items, pagination = paginate(query.order_by(Job.created_at.desc()))
    return jsonify({"jobs": items, "pagination": pagination}), 200


@jobs.route('/stats', methods=['GET'])
def job_stats():
    open_jobs = Job.query.filter(Job.is_active.is_(True), Job.application_deadline >= utcnow())
    departments = db.session.query(Job.department, func.count(Job.job_id)) \
        .filter(Job.is_active.is_(True), Job.application_deadline >= utcnow()) \
        .group_by(Job.department).all()
    return jsonify({"stats": {
        "open_positions": open_jobs.count(),
        "total_applications": JobApplication.query.count(),
        "departments": {name: count for name, count in departments},
    }}), 200


@jobs.route('/<job_id>', methods=['GET'])
def get_job_details(job_id):
    job = get_job(job_id)
    return jsonify({"job": job.to_dict()}), 200


@jobs.route('/<job_id>/apply', methods=['POST'])
def apply_for_job(job_id):
    job = get_job(job_id)
    if not job.is_open:
        return jsonify({"error": "This position is no longer accepting applications"}), 400

    data = application_payload()
    validate_application(data)

    email = data['email'].strip().lower()
    if JobApplication.query.filter_by(job_id=job.job_id, email=email).first():
        return jsonify({"error": "You have already applied for this position"}), 400

    try:
        application = JobApplication(
            application_id=auth_services.formatting_id('JA', JobApplication, 'application_id'),
            job_id=job.job_id,
            full_name=data['full_name'].strip(),
            email=email
        )
        application.update_from(data, APPLICATION_FIELDS)

        resume = request.files.get('resume')
        if resume is not None and resume.filename:
            stored = file_storage.store_file(resume, 'documents', None,
                                             {"job_id": job.job_id, "applicant_email": email})
            application.resume_file_id = stored.file_id

        db.session.add(application)
        job.applications_count = (job.applications_count or 0) + 1
        db.session.commit()
    except APIError:
        db.session.rollback()
        raise
    except Exception as e:
        db.session.rollback()
        logger.error(f"Failed to submit application: {e}")
        return jsonify({"error": "Failed to submit application"}), 500

    mail.send_application_confirmation(application, job)

    return jsonify({
        "message": "Application submitted successfully",
        "application_id": application.application_id
    }), 201


@jobs.route('', methods=['POST'])
@admin_required
def create_job():
    admin = get_current_user()
    data = request.get_json(silent=True) or {}
    parsed = validate_job(data)

    try:
        job = Job(
            job_id=auth_services.formatting_id('JB', Job, 'job_id'),
            posted_by=admin.user_id
        )
        job.update_from(data, JOB_FIELDS)
        job.update_from(parsed, ('application_deadline',))
        db.session.add(job)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Failed to create job: {e}")
        return jsonify({"error": "Failed to create job"}), 500

    auth_services.audit(admin, 'Job', job.job_id, 'CREATE', f'Posted job {job.title}')
    return jsonify({"message": "Job created successfully", "job": job.to_dict()}), 201


@jobs.route('/<job_id>', methods=['PUT'])
@admin_required
def update_job(job_id):
    admin = get_current_user()
    job = get_job(job_id)
    data = request.get_json(silent=True) or {}
    parsed = validate_job(data, partial=True)

    try:
        job.update_from(data, JOB_FIELDS)
        job.update_from(parsed, ('application_deadline',))
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Failed to update job: {e}")
        return jsonify({"error": "Failed to update job"}), 500

    auth_services.audit(admin, 'Job', job.job_id, 'UPDATE', f'Updated job {job.title}')
    return jsonify({"message": "Job updated successfully", "job": job.to_dict()}), 200


@jobs.route('/<job_id>', methods=['DELETE'])
@admin_required
def delete_job(job_id):
    admin = get_current_user()
    job = get_job(job_id)

    try:
        resume_ids = [a.resume_file_id for a in job.applications if a.resume_file_id]
        title = job.title
        db.session.delete(job)
        db.session.flush()
        for file_id in resume_ids:
            file_storage.delete_file(file_id)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Failed to delete job: {e}")
        return jsonify({"error": "Failed to delete job"}), 500

    auth_services.audit(admin, 'Job', job_id, 'DELETE', f'Deleted job {title}')
    return jsonify({"message": "Job deleted successfully"}), 200


@jobs.route('/<job_id>/applications', methods=['GET'])
@admin_required
def job_applications(job_id):
    job = get_job(job_id)
    query = JobApplication.query.filter_by(job_id=job.job_id)
    status = request.args.get('status')
    if status:
        query = query.filter_by(status=status)
    items, pagination = paginate(query.order_by(JobApplication.application_date.desc()))
    return jsonify({"job": job.to_dict(), "applications": items, "pagination": pagination}), 200


@jobs.route('/applications/all', methods=['GET'])
@admin_required
def all_applications():
    query = JobApplication.query
    status = request.args.get('status')
    if status:
        query = query.filter(JobApplication.status == status)
    search = request.args.get('search')
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(JobApplication.full_name.ilike(pattern),
                                 JobApplication.email.ilike(pattern)))
    items, pagination = paginate(query.order_by(JobApplication.application_date.desc()))
    return jsonify({"applications": items, "pagination": pagination}), 200


@jobs.route('/applications/<application_id>/status', methods=['PUT'])
@admin_required
def update_application_status(application_id):
    admin = get_current_user()
    application = get_application(application_id)
    data = request.get_json(silent=True) or {}
    status = data.get('status')
    if status not in APPLICATION_STATUSES:
        return jsonify({"error": f"Status must be one of: {', '.join(APPLICATION_STATUSES)}"}), 400

    try:
        application.status = status
        if data.get('note'):
            application.add_note(data['note'], admin.user_id)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Failed to update application: {e}")
        return jsonify({"error": "Failed to update application"}), 500

    auth_services.audit(admin, 'JobApplication', application.application_id, 'UPDATE',
                        f'Set application status to {status}')
    return jsonify({"message": "Application status updated", "application": application.to_dict()}), 200


@jobs.route('/applications/<application_id>/notes', methods=['POST'])
@admin_required
def add_application_note(application_id):
    admin = get_current_user()
    application = get_application(application_id)
    data = request.get_json(silent=True) or {}
    note = (data.get('note') or '').strip()
    if not note:
        return jsonify({"error": "Note is required"}), 400

    try:
        application.add_note(note, admin.user_id)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Failed to add note: {e}")
        return jsonify({"error": "Failed to add note"}), 500

    return jsonify({"message": "Note added", "application": application.to_dict()}), 201


@jobs.route('/applications/<application_id>/resume', methods=['GET'])
@admin_required
def download_resume(application_id):
    application = get_application(application_id)
    stored = StoredFile.get(application.resume_file_id)
    if stored is None:
        return jsonify({"error": "No resume attached to this application"}), 404
    return send_file(
        BytesIO(stored.data),
        mimetype=stored.content_type,
        as_attachment=True,
        download_name=stored.original_name or stored.filename
    )
