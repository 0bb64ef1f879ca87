import logging
from flask import Blueprint, request, jsonify
from models import db, ResearchPaper, PaperAuthor, PaperReviewer, User
from models.base import utcnow
from models.research_paper import STATUSES
from services import auth_services, paper_service, file_storage
from services.auth_services import role_required, admin_required, login_required, get_current_user
from services.errors import APIError
from services.notification_service import notify, notify_admins
from services.pagination import paginate
from services.validation import Validator, validate_paper, validate_author

papers = Blueprint('papers', __name__)
logger = logging.getLogger(__name__)

AUTHOR_ROLES = ('researcher', 'faculty', 'student', 'admin')
MAX_SUPPLEMENTARY = 10
MAX_FIGURES = 20


def editable_paper(paper_id, user):
    paper = paper_service.get_paper(paper_id)
    if not paper_service.can_modify(paper, user):
        raise APIError("Not authorized to modify this paper", 403)
    if not paper.is_editable:
        raise APIError(f"Paper cannot be modified while {paper.status}", 400)
    return paper


@papers.route('', methods=['POST'])
@role_required(*AUTHOR_ROLES)
def create_paper():
    user = get_current_user()
    data = request.get_json(silent=True) or {}
    validate_paper(data)

    try:
        paper = paper_service.create_paper(user, data)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Failed to create paper: {e}")
        return jsonify({"error": "Failed to create paper"}), 500

    auth_services.audit(user, 'ResearchPaper', paper.paper_id, 'CREATE', 'Started paper submission')
    return jsonify({
        "message": "Paper draft created successfully",
        "paper": paper.to_dict(detail=True)
    }), 201


@papers.route('/<paper_id>/basic-info', methods=['PUT'])
@role_required(*AUTHOR_ROLES)
def update_basic_info(paper_id):
    user = get_current_user()
    paper = editable_paper(paper_id, user)
    data = request.get_json(silent=True) or {}
    validate_paper(data, partial=True)

    try:
        paper_service.apply_basic_info(paper, data)
        paper.mark_step('basic_info')
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Failed to update paper: {e}")
        return jsonify({"error": "Failed to update paper"}), 500

    return jsonify({"message": "Basic information updated", "paper": paper.to_dict(detail=True)}), 200


@papers.route('/<paper_id>/authors', methods=['POST'])
@role_required(*AUTHOR_ROLES)
def add_author(paper_id):
    user = get_current_user()
    paper = editable_paper(paper_id, user)
    data = request.get_json(silent=True) or {}
    validate_author(data)

    email = (data.get('email') or '').strip().lower()
    if email and any(a.email == email for a in paper.authors):
        return jsonify({"error": "Author with this email is already listed"}), 400

    # link the author to a portal account when the email matches one
    if email and not data.get('user_id'):
        account = User.query.filter_by(email=email).first()
        if account:
            data = dict(data, user_id=account.user_id)

    try:
        author = paper_service.add_author(paper, data)
        paper.mark_step('authors')
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Failed to add author: {e}")
        return jsonify({"error": "Failed to add author"}), 500

    return jsonify({"message": "Author added successfully", "author": author.to_dict()}), 201


@papers.route('/<paper_id>/authors/<author_id>', methods=['DELETE'])
@role_required(*AUTHOR_ROLES)
def remove_author(paper_id, author_id):
    user = get_current_user()
    paper = editable_paper(paper_id, user)
    author = PaperAuthor.get(author_id)
    if author is None or author.paper_id != paper.paper_id:
        return jsonify({"error": "Author not found"}), 404
    if author.role == 'primary_author':
        return jsonify({"error": "The primary author cannot be removed"}), 400

    try:
        paper.authors.remove(author)
        for position, remaining in enumerate(paper.authors, start=1):
            remaining.order = position
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Failed to remove author: {e}")
        return jsonify({"error": "Failed to remove author"}), 500

    return jsonify({"message": "Author removed successfully"}), 200


@papers.route('/<paper_id>/upload-manuscript', methods=['POST'])
@role_required(*AUTHOR_ROLES)
def upload_manuscript(paper_id):
    user = get_current_user()
    paper = editable_paper(paper_id, user)

    try:
        stored = file_storage.store_file(request.files.get('manuscript'), 'research-papers',
                                         user.user_id, {"paper_id": paper.paper_id, "kind": "manuscript"})
        paper_file = paper_service.attach_file(paper, stored, 'manuscript',
                                               description=request.form.get('description'))
        paper.mark_step('manuscript')
        db.session.commit()
    except APIError:
        db.session.rollback()
        raise
    except Exception as e:
        db.session.rollback()
        logger.error(f"Failed to upload manuscript: {e}")
        return jsonify({"error": "Failed to upload manuscript"}), 500

    return jsonify({"message": "Manuscript uploaded successfully", "file": paper_file.to_dict()}), 201


def _upload_many(paper, user, field, kind, upload_type, limit, text_field):
    uploads = request.files.getlist(field)
    if not uploads:
        raise APIError("No files uploaded", 400)
    if len(uploads) > limit:
        raise APIError(f"You can upload at most {limit} files at once", 400)

    texts = request.form.getlist(text_field)
    attached = []
    try:
        for index, upload in enumerate(uploads):
            text = texts[index] if index < len(texts) else None
            stored = file_storage.store_file(upload, upload_type, user.user_id,
                                             {"paper_id": paper.paper_id, "kind": kind})
            if kind == 'figure':
                attached.append(paper_service.attach_file(paper, stored, kind, caption=text))
            else:
                attached.append(paper_service.attach_file(paper, stored, kind, description=text))
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return attached


@papers.route('/<paper_id>/upload-supplementary', methods=['POST'])
@role_required(*AUTHOR_ROLES)
def upload_supplementary(paper_id):
    user = get_current_user()
    paper = editable_paper(paper_id, user)
    attached = _upload_many(paper, user, 'files', 'supplementary', 'documents',
                            MAX_SUPPLEMENTARY, 'descriptions')
    return jsonify({
        "message": f"{len(attached)} supplementary file(s) uploaded",
        "files": [f.to_dict() for f in attached]
    }), 201


@papers.route('/<paper_id>/upload-figures', methods=['POST'])
@role_required(*AUTHOR_ROLES)
def upload_figures(paper_id):
    user = get_current_user()
    paper = editable_paper(paper_id, user)
    attached = _upload_many(paper, user, 'figures', 'figure', 'figures', MAX_FIGURES, 'captions')
    return jsonify({
        "message": f"{len(attached)} figure(s) uploaded",
        "files": [f.to_dict() for f in attached]
    }), 201


@papers.route('/<paper_id>/submit', methods=['POST'])
@role_required(*AUTHOR_ROLES)
def submit_paper(paper_id):
    user = get_current_user()
    paper = editable_paper(paper_id, user)

    missing = [step for step in ('basic_info', 'authors', 'manuscript') if not paper.step_completed(step)]
    if paper.current_manuscript is None and 'manuscript' not in missing:
        missing.append('manuscript')
    if missing:
        return jsonify({
            "error": "Please complete all required steps before submitting",
            "missing_steps": missing
        }), 400

    resubmission = paper.status == 'revision_required'
    try:
        paper.status = 'revised_submitted' if resubmission else 'submitted'
        paper.submission_date = paper.submission_date or utcnow()
        paper.mark_step('review')
        paper.mark_step('submit')
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Failed to submit paper: {e}")
        return jsonify({"error": "Failed to submit paper"}), 500

    notify(user.user_id, "Paper submitted",
           f'Your paper "{paper.title}" was submitted with ID {paper.submission_id}.',
           type='paper_submission', entity_type='ResearchPaper', entity_id=paper.paper_id)
    notify_admins("New paper submission",
                  f'"{paper.title}" was submitted by {user.full_name}.',
                  type='paper_submission', sender_id=user.user_id,
                  entity_type='ResearchPaper', entity_id=paper.paper_id)
    auth_services.audit(user, 'ResearchPaper', paper.paper_id, 'SUBMIT',
                        'Resubmitted paper' if resubmission else 'Submitted paper')

    return jsonify({
        "message": "Paper submitted successfully",
        "submission_id": paper.submission_id,
        "paper": paper.to_dict(detail=True)
    }), 200


@papers.route('/<paper_id>', methods=['GET'])
@login_required
def get_paper(paper_id):
    user = get_current_user()
    paper = paper_service.get_paper(paper_id)
    if not paper.can_view(user):
        return jsonify({"error": "Access denied"}), 403
    return jsonify({"paper": paper.to_dict(detail=True)}), 200


@papers.route('/user/my-papers', methods=['GET'])
@login_required
def my_papers():
    user = get_current_user()
    query = ResearchPaper.query.filter(ResearchPaper.submitted_by == user.user_id)
    status = request.args.get('status')
    if status:
        if status not in STATUSES:
            return jsonify({"error": f"Status must be one of: {', '.join(STATUSES)}"}), 400
        query = query.filter(ResearchPaper.status == status)

    items, pagination = paginate(query.order_by(ResearchPaper.updated_at.desc()))
    return jsonify({"papers": items, "pagination": pagination}), 200


@papers.route('/reviewer/assigned', methods=['GET'])
@login_required
def assigned_papers():
    user = get_current_user()
    query = ResearchPaper.query.join(PaperReviewer).filter(PaperReviewer.reviewer_id == user.user_id)
    items, pagination = paginate(query.order_by(ResearchPaper.submission_date.desc()))
    return jsonify({"papers": items, "pagination": pagination}), 200


@papers.route('/<paper_id>/reviewers', methods=['POST'])
@admin_required
def assign_reviewers(paper_id):
    admin = get_current_user()
    paper = paper_service.get_paper(paper_id)
    data = request.get_json(silent=True) or {}
    reviewer_ids = data.get('reviewer_ids') or []
    if not isinstance(reviewer_ids, list) or not reviewer_ids:
        return jsonify({"error": "reviewer_ids must be a non-empty list"}), 400
    if paper.status not in ('submitted', 'revised_submitted', 'under_review'):
        return jsonify({"error": "Reviewers can only be assigned to submitted papers"}), 400

    v = Validator(data)
    due_date = v.datetime('due_date')
    v.check()
    assigned = []
    try:
        for reviewer_id in reviewer_ids:
            reviewer = User.get(reviewer_id)
            if reviewer is None or reviewer.role not in ('researcher', 'faculty', 'admin'):
                raise APIError(f"User {reviewer_id} cannot review papers", 400)
            if reviewer_id == paper.submitted_by or paper.is_reviewer(reviewer_id):
                continue
            paper.reviewers.append(PaperReviewer(
                assignment_id=auth_services.formatting_id('PR', PaperReviewer, 'assignment_id'),
                paper_id=paper.paper_id,
                reviewer_id=reviewer_id,
                due_date=due_date
            ))
            db.session.flush()
            assigned.append(reviewer)
        paper.status = 'under_review'
        db.session.commit()
    except APIError:
        db.session.rollback()
        raise
    except Exception as e:
        db.session.rollback()
        logger.error(f"Failed to assign reviewers: {e}")
        return jsonify({"error": "Failed to assign reviewers"}), 500

    for reviewer in assigned:
        notify(reviewer.user_id, "Review assignment",
               f'You have been asked to review "{paper.title}".',
               type='paper_review_assigned', sender_id=admin.user_id,
               entity_type='ResearchPaper', entity_id=paper.paper_id, priority='high')
    auth_services.audit(admin, 'ResearchPaper', paper.paper_id, 'UPDATE',
                        f"Assigned reviewers: {', '.join(r.user_id for r in assigned)}")

    return jsonify({"message": f"{len(assigned)} reviewer(s) assigned", "paper": paper.to_dict(detail=True)}), 200


@papers.route('/<paper_id>/withdraw', methods=['POST'])
@login_required
def withdraw_paper(paper_id):
    user = get_current_user()
    paper = paper_service.get_paper(paper_id)
    if paper.submitted_by != user.user_id:
        return jsonify({"error": "Only the submitter can withdraw a paper"}), 403
    if paper.status in ('published', 'rejected', 'withdrawn', 'draft'):
        return jsonify({"error": f"A {paper.status} paper cannot be withdrawn"}), 400

    try:
        paper.status = 'withdrawn'
        paper.is_public = False
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Failed to withdraw paper: {e}")
        return jsonify({"error": "Failed to withdraw paper"}), 500

    auth_services.audit(user, 'ResearchPaper', paper.paper_id, 'UPDATE', 'Withdrew paper')
    return jsonify({"message": "Paper withdrawn", "paper": paper.to_dict()}), 200


@papers.route('/<paper_id>', methods=['DELETE'])
@login_required
def delete_paper(paper_id):
    user = get_current_user()
    paper = paper_service.get_paper(paper_id)
    if user.role != 'admin':
        if paper.submitted_by != user.user_id:
            return jsonify({"error": "Not authorized to delete this paper"}), 403
        if paper.status != 'draft':
            return jsonify({"error": "Only draft papers can be deleted"}), 400

    try:
        paper_service.delete_paper(paper)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Failed to delete paper: {e}")
        return jsonify({"error": "Failed to delete paper"}), 500

    auth_services.audit(user, 'ResearchPaper', paper_id, 'DELETE', 'Deleted paper')
    return jsonify({"message": "Paper deleted successfully"}), 200
