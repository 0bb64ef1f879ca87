import logging
from io import BytesIO
from flask import Blueprint, request, jsonify, send_file
from sqlalchemy import or_
from models import db, ResearchPaper
from models.research_paper import FIELDS, STATUSES
from services import auth_services, paper_service
from services.auth_services import role_required, optional_auth, get_current_user
from services.pagination import paginate
from services.validation import validate_paper

research = Blueprint('research', __name__)
logger = logging.getLogger(__name__)

SORTABLE = ('created_at', 'title', 'views', 'downloads', 'published_date', 'submission_date')


@research.route('/categories', methods=['GET'])
def get_categories():
    categories = [{"value": value, "label": label} for value, label in FIELDS.items()]
    return jsonify({"categories": categories}), 200


@research.route('', methods=['GET'])
@optional_auth
def get_all_research_papers():
    user = get_current_user()
    status = request.args.get('status', 'published')
    if status not in STATUSES:
        return jsonify({"error": f"Status must be one of: {', '.join(STATUSES)}"}), 400

    query = ResearchPaper.query.filter(ResearchPaper.status == status)
    is_admin = user is not None and user.role == 'admin'
    if status == 'published':
        if not is_admin:
            query = query.filter(ResearchPaper.is_public.is_(True))
    else:
        # unpublished papers: admins see all, others only their own
        if user is None:
            return jsonify({"error": "Authentication required"}), 401
        if not is_admin:
            query = query.filter(ResearchPaper.submitted_by == user.user_id)

    category = request.args.get('category')
    if category and category != 'all':
        query = query.filter(ResearchPaper.field == category)

    search = request.args.get('search')
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(
            ResearchPaper.title.ilike(pattern),
            ResearchPaper.abstract.ilike(pattern)
        ))

    sort_by = request.args.get('sort_by', 'created_at')
    if sort_by not in SORTABLE:
        sort_by = 'created_at'
    column = getattr(ResearchPaper, sort_by)
    order = column.asc() if request.args.get('sort_order') == 'asc' else column.desc()

    items, pagination = paginate(query.order_by(order))
    return jsonify({"papers": items, "pagination": pagination}), 200


@research.route('/<paper_id>', methods=['GET'])
@optional_auth
def get_research_paper(paper_id):
    user = get_current_user()
    paper = paper_service.get_paper(paper_id)
    if not paper.can_view(user):
        return jsonify({"error": "Research paper not found"}), 404

    paper.views = (paper.views or 0) + 1
    db.session.commit()
    return jsonify({"paper": paper.to_dict(detail=True)}), 200


@research.route('', methods=['POST'])
@role_required('researcher', 'faculty', 'admin')
def create_research_paper():
    user = get_current_user()
    data = request.get_json(silent=True) or {}
    validate_paper(data)

    # Admins may add already-published work straight to the catalogue
    status = 'published' if user.role == 'admin' and data.get('status') == 'published' else 'draft'
    try:
        paper = paper_service.create_paper(user, data, status=status)
        for field in ('journal', 'doi'):
            if data.get(field):
                setattr(paper, field, data[field])
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Failed to create research paper: {e}")
        return jsonify({"error": "Failed to create research paper"}), 500

    auth_services.audit(user, 'ResearchPaper', paper.paper_id, 'CREATE', 'Created research paper')
    return jsonify({"message": "Research paper created successfully", "paper": paper.to_dict()}), 201


@research.route('/<paper_id>', methods=['PUT'])
@role_required('researcher', 'faculty', 'admin')
def update_research_paper(paper_id):
    user = get_current_user()
    paper = paper_service.get_paper(paper_id)
    if not paper_service.can_modify(paper, user):
        return jsonify({"error": "Not authorized to update this paper"}), 403

    data = request.get_json(silent=True) or {}
    validate_paper(data, partial=True)

    try:
        paper_service.apply_basic_info(paper, data)
        paper.update_from(data, ('journal', 'doi', 'citations'))
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Failed to update research paper: {e}")
        return jsonify({"error": "Failed to update research paper"}), 500

    auth_services.audit(user, 'ResearchPaper', paper.paper_id, 'UPDATE', 'Updated research paper')
    return jsonify({"message": "Research paper updated successfully", "paper": paper.to_dict()}), 200


@research.route('/<paper_id>', methods=['DELETE'])
@role_required('researcher', 'faculty', 'admin')
def delete_research_paper(paper_id):
    user = get_current_user()
    paper = paper_service.get_paper(paper_id)
    if not paper_service.can_modify(paper, user):
        return jsonify({"error": "Not authorized to delete this paper"}), 403

    try:
        paper_service.delete_paper(paper)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Failed to delete research paper: {e}")
        return jsonify({"error": "Failed to delete research paper"}), 500

    auth_services.audit(user, 'ResearchPaper', paper_id, 'DELETE', 'Deleted research paper')
    return jsonify({"message": "Research paper deleted successfully"}), 200


@research.route('/<paper_id>/download', methods=['GET'])
@optional_auth
def download_research_paper(paper_id):
    user = get_current_user()
    paper = paper_service.get_paper(paper_id)
    if not paper.can_view(user):
        return jsonify({"error": "Research paper not found"}), 404

    stored = paper_service.manuscript_file(paper)
    paper.downloads = (paper.downloads or 0) + 1
    db.session.commit()

    return send_file(
        BytesIO(stored.data),
        mimetype=stored.content_type,
        as_attachment=True,
        download_name=stored.original_name or stored.filename
    )
