import logging
from flask import Blueprint, request, jsonify
from sqlalchemy import or_, func, cast, String
from models import db, User, Collaboration, CollaborationMember, CollaborationMilestone, CollaborationUpdate
from models.base import utcnow
from models.collaboration import MILESTONE_STATUSES
from services import auth_services
from services.auth_services import login_required, get_current_user
from services.errors import APIError
from services.notification_service import notify, notify_many
from services.pagination import paginate
from services.validation import (
    validate_collaboration, validate_invitation, validate_milestone, validate_collaboration_update
)

collaborations = Blueprint('collaborations', __name__)
logger = logging.getLogger(__name__)

COLLABORATION_FIELDS = (
    'title', 'description', 'type', 'status', 'visibility', 'research_areas', 'keywords', 'tags',
    'funding_required', 'funding_amount', 'funding_currency', 'funding_source', 'resources', 'links'
)
SORT_FIELDS = ('created_at', 'updated_at', 'title', 'views')
PERMISSIONS = ('can_edit', 'can_invite', 'can_manage')


def get_collaboration(collaboration_id):
    collaboration = Collaboration.get(collaboration_id)
    if collaboration is None:
        raise APIError("Collaboration not found", 404)
    return collaboration


def require_permission(collaboration, user, permission):
    if user.role == 'admin' or collaboration.has_permission(user.user_id, permission):
        return
    raise APIError("Access denied", 403)


def require_participant(collaboration, user):
    if not collaboration.is_participant(user.user_id):
        raise APIError("Only collaboration members can do this", 403)


def member_ids(user_id):
    return db.session.query(CollaborationMember.collaboration_id) \
        .filter(CollaborationMember.user_id == user_id)


def visible_to(query, user):
    """Private collaborations are listed only for their initiator and invitees."""
    if user.role == 'admin':
        return query
    return query.filter(or_(
        Collaboration.visibility != 'private',
        Collaboration.initiator_id == user.user_id,
        Collaboration.collaboration_id.in_(member_ids(user.user_id))
    ))


@collaborations.route('', methods=['GET'])
@login_required
def list_collaborations():
    user = get_current_user()
    query = visible_to(Collaboration.query, user)

    for field in ('status', 'type', 'visibility'):
        value = request.args.get(field)
        if value:
            query = query.filter(getattr(Collaboration, field) == value)

    research_area = request.args.get('research_area')
    if research_area:
        query = query.filter(cast(Collaboration.research_areas, String).ilike(f"%{research_area}%"))
    keyword = request.args.get('keyword')
    if keyword:
        query = query.filter(cast(Collaboration.keywords, String).ilike(f"%{keyword}%"))

    search = request.args.get('search')
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(
            Collaboration.title.ilike(pattern),
            Collaboration.description.ilike(pattern)
        ))

    if request.args.get('mine') == 'true':
        query = query.filter(or_(
            Collaboration.initiator_id == user.user_id,
            Collaboration.collaboration_id.in_(member_ids(user.user_id).filter(
                CollaborationMember.status == 'accepted'))
        ))

    sort_by = request.args.get('sort_by', 'created_at')
    if sort_by not in SORT_FIELDS:
        return jsonify({"error": f"sort_by must be one of: {', '.join(SORT_FIELDS)}"}), 400
    column = getattr(Collaboration, sort_by)
    query = query.order_by(column.asc() if request.args.get('sort_order') == 'asc' else column.desc())

    items, pagination = paginate(query)
    return jsonify({"collaborations": items, "pagination": pagination}), 200


@collaborations.route('/stats/overview', methods=['GET'])
@login_required
def collaboration_stats():
    user = get_current_user()
    visible = visible_to(Collaboration.query, user)
    mine = Collaboration.query.filter(or_(
        Collaboration.initiator_id == user.user_id,
        Collaboration.collaboration_id.in_(member_ids(user.user_id).filter(
            CollaborationMember.status == 'accepted'))
    ))
    by_type = visible.with_entities(Collaboration.type, func.count(Collaboration.collaboration_id)) \
        .group_by(Collaboration.type).all()
    recent = visible.order_by(Collaboration.created_at.desc()).limit(5).all()
    return jsonify({"stats": {
        "total": visible.count(),
        "mine": mine.count(),
        "active": visible.filter(Collaboration.status == 'active').count(),
        "pending_invitations": CollaborationMember.query.filter_by(
            user_id=user.user_id, status='pending').count(),
        "by_type": {name: count for name, count in by_type},
        "recent": [c.to_dict() for c in recent],
    }}), 200


@collaborations.route('/<collaboration_id>', methods=['GET'])
@login_required
def get_collaboration_details(collaboration_id):
    user = get_current_user()
    collaboration = get_collaboration(collaboration_id)
    if not collaboration.can_view(user):
        return jsonify({"error": "Access denied"}), 403

    if not collaboration.is_participant(user.user_id):
        collaboration.views = (collaboration.views or 0) + 1
        db.session.commit()
    return jsonify({"collaboration": collaboration.to_dict(detail=True)}), 200


@collaborations.route('', methods=['POST'])
@login_required
def create_collaboration():
    user = get_current_user()
    data = request.get_json(silent=True) or {}
    parsed = validate_collaboration(data)

    try:
        collaboration = Collaboration(
            collaboration_id=auth_services.formatting_id('CB', Collaboration, 'collaboration_id'),
            initiator_id=user.user_id
        )
        collaboration.update_from(data, COLLABORATION_FIELDS)
        collaboration.update_from(parsed, ('start_date', 'expected_end_date'))
        db.session.add(collaboration)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Failed to create collaboration: {e}")
        return jsonify({"error": "Failed to create collaboration"}), 500

    return jsonify({
        "message": "Collaboration created successfully",
        "collaboration": collaboration.to_dict(detail=True)
    }), 201


@collaborations.route('/<collaboration_id>', methods=['PUT'])
@login_required
def update_collaboration(collaboration_id):
    user = get_current_user()
    collaboration = get_collaboration(collaboration_id)
    require_permission(collaboration, user, 'can_edit')
    data = request.get_json(silent=True) or {}
    parsed = validate_collaboration(data, partial=True)

    try:
        collaboration.update_from(data, COLLABORATION_FIELDS)
        collaboration.update_from(parsed, ('start_date', 'expected_end_date'))
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Failed to update collaboration: {e}")
        return jsonify({"error": "Failed to update collaboration"}), 500

    return jsonify({
        "message": "Collaboration updated successfully",
        "collaboration": collaboration.to_dict(detail=True)
    }), 200


@collaborations.route('/<collaboration_id>/invite', methods=['POST'])
@login_required
def invite_collaborator(collaboration_id):
    user = get_current_user()
    collaboration = get_collaboration(collaboration_id)
    require_permission(collaboration, user, 'can_invite')
    data = request.get_json(silent=True) or {}
    validate_invitation(data)

    invitee = User.query.filter_by(email=data['email'].strip().lower()).first()
    if invitee is None:
        return jsonify({"error": "User not found"}), 404
    if invitee.user_id == collaboration.initiator_id:
        return jsonify({"error": "The initiator is already part of this collaboration"}), 400
    member = collaboration.member(invitee.user_id)
    if member is not None and member.status in ('pending', 'accepted'):
        return jsonify({"error": "User is already a member or has a pending invitation"}), 400

    permissions = data.get('permissions') or {}
    try:
        if member is None:
            member = CollaborationMember(
                member_id=auth_services.formatting_id('CM', CollaborationMember, 'member_id'),
                collaboration_id=collaboration.collaboration_id,
                user_id=invitee.user_id
            )
            db.session.add(member)
        member.role = data.get('role') or 'contributor'
        member.contribution = data.get('contribution')
        for permission in PERMISSIONS:
            setattr(member, permission, bool(permissions.get(permission)))
        member.status = 'pending'
        member.invited_by = user.user_id
        member.invited_at = utcnow()
        member.joined_at = None
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Failed to send invitation: {e}")
        return jsonify({"error": "Failed to send invitation"}), 500

    notify(invitee.user_id, "Collaboration invitation",
           f'{user.full_name} invited you to join "{collaboration.title}" as {member.role}.',
           type='collaboration_invitation', sender_id=user.user_id,
           entity_type='Collaboration', entity_id=collaboration.collaboration_id,
           data={"role": member.role})
    return jsonify({"message": "Invitation sent successfully", "member": member.to_dict()}), 201


@collaborations.route('/<collaboration_id>/respond', methods=['POST'])
@login_required
def respond_to_invitation(collaboration_id):
    user = get_current_user()
    collaboration = get_collaboration(collaboration_id)
    data = request.get_json(silent=True) or {}
    response = data.get('response')
    if response not in ('accept', 'decline'):
        return jsonify({"error": "response must be accept or decline"}), 400

    member = collaboration.member(user.user_id)
    if member is None or member.status != 'pending':
        return jsonify({"error": "No pending invitation found"}), 400

    try:
        if response == 'accept':
            member.status = 'accepted'
            member.joined_at = utcnow()
        else:
            member.status = 'declined'
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Failed to respond to invitation: {e}")
        return jsonify({"error": "Failed to respond to invitation"}), 500

    notify(collaboration.initiator_id, "Collaboration invitation answered",
           f'{user.full_name} {member.status} your invitation to "{collaboration.title}".',
           type='collaboration_response', sender_id=user.user_id,
           entity_type='Collaboration', entity_id=collaboration.collaboration_id,
           data={"response": response})
    return jsonify({"message": f"Invitation {member.status}", "member": member.to_dict()}), 200


@collaborations.route('/<collaboration_id>/members/<user_id>', methods=['DELETE'])
@login_required
def remove_member(collaboration_id, user_id):
    user = get_current_user()
    collaboration = get_collaboration(collaboration_id)
    if user_id == collaboration.initiator_id:
        return jsonify({"error": "The initiator cannot be removed"}), 400
    # members may always leave on their own
    if user_id != user.user_id:
        require_permission(collaboration, user, 'can_manage')

    member = collaboration.member(user_id)
    if member is None or member.status == 'removed':
        return jsonify({"error": "Member not found"}), 404

    try:
        member.status = 'removed'
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Failed to remove member: {e}")
        return jsonify({"error": "Failed to remove member"}), 500

    message = "You left the collaboration" if user_id == user.user_id else "Member removed successfully"
    return jsonify({"message": message}), 200


@collaborations.route('/<collaboration_id>/milestones', methods=['POST'])
@login_required
def add_milestone(collaboration_id):
    user = get_current_user()
    collaboration = get_collaboration(collaboration_id)
    require_permission(collaboration, user, 'can_edit')
    data = request.get_json(silent=True) or {}
    parsed = validate_milestone(data)

    try:
        milestone = CollaborationMilestone(
            milestone_id=auth_services.formatting_id('MS', CollaborationMilestone, 'milestone_id'),
            collaboration_id=collaboration.collaboration_id,
            title=data['title'].strip(),
            description=data.get('description'),
            assigned_to=data.get('assigned_to') or []
        )
        milestone.update_from(parsed, ('due_date',))
        milestone.set_status(data.get('status') or 'pending')
        db.session.add(milestone)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Failed to add milestone: {e}")
        return jsonify({"error": "Failed to add milestone"}), 500

    return jsonify({"message": "Milestone added successfully", "milestone": milestone.to_dict()}), 201


@collaborations.route('/<collaboration_id>/milestones/<milestone_id>', methods=['PUT'])
@login_required
def update_milestone(collaboration_id, milestone_id):
    user = get_current_user()
    collaboration = get_collaboration(collaboration_id)
    require_participant(collaboration, user)
    milestone = CollaborationMilestone.get(milestone_id)
    if milestone is None or milestone.collaboration_id != collaboration.collaboration_id:
        return jsonify({"error": "Milestone not found"}), 404

    data = request.get_json(silent=True) or {}
    status = data.get('status')
    if status not in MILESTONE_STATUSES:
        return jsonify({"error": f"Status must be one of: {', '.join(MILESTONE_STATUSES)}"}), 400

    try:
        milestone.set_status(status)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Failed to update milestone: {e}")
        return jsonify({"error": "Failed to update milestone"}), 500

    return jsonify({
        "message": "Milestone updated successfully",
        "milestone": milestone.to_dict(),
        "progress": collaboration.progress
    }), 200


@collaborations.route('/<collaboration_id>/updates', methods=['POST'])
@login_required
def post_update(collaboration_id):
    user = get_current_user()
    collaboration = get_collaboration(collaboration_id)
    require_participant(collaboration, user)
    data = request.get_json(silent=True) or {}
    validate_collaboration_update(data)

    try:
        update = CollaborationUpdate(
            update_id=auth_services.formatting_id('CU', CollaborationUpdate, 'update_id'),
            collaboration_id=collaboration.collaboration_id,
            author_id=user.user_id,
            title=data['title'].strip(),
            content=data['content'].strip(),
            type=data.get('type') or 'general',
            attachments=data.get('attachments') or []
        )
        db.session.add(update)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Failed to post update: {e}")
        return jsonify({"error": "Failed to post update"}), 500

    recipients = [m.user_id for m in collaboration.members
                  if m.status == 'accepted' and m.user_id != user.user_id]
    if collaboration.initiator_id != user.user_id:
        recipients.append(collaboration.initiator_id)
    if recipients:
        notify_many(recipients, f"New update in {collaboration.title}", update.title,
                    type='collaboration_update', sender_id=user.user_id,
                    entity_type='Collaboration', entity_id=collaboration.collaboration_id,
                    data={"update_id": update.update_id})
    return jsonify({"message": "Update posted successfully", "update": update.to_dict()}), 201


@collaborations.route('/<collaboration_id>', methods=['DELETE'])
@login_required
def delete_collaboration(collaboration_id):
    user = get_current_user()
    collaboration = get_collaboration(collaboration_id)
    if user.role != 'admin' and collaboration.initiator_id != user.user_id:
        return jsonify({"error": "Only the initiator can delete this collaboration"}), 403

    try:
        db.session.delete(collaboration)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Failed to delete collaboration: {e}")
        return jsonify({"error": "Failed to delete collaboration"}), 500

    auth_services.audit(user, 'Collaboration', collaboration_id, 'DELETE',
                        f'Deleted collaboration {collaboration_id}')
    return jsonify({"message": "Collaboration deleted successfully"}), 200
