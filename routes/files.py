import logging
from io import BytesIO
from flask import Blueprint, request, jsonify, send_file
from models import db, StoredFile, PaperFile, User
from services import file_storage, paper_service
from services.auth_services import login_required, optional_auth, get_current_user
from services.errors import APIError

files = Blueprint('files', __name__)
logger = logging.getLogger(__name__)


def can_access(stored, user):
    if user is not None and (user.role == 'admin' or stored.owner_id == user.user_id):
        return True
    # files attached to a published, public paper are readable by anyone
    link = PaperFile.query.filter_by(file_id=stored.file_id).first()
    if link is not None:
        return link.paper.can_view(user)
    return False


def stream(stored, as_attachment=True):
    return send_file(
        BytesIO(stored.data),
        mimetype=stored.content_type,
        as_attachment=as_attachment,
        download_name=stored.original_name or stored.filename
    )


@files.route('/upload/research-papers/<paper_id>', methods=['POST'])
@login_required
def upload_research_paper(paper_id):
    user = get_current_user()
    paper = paper_service.get_paper(paper_id)
    if not paper_service.can_modify(paper, user):
        return jsonify({"error": "Not authorized to upload files for this paper"}), 403

    try:
        stored = file_storage.store_file(request.files.get('file'), 'research-papers', user.user_id,
                                         {"paper_id": paper.paper_id, "kind": "manuscript"})
        paper_file = paper_service.attach_file(paper, stored, 'manuscript',
                                               description=request.form.get('description'))
        paper.mark_step('manuscript')
        db.session.commit()
    except APIError:
        db.session.rollback()
        raise
    except Exception as e:
        db.session.rollback()
        logger.error(f"Failed to upload file: {e}")
        return jsonify({"error": "Failed to upload file"}), 500

    return jsonify({
        "message": "Research paper file uploaded successfully",
        "file": file_storage.file_info(stored),
        "version": paper_file.version
    }), 201


@files.route('/upload/profile-image', methods=['POST'])
@login_required
def upload_profile_image():
    user = get_current_user()
    previous = user.avatar_file_id

    try:
        stored = file_storage.store_file(request.files.get('image'), 'profile-images', user.user_id)
        user.avatar_file_id = stored.file_id
        if previous:
            file_storage.delete_file(previous)
        db.session.commit()
    except APIError:
        db.session.rollback()
        raise
    except Exception as e:
        db.session.rollback()
        logger.error(f"Failed to upload profile image: {e}")
        return jsonify({"error": "Failed to upload profile image"}), 500

    return jsonify({
        "message": "Profile image uploaded successfully",
        "file": file_storage.file_info(stored),
        "avatar_url": f"/api/files/avatar/{stored.file_id}"
    }), 201


@files.route('/upload/documents', methods=['POST'])
@login_required
def upload_document():
    user = get_current_user()
    try:
        stored = file_storage.store_file(request.files.get('document'), 'documents', user.user_id,
                                         {"description": request.form.get('description')})
        db.session.commit()
    except APIError:
        db.session.rollback()
        raise
    except Exception as e:
        db.session.rollback()
        logger.error(f"Failed to upload document: {e}")
        return jsonify({"error": "Failed to upload document"}), 500

    return jsonify({"message": "Document uploaded successfully", "file": file_storage.file_info(stored)}), 201


@files.route('/download/<file_type>/<file_id>', methods=['GET'])
@optional_auth
def download_file(file_type, file_id):
    user = get_current_user()
    stored = file_storage.get_file(file_id, file_storage.bucket_for(file_type))
    if not can_access(stored, user):
        if user is None:
            return jsonify({"error": "Access denied. No token provided."}), 401
        return jsonify({"error": "Access denied"}), 403
    return stream(stored)


@files.route('/avatar/<file_id>', methods=['GET'])
def get_avatar(file_id):
    stored = file_storage.get_file(file_id, 'profile_images')
    response = stream(stored, as_attachment=False)
    response.headers['Cache-Control'] = 'public, max-age=86400'
    return response


@files.route('/info/<file_type>/<file_id>', methods=['GET'])
@login_required
def get_file_info(file_type, file_id):
    user = get_current_user()
    stored = file_storage.get_file(file_id, file_storage.bucket_for(file_type))
    if not can_access(stored, user):
        return jsonify({"error": "Access denied"}), 403
    return jsonify({"file": file_storage.file_info(stored)}), 200


@files.route('/<file_type>/<file_id>', methods=['DELETE'])
@login_required
def delete_file(file_type, file_id):
    user = get_current_user()
    stored = file_storage.get_file(file_id, file_storage.bucket_for(file_type))
    if user.role != 'admin' and stored.owner_id != user.user_id:
        return jsonify({"error": "Not authorized to delete this file"}), 403

    try:
        paper_service.unlink_file(file_id)
        User.query.filter_by(avatar_file_id=file_id).update({"avatar_file_id": None},
                                                            synchronize_session=False)
        db.session.delete(stored)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Failed to delete file: {e}")
        return jsonify({"error": "Failed to delete file"}), 500

    return jsonify({"message": "File deleted successfully"}), 200


@files.route('/my-files', methods=['GET'])
@files.route('/my-files/<file_type>', methods=['GET'])
@login_required
def my_files(file_type=None):
    user = get_current_user()
    query = StoredFile.query.filter_by(owner_id=user.user_id)
    if file_type:
        query = query.filter_by(bucket=file_storage.bucket_for(file_type))
    stored_files = query.order_by(StoredFile.upload_date.desc()).all()
    return jsonify({
        "files": [file_storage.file_info(f) for f in stored_files],
        "total": len(stored_files)
    }), 200
