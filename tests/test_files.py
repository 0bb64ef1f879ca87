import io
from PIL import Image
from models import db, StoredFile, User


def png_bytes(size=(640, 480), color=(200, 30, 30)):
    buffer = io.BytesIO()
    Image.new('RGB', size, color).save(buffer, format='PNG')
    return buffer.getvalue()


def upload_avatar(client, user, data=None):
    return client.post('/api/files/upload/profile-image', headers=user.headers,
                       data={"image": (io.BytesIO(data or png_bytes()), 'me.png', 'image/png')},
                       content_type='multipart/form-data')


def test_profile_image_is_resized_to_jpeg(app, client, researcher):
    response = upload_avatar(client, researcher)

    assert response.status_code == 201
    body = response.get_json()
    assert body["file"]["content_type"] == "image/jpeg"
    assert body["file"]["bucket"] == "profile_images"
    file_id = body["file"]["file_id"]
    assert body["avatar_url"] == f"/api/files/avatar/{file_id}"

    response = client.get(f'/api/files/avatar/{file_id}')
    assert response.status_code == 200
    assert response.headers["Cache-Control"] == "public, max-age=86400"
    with Image.open(io.BytesIO(response.data)) as image:
        assert image.size == (300, 300)
        assert image.format == 'JPEG'

    with app.app_context():
        assert db.session.get(User, researcher.user_id).avatar_file_id == file_id


def test_new_avatar_replaces_old(app, client, researcher):
    first = upload_avatar(client, researcher).get_json()["file"]["file_id"]
    second = upload_avatar(client, researcher).get_json()["file"]["file_id"]

    assert first != second
    with app.app_context():
        assert db.session.get(StoredFile, first) is None
        assert StoredFile.query.filter_by(bucket='profile_images').count() == 1


def test_corrupt_image_rejected(client, researcher):
    response = upload_avatar(client, researcher, data=b'not really a png')

    assert response.status_code == 400
    assert response.get_json()["error"].startswith("Invalid image file")


def test_missing_upload(client, researcher):
    response = client.post('/api/files/upload/documents', headers=researcher.headers,
                           data={}, content_type='multipart/form-data')

    assert response.status_code == 400
    assert response.get_json()["error"] == "No file uploaded"


def test_document_size_limit(client, researcher):
    big = b'x' * (10 * 1024 * 1024 + 1)
    response = client.post('/api/files/upload/documents', headers=researcher.headers,
                           data={"document": (io.BytesIO(big), 'big.txt', 'text/plain')},
                           content_type='multipart/form-data')

    assert response.status_code == 400
    assert response.get_json()["error"] == "File too large. Maximum size is 10MB"


def test_document_access_rules(client, researcher, faculty, admin):
    response = client.post('/api/files/upload/documents', headers=researcher.headers,
                           data={"document": (io.BytesIO(b'meeting notes'), 'notes.txt', 'text/plain'),
                                 "description": "Notes"},
                           content_type='multipart/form-data')
    assert response.status_code == 201
    file_id = response.get_json()["file"]["file_id"]
    assert response.get_json()["file"]["metadata"]["description"] == "Notes"

    response = client.get(f'/api/files/download/documents/{file_id}', headers=researcher.headers)
    assert response.status_code == 200
    assert response.data == b'meeting notes'

    assert client.get(f'/api/files/download/documents/{file_id}').status_code == 401
    assert client.get(f'/api/files/download/documents/{file_id}', headers=faculty.headers).status_code == 403
    assert client.get(f'/api/files/download/documents/{file_id}', headers=admin.headers).status_code == 200

    response = client.get(f'/api/files/info/documents/{file_id}', headers=researcher.headers)
    assert response.get_json()["file"]["size"] == len(b'meeting notes')

    assert client.delete(f'/api/files/documents/{file_id}', headers=faculty.headers).status_code == 403
    assert client.delete(f'/api/files/documents/{file_id}', headers=researcher.headers).status_code == 200
    assert client.get(f'/api/files/info/documents/{file_id}', headers=researcher.headers).status_code == 404


def test_wrong_bucket_is_404(client, researcher):
    file_id = upload_avatar(client, researcher).get_json()["file"]["file_id"]

    response = client.get(f'/api/files/download/documents/{file_id}', headers=researcher.headers)
    assert response.status_code == 404


def test_unknown_file_type(client, researcher):
    response = client.get('/api/files/my-files/videos', headers=researcher.headers)
    assert response.status_code == 400


def test_my_files(client, researcher):
    upload_avatar(client, researcher)
    client.post('/api/files/upload/documents', headers=researcher.headers,
                data={"document": (io.BytesIO(b'cv'), 'cv.txt', 'text/plain')},
                content_type='multipart/form-data')

    assert client.get('/api/files/my-files', headers=researcher.headers).get_json()["total"] == 2
    response = client.get('/api/files/my-files/documents', headers=researcher.headers)
    assert [f["original_name"] for f in response.get_json()["files"]] == ["cv.txt"]


def test_research_upload_requires_ownership(client, researcher, faculty, paper_payload):
    paper = client.post('/api/papers', headers=researcher.headers, json=paper_payload).get_json()["paper"]

    response = client.post(f'/api/files/upload/research-papers/{paper["paper_id"]}', headers=faculty.headers,
                           data={"file": (io.BytesIO(b'%PDF-1.4'), 'x.pdf', 'application/pdf')},
                           content_type='multipart/form-data')
    assert response.status_code == 403
