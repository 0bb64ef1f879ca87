import pytest
from models import db, Collaboration, Notification


@pytest.fixture
def collaboration_payload():
    return {
        "title": "Low-cost soil sensor network",
        "description": "Deploying open hardware sensors across partner farms.",
        "type": "research_project",
        "visibility": "institute",
        "research_areas": ["Soil Science", "IoT"],
        "keywords": ["sensors", "agriculture"],
        "start_date": "2026-01-01",
        "expected_end_date": "2026-12-31",
    }


def create_collaboration(client, user, payload):
    response = client.post('/api/collaborations', headers=user.headers, json=payload)
    assert response.status_code == 201
    return response.get_json()["collaboration"]


def invite(client, user, collaboration_id, email, **extra):
    return client.post(f'/api/collaborations/{collaboration_id}/invite', headers=user.headers,
                       json=dict(extra, email=email))


def join(client, initiator, member, collaboration_id, **extra):
    assert invite(client, initiator, collaboration_id, member.email, **extra).status_code == 201
    response = client.post(f'/api/collaborations/{collaboration_id}/respond', headers=member.headers,
                           json={"response": "accept"})
    assert response.status_code == 200


def test_create_collaboration(client, researcher, collaboration_payload):
    collaboration = create_collaboration(client, researcher, collaboration_payload)

    assert collaboration["collaboration_id"].startswith("CB-")
    assert collaboration["initiator"]["user_id"] == researcher.user_id
    assert collaboration["status"] == "active"
    assert collaboration["start_date"] == "2026-01-01"
    assert collaboration["members"] == []
    assert collaboration["progress"] == 0


def test_create_validation(client, researcher, collaboration_payload):
    response = client.post('/api/collaborations', headers=researcher.headers, json=dict(
        collaboration_payload, type="heist", expected_end_date="2025-01-01",
        links=[{"title": "Repo", "url": "not-a-url"}]
    ))

    assert response.status_code == 400
    fields = {d["field"] for d in response.get_json()["details"]}
    assert fields == {"type", "expected_end_date", "links"}


def test_requires_login(client):
    assert client.get('/api/collaborations').status_code == 401


def test_private_collaborations_are_hidden(client, researcher, faculty, admin, collaboration_payload):
    collaboration = create_collaboration(client, researcher, dict(collaboration_payload, visibility="private"))
    collaboration_id = collaboration["collaboration_id"]

    response = client.get('/api/collaborations', headers=faculty.headers)
    assert response.get_json()["collaborations"] == []
    assert client.get(f'/api/collaborations/{collaboration_id}', headers=faculty.headers).status_code == 403

    response = client.get('/api/collaborations', headers=admin.headers)
    assert [c["collaboration_id"] for c in response.get_json()["collaborations"]] == [collaboration_id]

    # an invitation is enough to see it
    invite(client, researcher, collaboration_id, faculty.email)
    assert client.get(f'/api/collaborations/{collaboration_id}', headers=faculty.headers).status_code == 200


def test_list_filters(client, researcher, faculty, collaboration_payload):
    mine = create_collaboration(client, researcher, collaboration_payload)
    other = create_collaboration(client, faculty, dict(
        collaboration_payload, title="Grant for coastal erosion study", type="grant_application",
        research_areas=["Geology"], keywords=["coast"]
    ))

    def ids(query):
        response = client.get(f'/api/collaborations{query}', headers=researcher.headers)
        assert response.status_code == 200
        return [c["collaboration_id"] for c in response.get_json()["collaborations"]]

    assert ids('?mine=true') == [mine["collaboration_id"]]
    assert ids('?type=grant_application') == [other["collaboration_id"]]
    assert ids('?research_area=geology') == [other["collaboration_id"]]
    assert ids('?keyword=sensors') == [mine["collaboration_id"]]
    assert ids('?search=erosion') == [other["collaboration_id"]]
    assert set(ids('?sort_by=title&sort_order=asc')) == {mine["collaboration_id"], other["collaboration_id"]}

    response = client.get('/api/collaborations?sort_by=secret', headers=researcher.headers)
    assert response.status_code == 400


def test_invitation_flow(app, client, researcher, faculty, create_user, collaboration_payload):
    collaboration_id = create_collaboration(client, researcher, collaboration_payload)["collaboration_id"]

    response = invite(client, researcher, collaboration_id, faculty.email,
                      role="co-lead", permissions={"can_edit": True})
    assert response.status_code == 201
    member = response.get_json()["member"]
    assert member["status"] == "pending"
    assert member["can_edit"] is True
    assert member["can_invite"] is False

    assert invite(client, researcher, collaboration_id, faculty.email).status_code == 400
    assert invite(client, researcher, collaboration_id, researcher.email).status_code == 400
    assert invite(client, researcher, collaboration_id, "ghost@example.com").status_code == 404

    # members without the invite permission cannot invite others
    outsider = create_user(role='student')
    assert invite(client, faculty, collaboration_id, outsider.email).status_code == 403

    response = client.post(f'/api/collaborations/{collaboration_id}/respond', headers=faculty.headers,
                           json={"response": "accept"})
    assert response.status_code == 200
    assert response.get_json()["member"]["status"] == "accepted"

    response = client.post(f'/api/collaborations/{collaboration_id}/respond', headers=faculty.headers,
                           json={"response": "accept"})
    assert response.status_code == 400
    assert response.get_json()["error"] == "No pending invitation found"

    response = client.get(f'/api/collaborations/{collaboration_id}', headers=researcher.headers)
    assert response.get_json()["collaboration"]["active_collaborator_count"] == 1

    with app.app_context():
        assert Notification.query.filter_by(recipient_id=faculty.user_id,
                                            type='collaboration_invitation').count() == 1
        assert Notification.query.filter_by(recipient_id=researcher.user_id,
                                            type='collaboration_response').count() == 1


def test_declined_member_can_be_invited_again(client, researcher, faculty, collaboration_payload):
    collaboration_id = create_collaboration(client, researcher, collaboration_payload)["collaboration_id"]
    invite(client, researcher, collaboration_id, faculty.email)
    client.post(f'/api/collaborations/{collaboration_id}/respond', headers=faculty.headers,
                json={"response": "decline"})

    response = invite(client, researcher, collaboration_id, faculty.email)

    assert response.status_code == 201
    assert response.get_json()["member"]["status"] == "pending"


def test_milestones_and_progress(client, researcher, faculty, create_user, collaboration_payload):
    collaboration_id = create_collaboration(client, researcher, collaboration_payload)["collaboration_id"]
    join(client, researcher, faculty, collaboration_id, permissions={"can_edit": True})

    response = client.post(f'/api/collaborations/{collaboration_id}/milestones', headers=faculty.headers,
                           json={"title": "Deploy pilot sensors", "due_date": "2026-03-01"})
    assert response.status_code == 201
    milestone = response.get_json()["milestone"]
    assert milestone["due_date"] == "2026-03-01"
    assert milestone["status"] == "pending"

    client.post(f'/api/collaborations/{collaboration_id}/milestones', headers=researcher.headers,
                json={"title": "Publish dataset"})

    url = f'/api/collaborations/{collaboration_id}/milestones/{milestone["milestone_id"]}'
    response = client.put(url, headers=faculty.headers, json={"status": "completed"})
    assert response.status_code == 200
    assert response.get_json()["milestone"]["completed_at"] is not None
    assert response.get_json()["progress"] == 50

    assert client.put(url, headers=faculty.headers, json={"status": "done"}).status_code == 400

    outsider = create_user(role='student')
    assert client.put(url, headers=outsider.headers, json={"status": "pending"}).status_code == 403
    response = client.post(f'/api/collaborations/{collaboration_id}/milestones', headers=outsider.headers,
                           json={"title": "Sneaky"})
    assert response.status_code == 403


def test_updates_notify_participants(app, client, researcher, faculty, create_user, collaboration_payload):
    collaboration_id = create_collaboration(client, researcher, collaboration_payload)["collaboration_id"]
    join(client, researcher, faculty, collaboration_id)

    response = client.post(f'/api/collaborations/{collaboration_id}/updates', headers=faculty.headers,
                           json={"title": "Pilot deployed", "content": "Ten sensors are online.",
                                 "type": "progress"})
    assert response.status_code == 201
    assert response.get_json()["update"]["author_name"] == "Test Faculty"

    outsider = create_user(role='student')
    response = client.post(f'/api/collaborations/{collaboration_id}/updates', headers=outsider.headers,
                           json={"title": "Hi", "content": "Let me in"})
    assert response.status_code == 403

    response = client.get(f'/api/collaborations/{collaboration_id}', headers=researcher.headers)
    assert [u["title"] for u in response.get_json()["collaboration"]["updates"]] == ["Pilot deployed"]

    with app.app_context():
        assert Notification.query.filter_by(recipient_id=researcher.user_id,
                                            type='collaboration_update').count() == 1
        assert Notification.query.filter_by(recipient_id=faculty.user_id,
                                            type='collaboration_update').count() == 0


def test_members_leave_and_initiator_stays(client, researcher, faculty, collaboration_payload):
    collaboration_id = create_collaboration(client, researcher, collaboration_payload)["collaboration_id"]
    join(client, researcher, faculty, collaboration_id)

    response = client.delete(f'/api/collaborations/{collaboration_id}/members/{researcher.user_id}',
                             headers=faculty.headers)
    assert response.status_code == 400

    response = client.delete(f'/api/collaborations/{collaboration_id}/members/{faculty.user_id}',
                             headers=faculty.headers)
    assert response.status_code == 200
    assert response.get_json()["message"] == "You left the collaboration"

    response = client.get(f'/api/collaborations/{collaboration_id}', headers=researcher.headers)
    assert response.get_json()["collaboration"]["members"][0]["status"] == "removed"

    assert invite(client, researcher, collaboration_id, faculty.email).status_code == 201


def test_views_count_only_outsiders(app, client, researcher, faculty, collaboration_payload):
    collaboration_id = create_collaboration(client, researcher, collaboration_payload)["collaboration_id"]

    client.get(f'/api/collaborations/{collaboration_id}', headers=researcher.headers)
    client.get(f'/api/collaborations/{collaboration_id}', headers=faculty.headers)
    client.get(f'/api/collaborations/{collaboration_id}', headers=faculty.headers)

    with app.app_context():
        assert db.session.get(Collaboration, collaboration_id).views == 2


def test_stats_overview(client, researcher, faculty, collaboration_payload):
    create_collaboration(client, researcher, collaboration_payload)
    other = create_collaboration(client, faculty, dict(collaboration_payload, type="data_sharing"))
    invite(client, faculty, other["collaboration_id"], researcher.email)

    response = client.get('/api/collaborations/stats/overview', headers=researcher.headers)

    stats = response.get_json()["stats"]
    assert stats["total"] == 2
    assert stats["mine"] == 1
    assert stats["active"] == 2
    assert stats["pending_invitations"] == 1
    assert stats["by_type"] == {"research_project": 1, "data_sharing": 1}
    assert len(stats["recent"]) == 2


def test_update_and_delete_permissions(app, client, researcher, faculty, admin, collaboration_payload):
    collaboration_id = create_collaboration(client, researcher, collaboration_payload)["collaboration_id"]
    url = f'/api/collaborations/{collaboration_id}'

    assert client.put(url, headers=faculty.headers, json={"status": "paused"}).status_code == 403
    response = client.put(url, headers=researcher.headers, json={"status": "paused"})
    assert response.status_code == 200
    assert response.get_json()["collaboration"]["status"] == "paused"

    assert client.delete(url, headers=faculty.headers).status_code == 403
    assert client.delete(url, headers=admin.headers).status_code == 200
    with app.app_context():
        assert db.session.get(Collaboration, collaboration_id) is None
