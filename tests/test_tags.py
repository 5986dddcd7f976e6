from giverep.models.mindshare import MindshareProject
from giverep.models.project import ProjectTag


def test_tag_crud(client, admin_headers):
    res = client.post("/api/tags/", json={"name": "DeFi"}, headers=admin_headers)
    assert res.status_code == 201
    tag_id = res.json()["id"]

    assert client.post("/api/tags/", json={"name": "defi"}, headers=admin_headers).status_code == 409
    assert client.post("/api/tags/", json={"name": "  "}, headers=admin_headers).status_code == 400

    hidden = client.post("/api/tags/", json={"name": "Hidden", "visible": False}, headers=admin_headers)
    assert [t["name"] for t in client.get("/api/tags/").json()] == ["DeFi"]
    assert len(client.get("/api/tags/?include_hidden=true").json()) == 2

    res = client.put(f"/api/tags/{tag_id}", json={"name": "Hidden"}, headers=admin_headers)
    assert res.status_code == 409
    res = client.put(f"/api/tags/{tag_id}", json={"description": "Finance"}, headers=admin_headers)
    assert res.json()["description"] == "Finance"

    assert client.put(f"/api/tags/{hidden.json()['id'] + 100}", json={}, headers=admin_headers).status_code == 404


def test_tag_routes_need_admin(client):
    assert client.post("/api/tags/", json={"name": "x"}).status_code == 401


def test_delete_tag_detaches_projects(client, db, make_project, admin_headers):
    tag = ProjectTag(name="Gaming")
    db.add(tag)
    db.commit()
    loyalty = make_project(tag_ids=[tag.id, 99])
    mindshare = MindshareProject(name="M", tag_ids=[tag.id])
    db.add(mindshare)
    db.commit()

    res = client.delete(f"/api/tags/{tag.id}", headers=admin_headers)

    assert res.json() == {"message": "Tag Gaming was successfully deleted"}
    db.refresh(loyalty)
    db.refresh(mindshare)
    assert loyalty.tag_ids == [99]
    assert mindshare.tag_ids == []
    assert db.query(ProjectTag).count() == 0
