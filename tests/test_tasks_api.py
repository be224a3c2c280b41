import uuid

from conftest import parse_dt


def assert_task_shape(task: dict):
    for key in [
        "id",
        "name",
        "description",
        "dueDate",
        "priority",
        "status",
        "systemList",
        "sortOrder",
        "projectId",
        "projectName",
        "isArchived",
        "completedAt",
        "labels",
        "createdAt",
        "updatedAt",
    ]:
        assert key in task
    uuid.UUID(task["id"])
    parse_dt(task["createdAt"])
    parse_dt(task["updatedAt"])
    # Archived exactly when Done, and completedAt set exactly when archived
    assert task["isArchived"] == (task["status"] == "Done")
    assert (task["completedAt"] is not None) == task["isArchived"]


class TestCreateTask:
    def test_create_minimal_defaults(self, client, auth):
        res = client.post("/api/tasks", json={"name": "Buy milk"}, headers=auth)
        assert res.status_code == 201
        task = res.json()
        assert_task_shape(task)
        assert task["name"] == "Buy milk"
        assert task["status"] == "Open"
        assert task["systemList"] == "Inbox"
        assert task["priority"] == "P4"
        assert task["sortOrder"] == 0
        assert task["labels"] == []
        assert res.headers["location"] == f"/api/tasks/{task['id']}"

    def test_create_full(self, client, auth):
        payload = {
            "name": "  Pay bills  ",
            "description": "Electricity",
            "priority": "p2",
            "systemList": "Next",
            "dueDate": "2099-12-25",
        }
        res = client.post("/api/tasks", json=payload, headers=auth)
        assert res.status_code == 201
        task = res.json()
        assert task["name"] == "Pay bills"
        assert task["priority"] == "P2"
        assert task["systemList"] == "Next"
        # Bare dates are promoted to midnight UTC
        assert task["dueDate"].startswith("2099-12-25T00:00:00")

    def test_new_task_goes_to_head_of_list(self, client, auth, create_task):
        first = create_task("first")
        second = create_task("second")
        other_list = create_task("elsewhere", systemList="Someday")

        listed = client.get("/api/tasks", params={"systemList": "Inbox"}, headers=auth).json()["tasks"]
        assert [t["id"] for t in listed] == [second["id"], first["id"]]
        assert [t["sortOrder"] for t in listed] == [0, 1]
        assert client.get(f"/api/tasks/{other_list['id']}", headers=auth).json()["sortOrder"] == 0

    def test_name_required(self, client, auth):
        for payload in ({}, {"name": ""}, {"name": "   "}):
            res = client.post("/api/tasks", json=payload, headers=auth)
            assert res.status_code == 400
            body = res.json()
            assert body["error"] == "ValidationError"
            assert "name" in body["errors"]

    def test_length_limits(self, client, auth):
        res = client.post("/api/tasks", json={"name": "x" * 501}, headers=auth)
        assert res.status_code == 400
        assert "name" in res.json()["errors"]

        res = client.post("/api/tasks", json={"name": "ok", "description": "d" * 4001}, headers=auth)
        assert res.status_code == 400
        assert "description" in res.json()["errors"]

        assert client.post("/api/tasks", json={"name": "x" * 500}, headers=auth).status_code == 201

    def test_invalid_enums_and_dates(self, client, auth):
        res = client.post(
            "/api/tasks",
            json={"name": "t", "priority": "P9", "systemList": "Later", "dueDate": "tomorrow"},
            headers=auth,
        )
        assert res.status_code == 400
        assert set(res.json()["errors"]) == {"priority", "systemList", "dueDate"}

    def test_past_due_date_is_allowed(self, client, auth):
        res = client.post("/api/tasks", json={"name": "late", "dueDate": "2000-01-01"}, headers=auth)
        assert res.status_code == 201

    def test_project_must_belong_to_caller(self, client, auth, register):
        other = register()
        foreign = client.post("/api/projects", json={"name": "Theirs"}, headers=other).json()
        res = client.post("/api/tasks", json={"name": "t", "projectId": foreign["id"]}, headers=auth)
        assert res.status_code == 404
        assert res.json()["error"] == "NotFound"

    def test_create_with_project_reports_project_name(self, client, auth):
        project = client.post("/api/projects", json={"name": "Home"}, headers=auth).json()
        res = client.post("/api/tasks", json={"name": "t", "projectId": project["id"]}, headers=auth)
        assert res.status_code == 201
        assert res.json()["projectId"] == project["id"]
        assert res.json()["projectName"] == "Home"

    def test_requires_authentication(self, client):
        assert client.post("/api/tasks", json={"name": "t"}).status_code == 401


class TestGetTask:
    def test_get_and_not_found(self, client, auth, create_task):
        task = create_task("Read book")
        res = client.get(f"/api/tasks/{task['id']}", headers=auth)
        assert res.status_code == 200
        assert res.json()["name"] == "Read book"

        res_404 = client.get(f"/api/tasks/{uuid.uuid4()}", headers=auth)
        assert res_404.status_code == 404
        assert res_404.json()["error"] == "NotFound"

    def test_invalid_id_is_validation_error(self, client, auth):
        res = client.get("/api/tasks/not-a-uuid", headers=auth)
        assert res.status_code == 400
        assert "taskId" in res.json()["errors"]

    def test_other_users_task_is_not_found(self, client, register, create_task):
        task = create_task("private")
        intruder = register()
        assert client.get(f"/api/tasks/{task['id']}", headers=intruder).status_code == 404
        assert client.put(f"/api/tasks/{task['id']}", json={"name": "x"}, headers=intruder).status_code == 404
        assert client.patch(f"/api/tasks/{task['id']}/complete", headers=intruder).status_code == 404
        assert client.delete(f"/api/tasks/{task['id']}", headers=intruder).status_code == 404


class TestUpdateTask:
    def test_partial_update_keeps_missing_fields(self, client, auth, create_task):
        task = create_task("Initial", description="A", priority="P1", dueDate="2099-01-01")
        res = client.put(f"/api/tasks/{task['id']}", json={"name": "Renamed"}, headers=auth)
        assert res.status_code == 200
        updated = res.json()
        assert updated["name"] == "Renamed"
        assert updated["description"] == "A"
        assert updated["priority"] == "P1"
        assert updated["dueDate"].startswith("2099-01-01")
        assert parse_dt(updated["updatedAt"]) >= parse_dt(task["updatedAt"])

    def test_null_clears_optional_fields(self, client, auth, create_task):
        project = client.post("/api/projects", json={"name": "P"}, headers=auth).json()
        task = create_task("t", description="A", dueDate="2099-01-01", projectId=project["id"])
        res = client.put(
            f"/api/tasks/{task['id']}",
            json={"description": None, "dueDate": None, "projectId": None},
            headers=auth,
        )
        assert res.status_code == 200
        updated = res.json()
        assert updated["description"] is None
        assert updated["dueDate"] is None
        assert updated["projectId"] is None
        assert updated["projectName"] is None

    def test_null_rejected_for_required_fields(self, client, auth, create_task):
        task = create_task("t")
        res = client.put(
            f"/api/tasks/{task['id']}",
            json={"name": None, "priority": None, "systemList": None},
            headers=auth,
        )
        assert res.status_code == 400
        assert set(res.json()["errors"]) == {"name", "priority", "systemList"}

    def test_moving_list_places_task_at_head(self, client, auth, create_task):
        nxt = create_task("already next", systemList="Next")
        moved = create_task("from inbox")
        res = client.put(f"/api/tasks/{moved['id']}", json={"systemList": "Next"}, headers=auth)
        assert res.status_code == 200
        assert res.json()["systemList"] == "Next"
        assert res.json()["sortOrder"] == 0
        assert client.get(f"/api/tasks/{nxt['id']}", headers=auth).json()["sortOrder"] == 1

    def test_unknown_project_is_not_found(self, client, auth, create_task):
        task = create_task("t")
        res = client.put(f"/api/tasks/{task['id']}", json={"projectId": str(uuid.uuid4())}, headers=auth)
        assert res.status_code == 404


class TestCompleteReopenDelete:
    def test_round_trip(self, client, auth, create_task):
        task = create_task("Buy milk", description="Semi", priority="P2", systemList="Next")

        res = client.patch(f"/api/tasks/{task['id']}/complete", headers=auth)
        assert res.status_code == 200
        done = res.json()
        assert_task_shape(done)
        assert done["status"] == "Done"
        assert done["isArchived"] is True
        assert done["completedAt"] is not None

        archived = client.get("/api/tasks", params={"archived": "true"}, headers=auth).json()
        assert task["id"] in [t["id"] for t in archived["tasks"]]
        default = client.get("/api/tasks", headers=auth).json()
        assert task["id"] not in [t["id"] for t in default["tasks"]]

        res = client.patch(f"/api/tasks/{task['id']}/reopen", headers=auth)
        assert res.status_code == 200
        reopened = res.json()
        assert_task_shape(reopened)
        assert reopened["status"] == "Open"
        assert reopened["isArchived"] is False
        assert reopened["completedAt"] is None
        assert reopened["sortOrder"] == 0
        for key in ("name", "description", "priority", "systemList", "createdAt"):
            assert reopened[key] == task[key]

    def test_complete_is_idempotent(self, client, auth, create_task):
        task = create_task("t")
        first = client.patch(f"/api/tasks/{task['id']}/complete", headers=auth)
        second = client.patch(f"/api/tasks/{task['id']}/complete", headers=auth)
        assert first.status_code == second.status_code == 200
        assert second.json()["status"] == "Done"
        assert second.json()["isArchived"] is True
        assert second.json()["completedAt"] == first.json()["completedAt"]

    def test_repeat_complete_keeps_archive_order(self, client, auth, create_task):
        older = create_task("older")
        newer = create_task("newer")
        client.patch(f"/api/tasks/{older['id']}/complete", headers=auth)
        client.patch(f"/api/tasks/{newer['id']}/complete", headers=auth)
        client.patch(f"/api/tasks/{older['id']}/complete", headers=auth)

        archived = client.get("/api/tasks", params={"archived": "true"}, headers=auth).json()
        assert [t["name"] for t in archived["tasks"]] == ["newer", "older"]

    def test_reopen_is_idempotent(self, client, auth, create_task):
        task = create_task("t")
        res = client.patch(f"/api/tasks/{task['id']}/reopen", headers=auth)
        assert res.status_code == 200
        assert res.json()["status"] == "Open"
        assert res.json()["sortOrder"] == 0

    def test_reopen_goes_to_head_of_original_list(self, client, auth, create_task):
        done = create_task("done first")
        client.patch(f"/api/tasks/{done['id']}/complete", headers=auth)
        a = create_task("a")
        b = create_task("b")
        client.patch(f"/api/tasks/{done['id']}/reopen", headers=auth)

        listed = client.get("/api/tasks", params={"systemList": "Inbox"}, headers=auth).json()["tasks"]
        assert [t["id"] for t in listed] == [done["id"], b["id"], a["id"]]

    def test_delete_is_not_idempotent(self, client, auth, create_task):
        task = create_task("t")
        res = client.delete(f"/api/tasks/{task['id']}", headers=auth)
        assert res.status_code == 204
        assert res.content == b""
        assert client.delete(f"/api/tasks/{task['id']}", headers=auth).status_code == 404
        assert client.get(f"/api/tasks/{task['id']}", headers=auth).status_code == 404


class TestTaskLabels:
    def test_assign_and_remove_are_idempotent(self, client, auth, create_task):
        task = create_task("t")
        label = client.post("/api/labels", json={"name": "errand", "color": "#ff4040"}, headers=auth).json()
        url = f"/api/tasks/{task['id']}/labels/{label['id']}"

        for _ in range(2):
            res = client.post(url, headers=auth)
            assert res.status_code == 200
            assert [l["id"] for l in res.json()["labels"]] == [label["id"]]

        fetched = client.get(f"/api/tasks/{task['id']}", headers=auth).json()
        assert fetched["labels"] == [{"id": label["id"], "name": "errand", "color": "#ff4040"}]

        for _ in range(2):
            res = client.delete(url, headers=auth)
            assert res.status_code == 200
            assert res.json()["labels"] == []

    def test_foreign_label_is_not_found(self, client, auth, register, create_task):
        task = create_task("t")
        other = register()
        label = client.post("/api/labels", json={"name": "theirs"}, headers=other).json()
        res = client.post(f"/api/tasks/{task['id']}/labels/{label['id']}", headers=auth)
        assert res.status_code == 404

    def test_deleting_task_drops_its_label_links(self, client, auth, create_task):
        task = create_task("t")
        label = client.post("/api/labels", json={"name": "errand"}, headers=auth).json()
        client.post(f"/api/tasks/{task['id']}/labels/{label['id']}", headers=auth)
        client.delete(f"/api/tasks/{task['id']}", headers=auth)
        labels = client.get("/api/labels", headers=auth).json()["labels"]
        assert labels[0]["taskCount"] == 0
