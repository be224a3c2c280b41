import uuid
from datetime import datetime, timedelta, timezone


def iso_in(days: float) -> str:
    return (datetime.now(timezone.utc) + timedelta(days=days)).isoformat()


def ids(body: dict):
    return [t["id"] for t in body["tasks"]]


class TestListFilters:
    def test_default_lists_open_tasks_in_manual_order(self, client, auth, create_task):
        a = create_task("a")
        b = create_task("b", systemList="Next")
        done = create_task("done")
        client.patch(f"/api/tasks/{done['id']}/complete", headers=auth)

        res = client.get("/api/tasks", headers=auth)
        assert res.status_code == 200
        body = res.json()
        assert set(ids(body)) == {a["id"], b["id"]}
        assert body["totalCount"] == 2

    def test_system_list_filter(self, client, auth, create_task):
        create_task("inbox")
        nxt = create_task("next", systemList="Next")
        body = client.get("/api/tasks", params={"systemList": "Next"}, headers=auth).json()
        assert ids(body) == [nxt["id"]]

    def test_invalid_system_list(self, client, auth):
        res = client.get("/api/tasks", params={"systemList": "Later"}, headers=auth)
        assert res.status_code == 400
        assert "systemList" in res.json()["errors"]

    def test_project_filter(self, client, auth, create_task):
        project = client.post("/api/projects", json={"name": "P"}, headers=auth).json()
        inside = create_task("inside", projectId=project["id"])
        create_task("outside")
        body = client.get("/api/tasks", params={"projectId": project["id"]}, headers=auth).json()
        assert ids(body) == [inside["id"]]
        assert body["tasks"][0]["projectName"] == "P"

    def test_label_filter(self, client, auth, create_task):
        label = client.post("/api/labels", json={"name": "home"}, headers=auth).json()
        tagged = create_task("tagged")
        create_task("untagged")
        client.post(f"/api/tasks/{tagged['id']}/labels/{label['id']}", headers=auth)
        body = client.get("/api/tasks", params={"labelId": label["id"]}, headers=auth).json()
        assert ids(body) == [tagged["id"]]

    def test_status_filter(self, client, auth, create_task):
        open_task = create_task("open")
        first = create_task("first done")
        second = create_task("second done")
        client.patch(f"/api/tasks/{first['id']}/complete", headers=auth)
        client.patch(f"/api/tasks/{second['id']}/complete", headers=auth)

        done = client.get("/api/tasks", params={"status": "Done"}, headers=auth).json()
        # Most recently completed first
        assert ids(done) == [second["id"], first["id"]]

        every = client.get("/api/tasks", params={"status": "All"}, headers=auth).json()
        assert set(ids(every)) == {open_task["id"], first["id"], second["id"]}

    def test_archived_overrides_status(self, client, auth, create_task):
        create_task("open")
        done = create_task("done")
        client.patch(f"/api/tasks/{done['id']}/complete", headers=auth)
        body = client.get("/api/tasks", params={"archived": "true", "status": "Open"}, headers=auth).json()
        assert ids(body) == [done["id"]]

    def test_only_own_tasks_are_listed(self, client, auth, register, create_task):
        create_task("mine")
        other = register()
        assert client.get("/api/tasks", headers=other).json() == {"tasks": [], "totalCount": 0}

    def test_invalid_view(self, client, auth):
        res = client.get("/api/tasks", params={"view": "someday"}, headers=auth)
        assert res.status_code == 400
        assert "view" in res.json()["errors"]


class TestUpcomingView:
    def test_window_membership(self, client, auth, create_task):
        edge = create_task("due in 14 days", dueDate=iso_in(14))
        create_task("due in 15 days", dueDate=iso_in(15))
        listed = create_task("upcoming list, undated", systemList="Upcoming")
        create_task("undated inbox")
        overdue = create_task("overdue", dueDate=iso_in(-3))

        body = client.get("/api/tasks", params={"view": "upcoming"}, headers=auth).json()
        assert set(ids(body)) == {edge["id"], listed["id"], overdue["id"]}
        assert body["totalCount"] == 3

    def test_ordering_overdue_first_then_due_then_undated(self, client, auth, create_task):
        undated = create_task("undated", systemList="Upcoming")
        soon = create_task("soon", dueDate=iso_in(2))
        later = create_task("later", dueDate=iso_in(10))
        very_late = create_task("very late", dueDate=iso_in(-10))
        late = create_task("late", dueDate=iso_in(-1))

        body = client.get("/api/tasks", params={"view": "upcoming"}, headers=auth).json()
        assert ids(body) == [very_late["id"], late["id"], soon["id"], later["id"], undated["id"]]

    def test_excludes_done_tasks(self, client, auth, create_task):
        task = create_task("due soon", dueDate=iso_in(1))
        client.patch(f"/api/tasks/{task['id']}/complete", headers=auth)
        body = client.get("/api/tasks", params={"view": "Upcoming"}, headers=auth).json()
        assert body["tasks"] == []

    def test_view_ignores_other_filters(self, client, auth, create_task):
        task = create_task("due soon", dueDate=iso_in(1), systemList="Someday")
        body = client.get(
            "/api/tasks",
            params={"view": "upcoming", "systemList": "Inbox"},
            headers=auth,
        ).json()
        assert ids(body) == [task["id"]]


class TestReorder:
    def test_reorder_sets_positions(self, client, auth, create_task):
        a = create_task("a")
        b = create_task("b")
        c = create_task("c")
        order = [a["id"], c["id"], b["id"]]

        res = client.patch(
            "/api/tasks/reorder",
            json={"systemList": "Inbox", "taskIds": order},
            headers=auth,
        )
        assert res.status_code == 200
        assert res.json()["reorderedTasks"] == [
            {"id": a["id"], "sortOrder": 0},
            {"id": c["id"], "sortOrder": 1},
            {"id": b["id"], "sortOrder": 2},
        ]
        listed = client.get("/api/tasks", params={"systemList": "Inbox"}, headers=auth).json()
        assert ids(listed) == order

    def test_task_from_another_list_rejects_whole_batch(self, client, auth, create_task):
        a = create_task("a")
        b = create_task("b")
        stray = create_task("stray", systemList="Next")
        before = ids(client.get("/api/tasks", params={"systemList": "Inbox"}, headers=auth).json())

        res = client.patch(
            "/api/tasks/reorder",
            json={"systemList": "Inbox", "taskIds": [a["id"], stray["id"], b["id"]]},
            headers=auth,
        )
        assert res.status_code == 400
        assert res.json()["error"] == "ValidationError"
        after = ids(client.get("/api/tasks", params={"systemList": "Inbox"}, headers=auth).json())
        assert after == before

    def test_foreign_or_missing_ids_are_rejected(self, client, auth, register, create_task):
        mine = create_task("mine")
        other = register()
        theirs = create_task("theirs", headers=other)
        for foreign in (theirs["id"], str(uuid.uuid4())):
            res = client.patch(
                "/api/tasks/reorder",
                json={"systemList": "Inbox", "taskIds": [mine["id"], foreign]},
                headers=auth,
            )
            assert res.status_code == 400
        assert client.get(f"/api/tasks/{theirs['id']}", headers=other).json()["sortOrder"] == 0

    def test_empty_and_duplicate_ids(self, client, auth, create_task):
        task = create_task("a")
        empty = client.patch("/api/tasks/reorder", json={"systemList": "Inbox", "taskIds": []}, headers=auth)
        assert empty.status_code == 400
        assert "taskIds" in empty.json()["errors"]

        dup = client.patch(
            "/api/tasks/reorder",
            json={"systemList": "Inbox", "taskIds": [task["id"], task["id"]]},
            headers=auth,
        )
        assert dup.status_code == 400
        assert "taskIds" in dup.json()["errors"]
