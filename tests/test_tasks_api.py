from conftest import DAY, ms

NOW = ms(2024, 3, 15, 9, 30)  # Friday
TODAY = ms(2024, 3, 15)


def create_task(client, **payload):
    payload.setdefault("title", "Test Task")
    res = client.post("/api/v1/tasks/", json=payload)
    assert res.status_code == 201, res.text
    return res.json()


def complete(client, task_id, at, completed=True, day=None):
    body = {"completed": completed}
    if day is not None:
        body["completed_date_ms"] = day
    return client.post(f"/api/v1/tasks/{task_id}/completion", params={"now_ms": at}, json=body)


def titles(res):
    assert res.status_code == 200, res.text
    return [item["title"] for item in res.json()["items"]]


class TestHealth:
    def test_health_check(self, client):
        res = client.get("/")
        assert res.status_code == 200
        data = res.json()
        assert data["message"] == "Healthy"
        assert data["backend"] == "memory"
        assert data["task_time_zone"] == "UTC"
        assert data["app_time_zone"] == "Australia/Brisbane"


class TestCategories:
    def test_crud(self, client):
        res = client.post("/api/v1/categories/", json={"name": "  Home  ", "color": "#fff"})
        assert res.status_code == 201
        cat = res.json()
        assert cat["name"] == "Home"

        assert client.get(f"/api/v1/categories/{cat['id']}").json()["color"] == "#fff"

        res = client.patch(f"/api/v1/categories/{cat['id']}", json={"color": None, "name": "House"})
        assert res.status_code == 200
        assert res.json()["name"] == "House"
        assert res.json()["color"] is None

        res = client.get("/api/v1/categories/999")
        assert res.status_code == 404
        assert res.json()["detail"] == "Category not found"

    def test_list_newest_first(self, client):
        for name in ("A", "B", "C"):
            client.post("/api/v1/categories/", json={"name": name})
        names = [c["name"] for c in client.get("/api/v1/categories/").json()]
        assert names == ["C", "B", "A"]

    def test_delete_detaches_tasks(self, client):
        cat = client.post("/api/v1/categories/", json={"name": "Garden"}).json()
        task = create_task(client, title="Mow", parent_category_id=cat["id"])
        assert [t["title"] for t in client.get(f"/api/v1/categories/{cat['id']}/tasks").json()] == ["Mow"]

        assert client.delete(f"/api/v1/categories/{cat['id']}").status_code == 204
        assert client.get(f"/api/v1/tasks/{task['id']}").json()["parent_category_id"] is None
        assert client.delete(f"/api/v1/categories/{cat['id']}").status_code == 404

    def test_category_cannot_nest_in_itself(self, client):
        a = client.post("/api/v1/categories/", json={"name": "A"}).json()
        b = client.post("/api/v1/categories/", json={"name": "B", "parent_category_id": a["id"]}).json()
        res = client.patch(f"/api/v1/categories/{a['id']}", json={"parent_category_id": b["id"]})
        assert res.status_code == 400


class TestTasksCRUD:
    def test_create_normalizes_due_date(self, client):
        task = create_task(client, title="Pay rent", due_date=ms(2024, 3, 20, 17, 45))
        assert task["due_date"] == ms(2024, 3, 20)
        assert task["frequency"] is None
        assert task["parent_task_id"] is None

    def test_create_accepts_iso_date(self, client):
        task = create_task(client, title="Dentist", due_date="2024-04-02")
        assert task["due_date"] == ms(2024, 4, 2)

    def test_create_recurring(self, client):
        task = create_task(client, title="Water plants", frequency="weekly")
        assert task["frequency"] == "weekly"

    def test_validation_errors(self, client):
        res = client.post("/api/v1/tasks/", json={"title": "   "})
        assert res.status_code == 422
        body = res.json()
        assert body.get("error") == "ValidationError"
        assert body.get("message") == "Request validation failed"
        assert isinstance(body.get("detail"), list)

        assert client.post("/api/v1/tasks/", json={"title": "x", "frequency": "hourly"}).status_code == 422
        assert client.post("/api/v1/tasks/", json={"title": "x", "due_date": "not-a-date"}).status_code == 422

    def test_missing_parent(self, client):
        res = client.post("/api/v1/tasks/", json={"title": "Orphan", "parent_task_id": 4242})
        assert res.status_code == 404
        assert res.json()["detail"] == "Task not found"

    def test_patch_partial_and_explicit_null(self, client):
        task = create_task(client, title="Partial", due_date=TODAY, frequency="daily")
        res = client.patch(f"/api/v1/tasks/{task['id']}", json={"title": "Renamed", "frequency": None})
        assert res.status_code == 200
        patched = res.json()
        assert patched["title"] == "Renamed"
        assert patched["frequency"] is None
        assert patched["due_date"] == TODAY

        res = client.patch("/api/v1/tasks/123456", json={"title": "Nope"})
        assert res.status_code == 404
        assert res.json()["detail"] == "Task not found"

    def test_cannot_move_under_own_subtask(self, client):
        parent = create_task(client, title="Parent")
        child = create_task(client, title="Child", parent_task_id=parent["id"])
        res = client.patch(f"/api/v1/tasks/{parent['id']}", json={"parent_task_id": child["id"]})
        assert res.status_code == 400
        res = client.patch(f"/api/v1/tasks/{parent['id']}", json={"parent_task_id": parent["id"]})
        assert res.status_code == 400

    def test_delete_cascades(self, client):
        parent = create_task(client, title="Parent")
        child = create_task(client, title="Child", parent_task_id=parent["id"])
        grandchild = create_task(client, title="Grandchild", parent_task_id=child["id"])

        res = client.delete(f"/api/v1/tasks/{parent['id']}")
        assert res.status_code == 204
        assert res.text == ""
        for t in (parent, child, grandchild):
            assert client.get(f"/api/v1/tasks/{t['id']}").status_code == 404
        assert client.delete(f"/api/v1/tasks/{parent['id']}").status_code == 404

    def test_children_and_ancestors(self, client):
        root = create_task(client, title="Root")
        mid = create_task(client, title="Mid", parent_task_id=root["id"])
        leaf = create_task(client, title="Leaf", parent_task_id=mid["id"])

        children = client.get(f"/api/v1/tasks/{root['id']}/children").json()
        assert [t["title"] for t in children] == ["Mid"]
        ancestors = client.get(f"/api/v1/tasks/{leaf['id']}/ancestors").json()
        assert [t["title"] for t in ancestors] == ["Root", "Mid"]

    def test_list_pagination_and_reorder(self, client):
        ids = [create_task(client, title=f"Task {i}")["id"] for i in range(5)]
        page = client.get("/api/v1/tasks/?limit=2&offset=0").json()
        assert page["total"] == 5
        assert [t["title"] for t in page["items"]] == ["Task 0", "Task 1"]

        res = client.post("/api/v1/tasks/reorder", json={"task_ids": list(reversed(ids))})
        assert res.status_code == 200
        listed = client.get("/api/v1/tasks/?limit=10").json()["items"]
        assert [t["title"] for t in listed] == [f"Task {i}" for i in range(4, -1, -1)]

        assert client.post("/api/v1/tasks/reorder", json={"task_ids": [999]}).status_code == 404


class TestCompletion:
    def test_complete_today_stamps_now(self, client):
        task = create_task(client, title="Stretch", frequency="daily")
        res = complete(client, task["id"], NOW, day=TODAY)
        assert res.status_code == 200
        assert res.json()["completed_at"] == NOW

    def test_complete_past_day_stamps_noon(self, client):
        task = create_task(client, title="Stretch", frequency="daily")
        res = complete(client, task["id"], NOW, day=TODAY - 2 * DAY)
        assert res.json()["completed_at"] == TODAY - 2 * DAY + 12 * 60 * 60 * 1000

    def test_uncomplete_day(self, client):
        task = create_task(client, title="Read")
        complete(client, task["id"], NOW, day=TODAY)
        res = complete(client, task["id"], NOW, completed=False, day=TODAY)
        assert res.status_code == 200
        assert res.json() is None
        assert titles(client.get("/api/v1/tasks/due/day", params={"now_ms": NOW})) == ["Read"]

    def test_uncomplete_latest(self, client):
        task = create_task(client, title="Read")
        complete(client, task["id"], NOW - DAY)
        complete(client, task["id"], NOW)
        complete(client, task["id"], NOW, completed=False)
        # the earlier completion survives, so the one-off stays done
        assert titles(client.get("/api/v1/tasks/due/day", params={"now_ms": NOW})) == []

    def test_complete_missing_task(self, client):
        assert complete(client, 999, NOW).status_code == 404

    def test_complete_task_and_subtasks_and_summary(self, client):
        parent = create_task(client, title="Clean house")
        for name in ("Kitchen", "Bathroom", "Bedroom"):
            create_task(client, title=name, parent_task_id=parent["id"])

        summary = client.get(f"/api/v1/tasks/{parent['id']}/completion", params={"now_ms": NOW}).json()
        assert summary == {"completed": 0, "total": 3}

        res = client.post(f"/api/v1/tasks/{parent['id']}/complete-all", params={"now_ms": NOW})
        assert res.json() == {"completed": 4}

        summary = client.get(f"/api/v1/tasks/{parent['id']}/completion", params={"now_ms": NOW}).json()
        assert summary == {"completed": 3, "total": 3}
        tomorrow = client.get(
            f"/api/v1/tasks/{parent['id']}/completion", params={"now_ms": NOW, "day_ms": TODAY + DAY}
        ).json()
        assert tomorrow == {"completed": 0, "total": 3}


class TestDueViews:
    def test_due_on_day(self, client):
        create_task(client, title="Anytime")
        create_task(client, title="Due today", due_date=TODAY)
        create_task(client, title="Due tomorrow", due_date=TODAY + DAY)
        create_task(client, title="Weekly", frequency="weekly")
        parent = create_task(client, title="Parent")
        create_task(client, title="Subtask", parent_task_id=parent["id"])

        today = titles(client.get("/api/v1/tasks/due/day", params={"now_ms": NOW}))
        assert set(today) == {"Anytime", "Due today", "Weekly", "Parent"}

        yesterday = titles(client.get("/api/v1/tasks/due/day", params={"now_ms": NOW, "day_ms": TODAY - DAY}))
        assert set(yesterday) == {"Anytime", "Parent"}

    def test_completed_recurring_task_shows_as_done_then_comes_back(self, client):
        task = create_task(client, title="Vitamins", frequency="daily")
        complete(client, task["id"], NOW)

        res = client.get("/api/v1/tasks/due/day", params={"now_ms": NOW})
        items = res.json()["items"]
        assert [i["title"] for i in items] == ["Vitamins"]
        assert items[0]["is_completed"] is True
        assert items[0]["latest_completion"] == NOW
        assert items[0]["next_due"] == TODAY + DAY

        res = client.get("/api/v1/tasks/due/day", params={"now_ms": NOW + DAY})
        items = res.json()["items"]
        assert items[0]["is_completed"] is False
        assert res.json()["range"] == {"start": TODAY + DAY, "end": TODAY + 2 * DAY - 1}

    def test_due_in_week(self, client):
        create_task(client, title="This Sunday", due_date=ms(2024, 3, 10))
        create_task(client, title="Next Sunday", due_date=ms(2024, 3, 17))
        create_task(client, title="Weekly", frequency="weekly")
        done = create_task(client, title="Done weekly", frequency="weekly")
        complete(client, done["id"], NOW)

        res = client.get("/api/v1/tasks/due/week", params={"now_ms": NOW})
        assert res.json()["range"] == {"start": ms(2024, 3, 10), "end": ms(2024, 3, 17) - 1}
        assert set(titles(res)) == {"This Sunday", "Weekly"}

    def test_due_in_month(self, client):
        create_task(client, title="March", due_date=ms(2024, 3, 31))
        create_task(client, title="April", due_date=ms(2024, 4, 1))
        monthly = create_task(client, title="Monthly", frequency="monthly")
        complete(client, monthly["id"], ms(2024, 2, 29, 10))

        res = client.get("/api/v1/tasks/due/month", params={"now_ms": NOW})
        assert res.json()["range"] == {"start": ms(2024, 3, 1), "end": ms(2024, 4, 1) - 1}
        assert set(titles(res)) == {"March", "Monthly"}

    def test_occurrences(self, client):
        create_task(client, title="Bins", frequency="weekly", due_date=ms(2024, 3, 4))
        create_task(client, title="Once", due_date=ms(2024, 3, 20))
        create_task(client, title="Undated")

        res = client.get(
            "/api/v1/tasks/occurrences",
            params={"start": ms(2024, 3, 1), "end": ms(2024, 4, 1) - 1, "now_ms": NOW},
        )
        assert res.status_code == 200
        by_title = {o["task"]["title"]: o["due_dates"] for o in res.json()}
        assert by_title == {
            "Bins": [ms(2024, 3, 4), ms(2024, 3, 11), ms(2024, 3, 18), ms(2024, 3, 25)],
            "Once": [ms(2024, 3, 20)],
        }

    def test_occurrences_rejects_reversed_range(self, client):
        res = client.get("/api/v1/tasks/occurrences", params={"start": 10, "end": 1})
        assert res.status_code == 400


class TestInstantBounds:
    def test_out_of_range_now_is_rejected(self, client):
        for path in ("/api/v1/tasks/due/week", "/api/v1/tasks/due/month", "/api/v1/tasks/due/day"):
            res = client.get(path, params={"now_ms": 10**17})
            assert res.status_code == 422, path
            assert res.json()["error"] == "ValidationError"

    def test_out_of_range_due_date_is_rejected(self, client):
        assert client.post("/api/v1/tasks/", json={"title": "Far", "due_date": 10**17}).status_code == 422
        assert client.post("/api/v1/tasks/", json={"title": "Far", "due_date": -(10**17)}).status_code == 422
        task = create_task(client, title="Near")
        assert client.patch(f"/api/v1/tasks/{task['id']}", json={"due_date": 10**17}).status_code == 422

    def test_out_of_range_query_instants_are_rejected(self, client):
        res = client.get("/api/v1/tasks/occurrences", params={"start": TODAY, "end": 10**17})
        assert res.status_code == 422
        assert client.get("/api/v1/tasks/due/day", params={"day_ms": -(10**17)}).status_code == 422
        task = create_task(client, title="Parent")
        res = complete(client, task["id"], NOW, day=10**17)
        assert res.status_code == 422


class TestDueDateParsing:
    def test_iso_datetime_with_offset_keys_to_its_instant(self, client):
        # 23:30 at UTC-5 is already Feb 2 in the (UTC) task calendar
        task = create_task(client, title="Late", due_date="2025-02-01T23:30:00-05:00")
        assert task["due_date"] == ms(2025, 2, 2)

    def test_iso_datetime_in_utc(self, client):
        task = create_task(client, title="Zulu", due_date="2025-02-01T23:30:00Z")
        assert task["due_date"] == ms(2025, 2, 1)

    def test_naive_iso_datetime_uses_its_date(self, client):
        task = create_task(client, title="Naive", due_date="2025-02-01T23:30:00")
        assert task["due_date"] == ms(2025, 2, 1)


class TestSortOrder:
    def test_new_task_goes_after_the_last_sibling(self, client):
        first = create_task(client, title="A")
        create_task(client, title="B")
        third = create_task(client, title="C")
        assert third["sort_order"] == 2

        client.delete(f"/api/v1/tasks/{first['id']}")
        fourth = create_task(client, title="D")
        assert fourth["sort_order"] == 3

    def test_subtasks_are_numbered_per_parent(self, client):
        create_task(client, title="Root A")
        parent = create_task(client, title="Root B")
        child = create_task(client, title="Child", parent_task_id=parent["id"])
        assert child["sort_order"] == 0


class TestViewOrders:
    def order_url(self, key):
        return f"/api/v1/tasks/orders/{key}"

    def test_views_keep_independent_orders(self, client):
        a, b, c = (create_task(client, title=t) for t in ("A", "B", "C"))
        day_key = f"root-day:{TODAY}"
        week_key = f"root-week:{ms(2024, 3, 10)}"

        res = client.put(self.order_url(day_key), json={"task_ids": [c["id"], a["id"]]})
        assert res.status_code == 200
        assert res.json() == {"view_key": day_key, "task_ids": [c["id"], a["id"]]}

        day = {"now_ms": NOW}
        week = {"now_ms": NOW}
        assert titles(client.get("/api/v1/tasks/due/day", params=day)) == ["C", "A", "B"]
        assert titles(client.get("/api/v1/tasks/due/week", params=week)) == ["A", "B", "C"]

        client.put(self.order_url(week_key), json={"task_ids": [b["id"]]})
        assert titles(client.get("/api/v1/tasks/due/week", params=week)) == ["B", "A", "C"]
        assert titles(client.get("/api/v1/tasks/due/day", params=day)) == ["C", "A", "B"]
        # another day has no saved order
        other_day = {"now_ms": NOW, "day_ms": TODAY + DAY}
        assert titles(client.get("/api/v1/tasks/due/day", params=other_day)) == ["A", "B", "C"]

    def test_saving_again_replaces_the_order(self, client):
        a, b = create_task(client, title="A"), create_task(client, title="B")
        key = f"root-month:{ms(2024, 3, 1)}"
        client.put(self.order_url(key), json={"task_ids": [b["id"], a["id"]]})
        client.put(self.order_url(key), json={"task_ids": [a["id"], 999, a["id"]]})
        assert client.get(self.order_url(key)).json()["task_ids"] == [a["id"], 999]
        assert titles(client.get("/api/v1/tasks/due/month", params={"now_ms": NOW})) == ["A", "B"]

    def test_children_order_is_per_day(self, client):
        parent = create_task(client, title="Parent")
        x = create_task(client, title="X", parent_task_id=parent["id"])
        y = create_task(client, title="Y", parent_task_id=parent["id"])
        client.put(self.order_url(f"children:{parent['id']}:{TODAY}"), json={"task_ids": [y["id"], x["id"]]})

        url = f"/api/v1/tasks/{parent['id']}/children"
        today = client.get(url, params={"now_ms": NOW}).json()
        assert [t["title"] for t in today] == ["Y", "X"]
        tomorrow = client.get(url, params={"now_ms": NOW, "day_ms": TODAY + DAY}).json()
        assert [t["title"] for t in tomorrow] == ["X", "Y"]

    def test_all_tasks_order(self, client):
        ids = [create_task(client, title=f"Task {i}")["id"] for i in range(3)]
        client.put(self.order_url("all"), json={"task_ids": [ids[2]]})
        page = client.get("/api/v1/tasks/?limit=2").json()
        assert page["total"] == 3
        assert [t["title"] for t in page["items"]] == ["Task 2", "Task 0"]

    def test_bad_and_missing_keys(self, client):
        assert client.put(self.order_url("root-day:soon"), json={"task_ids": []}).status_code == 400
        assert client.put(self.order_url("sideways"), json={"task_ids": []}).status_code == 400
        assert client.get(self.order_url("children:12")).status_code == 400
        res = client.get(self.order_url(f"root-day:{TODAY}"))
        assert res.status_code == 404
        assert res.json()["detail"] == "Task order not found"


class TestDayKeyMigration:
    def test_rekeys_due_dates_and_view_orders(self, client, monkeypatch):
        dated = create_task(client, title="Dated", due_date="2024-03-15")
        create_task(client, title="Weekly", frequency="weekly", due_date="2024-03-20")
        create_task(client, title="Undated")
        client.put(f"/api/v1/tasks/orders/root-day:{TODAY}", json={"task_ids": [dated["id"]]})
        client.put("/api/v1/tasks/orders/all", json={"task_ids": [dated["id"]]})

        monkeypatch.setenv("TASK_TIME_ZONE", "Australia/Brisbane")
        brisbane_day = ms(2024, 3, 15, tz="Australia/Brisbane")

        res = client.post("/api/v1/tasks/migrate-day-keys", params={"dry_run": True})
        assert res.status_code == 200
        assert res.json() == {"dry_run": True, "updated_tasks": 2, "updated_task_orders": 1}
        assert client.get(f"/api/v1/tasks/{dated['id']}").json()["due_date"] == TODAY

        res = client.post("/api/v1/tasks/migrate-day-keys")
        assert res.json() == {"dry_run": False, "updated_tasks": 2, "updated_task_orders": 1}
        assert client.get(f"/api/v1/tasks/{dated['id']}").json()["due_date"] == brisbane_day
        assert client.get(f"/api/v1/tasks/orders/root-day:{brisbane_day}").status_code == 200
        assert client.get(f"/api/v1/tasks/orders/root-day:{TODAY}").status_code == 404

        # converted keys are no longer UTC midnights, so a second run changes nothing
        res = client.post("/api/v1/tasks/migrate-day-keys")
        assert res.json() == {"dry_run": False, "updated_tasks": 0, "updated_task_orders": 0}

    def test_noop_in_utc(self, client):
        create_task(client, title="Dated", due_date="2024-03-15")
        res = client.post("/api/v1/tasks/migrate-day-keys")
        assert res.json() == {"dry_run": False, "updated_tasks": 0, "updated_task_orders": 0}
