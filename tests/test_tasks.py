import pytest

from astralis.db.enums import TaskStatus
from astralis.schemas.task import TaskCreate, TaskUpdate
from astralis.services import task_service


def _task(db, org, title="Call back", **kwargs):
    return task_service.create_task(db, org.id, None, TaskCreate(title=title, **kwargs))


@pytest.mark.parametrize(
    "current,target",
    [
        (TaskStatus.NEW, TaskStatus.IN_PROGRESS),
        (TaskStatus.IN_PROGRESS, TaskStatus.NEEDS_REVIEW),
        (TaskStatus.BLOCKED, TaskStatus.IN_PROGRESS),
        (TaskStatus.DONE, TaskStatus.DONE),
    ],
)
def test_allowed_transitions(current, target):
    task_service.validate_transition(current, target)


@pytest.mark.parametrize(
    "current,target",
    [
        (TaskStatus.DONE, TaskStatus.IN_PROGRESS),
        (TaskStatus.CANCELLED, TaskStatus.NEW),
        (TaskStatus.BLOCKED, TaskStatus.DONE),
        (TaskStatus.IN_PROGRESS, TaskStatus.NEW),
    ],
)
def test_rejected_transitions(current, target):
    with pytest.raises(ValueError, match=f"from {current.value} to {target.value}"):
        task_service.validate_transition(current, target)


def test_update_task_applies_status_and_fields(db, test_org):
    task = _task(db, test_org)

    task = task_service.update_task(
        db, task, TaskUpdate(status=TaskStatus.IN_PROGRESS, priority=5, tags=None)
    )

    assert task.status == TaskStatus.IN_PROGRESS.value
    assert task.priority == 5
    assert task.tags == []


def test_cancel_terminal_task_fails(db, test_org):
    task = _task(db, test_org)
    task_service.update_task(db, task, TaskUpdate(status=TaskStatus.DONE))

    with pytest.raises(ValueError):
        task_service.cancel_task(db, task)


def test_list_tasks_filters(db, test_org, other_org):
    _task(db, test_org, title="Invoice follow-up", priority=2, pipeline_key="billing")
    _task(db, test_org, title="Renewal call", priority=5)
    _task(db, other_org, title="Invoice elsewhere")

    tasks, total = task_service.list_tasks(db, test_org.id)
    assert total == 2
    assert [t.title for t in tasks] == ["Renewal call", "Invoice follow-up"]

    tasks, _ = task_service.list_tasks(db, test_org.id, q="invoice")
    assert [t.title for t in tasks] == ["Invoice follow-up"]

    tasks, _ = task_service.list_tasks(db, test_org.id, pipeline_key="billing")
    assert len(tasks) == 1


# =============================================================================
# API
# =============================================================================

@pytest.mark.asyncio
async def test_task_list_pagination(authed_client):
    for i in range(3):
        res = await authed_client.post("/tasks", json={"title": f"Task {i}", "priority": i + 1})
        assert res.status_code == 201

    res = await authed_client.get("/tasks", params={"per_page": 2, "page": 2})

    body = res.json()
    assert body["total"] == 3
    assert body["pages"] == 2
    assert [t["title"] for t in body["items"]] == ["Task 0"]


@pytest.mark.asyncio
async def test_invalid_transition_is_a_bad_request(authed_client):
    task = (await authed_client.post("/tasks", json={"title": "Review contract"})).json()
    await authed_client.patch(f"/tasks/{task['id']}", json={"status": "DONE"})

    res = await authed_client.patch(f"/tasks/{task['id']}", json={"status": "IN_PROGRESS"})

    assert res.status_code == 400
    assert res.json()["detail"] == "Invalid status transition from DONE to IN_PROGRESS"


@pytest.mark.asyncio
async def test_delete_cancels_task(authed_client):
    task = (await authed_client.post("/tasks", json={"title": "Obsolete"})).json()

    res = await authed_client.delete(f"/tasks/{task['id']}")
    assert res.status_code == 200
    assert res.json()["status"] == "CANCELLED"

    res = await authed_client.get(f"/tasks/{task['id']}")
    assert res.json()["status"] == "CANCELLED"

    res = await authed_client.patch(f"/tasks/{task['id']}", json={"status": "IN_PROGRESS"})
    assert res.status_code == 400


@pytest.mark.asyncio
async def test_tasks_are_org_scoped(db, other_org, authed_client):
    task = _task(db, other_org)

    res = await authed_client.get(f"/tasks/{task.id}")
    assert res.status_code == 404
