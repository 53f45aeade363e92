import uuid

import pytest

from astralis.db.enums import PipelineItemStatus
from astralis.schemas.pipeline import (
    PipelineCreate,
    PipelineItemCreate,
    PipelineItemUpdate,
    StageCreate,
)
from astralis.services import pipeline_service


def _pipeline(db, org, name="Onboarding", **kwargs):
    return pipeline_service.create_pipeline(db, org.id, None, PipelineCreate(name=name, **kwargs))


def test_create_pipeline_adds_default_stages(db, test_org):
    pipeline = _pipeline(db, test_org)

    assert [(s.name, s.order) for s in pipeline.stages] == [
        ("New", 0),
        ("In Progress", 1),
        ("Done", 2),
    ]


def test_explicit_stages_keep_their_order(db, test_org):
    pipeline = _pipeline(
        db,
        test_org,
        stages=[StageCreate(name="Review", order=5), StageCreate(name="Intake", order=1)],
    )

    assert [s.name for s in pipeline_service.get_stages(db, pipeline.id)] == ["Intake", "Review"]
    assert pipeline_service.get_default_stage(db, pipeline.id).name == "Intake"


def test_new_stage_goes_last(db, test_org):
    pipeline = _pipeline(db, test_org)

    stage = pipeline_service.create_stage(db, pipeline, StageCreate(name="Archived", color="#999999"))

    assert stage.order == 3


def test_delete_stage_unassigns_items(db, test_org):
    pipeline = _pipeline(db, test_org)
    item = pipeline_service.create_item(
        db, test_org.id, pipeline, None, PipelineItemCreate(title="Welcome kit")
    )
    assert item.stage_id == pipeline.stages[0].id

    pipeline_service.delete_stage(db, pipeline.stages[0])

    db.refresh(item)
    assert item.stage_id is None


def test_items_are_sorted_by_priority(db, test_org):
    pipeline = _pipeline(db, test_org)
    for title, priority in [("Low", 0), ("Top", 4), ("Mid", 2)]:
        pipeline_service.create_item(
            db, test_org.id, pipeline, None, PipelineItemCreate(title=title, priority=priority)
        )

    assert [i.title for i in pipeline_service.list_items(db, pipeline.id)] == ["Top", "Mid", "Low"]


def test_item_refs_are_validated(db, test_org, other_org, user_factory):
    pipeline = _pipeline(db, test_org)
    other = _pipeline(db, other_org, name="Other")
    outsider = user_factory(other_org)

    with pytest.raises(ValueError, match="Stage not found in this pipeline"):
        pipeline_service.create_item(
            db,
            test_org.id,
            pipeline,
            None,
            PipelineItemCreate(title="Task", stage_id=other.stages[0].id),
        )
    with pytest.raises(ValueError, match="Assignee is not a member"):
        pipeline_service.create_item(
            db,
            test_org.id,
            pipeline,
            None,
            PipelineItemCreate(title="Task", assigned_to_user_id=outsider.id),
        )


def test_completing_an_item_sets_full_progress(db, test_org):
    pipeline = _pipeline(db, test_org)
    item = pipeline_service.create_item(
        db, test_org.id, pipeline, None, PipelineItemCreate(title="Ship it", progress=40)
    )

    item = pipeline_service.update_item(
        db, test_org.id, item, PipelineItemUpdate(status=PipelineItemStatus.COMPLETED)
    )

    assert item.status == PipelineItemStatus.COMPLETED.value
    assert item.progress == 100


def test_get_item_checks_pipeline(db, test_org):
    first = _pipeline(db, test_org, name="First")
    second = _pipeline(db, test_org, name="Second")
    item = pipeline_service.create_item(
        db, test_org.id, first, None, PipelineItemCreate(title="Mine")
    )

    assert pipeline_service.get_item(db, second.id, uuid.uuid4()) is None
    with pytest.raises(pipeline_service.PipelineItemAccessError):
        pipeline_service.get_item(db, second.id, item.id)


# =============================================================================
# API
# =============================================================================

@pytest.mark.asyncio
async def test_pipeline_api_flow(authed_client):
    res = await authed_client.post("/pipelines", json={"name": "Support"})
    assert res.status_code == 201
    pipeline = res.json()
    assert len(pipeline["stages"]) == 3

    res = await authed_client.post(
        f"/pipelines/{pipeline['id']}/items", json={"title": "Reset password", "priority": 3}
    )
    assert res.status_code == 201
    item = res.json()
    assert item["stage_id"] == pipeline["stages"][0]["id"]

    res = await authed_client.patch(
        f"/pipelines/{pipeline['id']}/items/{item['id']}",
        json={"stage_id": pipeline["stages"][2]["id"], "status": "COMPLETED"},
    )
    assert res.json()["progress"] == 100

    res = await authed_client.get(
        f"/pipelines/{pipeline['id']}/items", params={"status": "COMPLETED"}
    )
    assert [i["title"] for i in res.json()] == ["Reset password"]


@pytest.mark.asyncio
async def test_item_from_another_pipeline_is_forbidden(authed_client):
    first = (await authed_client.post("/pipelines", json={"name": "First"})).json()
    second = (await authed_client.post("/pipelines", json={"name": "Second"})).json()
    item = (
        await authed_client.post(f"/pipelines/{first['id']}/items", json={"title": "Mine"})
    ).json()

    res = await authed_client.get(f"/pipelines/{second['id']}/items/{item['id']}")
    assert res.status_code == 403

    res = await authed_client.get(f"/pipelines/{first['id']}/items/{uuid.uuid4()}")
    assert res.status_code == 404


@pytest.mark.asyncio
async def test_bad_stage_reference_is_a_bad_request(authed_client):
    pipeline = (await authed_client.post("/pipelines", json={"name": "Support"})).json()

    res = await authed_client.post(
        f"/pipelines/{pipeline['id']}/items",
        json={"title": "Orphan", "stage_id": str(uuid.uuid4())},
    )

    assert res.status_code == 400
    assert res.json()["detail"] == "Stage not found in this pipeline"


@pytest.mark.asyncio
async def test_stage_api(authed_client):
    pipeline = (await authed_client.post("/pipelines", json={"name": "Support"})).json()

    res = await authed_client.post(
        f"/pipelines/{pipeline['id']}/stages", json={"name": "Escalated", "color": "#FF0000"}
    )
    assert res.status_code == 201
    stage = res.json()
    assert stage["order"] == 3

    res = await authed_client.post(
        f"/pipelines/{pipeline['id']}/stages", json={"name": "Bad", "color": "red"}
    )
    assert res.status_code == 422

    res = await authed_client.delete(f"/pipelines/{pipeline['id']}/stages/{stage['id']}")
    assert res.status_code == 204
    res = await authed_client.get(f"/pipelines/{pipeline['id']}/stages")
    assert [s["name"] for s in res.json()] == ["New", "In Progress", "Done"]


@pytest.mark.asyncio
async def test_pipelines_are_org_scoped(db, other_org, authed_client):
    foreign = _pipeline(db, other_org, name="Theirs")

    res = await authed_client.get(f"/pipelines/{foreign.id}")
    assert res.status_code == 404
    res = await authed_client.get("/pipelines")
    assert res.json() == []
