"""
Tests for chained workflow triggers: filters, depth bound and dispatch.
"""

import pytest

from database.models import Workflow, WorkflowNode
from automation_service.models import NodeType
from automation_service.runtime.triggers import WorkflowTriggerDispatcher, matches_trigger_filter


class RecordingSender:
    def __init__(self, fail_for=()):
        self.sent = []
        self.fail_for = set(fail_for)

    async def __call__(self, workflow_id, initial_data):
        if workflow_id in self.fail_for:
            raise RuntimeError("queue unavailable")
        self.sent.append((workflow_id, initial_data))


def add_workflow(db, workspace_id, trigger_type, data=None, active=True, name="Flow"):
    workflow = Workflow(workspace_id=workspace_id, name=name, active=active)
    db.add(workflow)
    db.flush()
    db.add(WorkflowNode(workflow_id=workflow.id, type=trigger_type.value, name="Trigger", data=data or {}))
    db.commit()
    return workflow.id


# =============================================================================
# Filters
# =============================================================================


def test_no_filter_always_matches():
    assert matches_trigger_filter(NodeType.CATEGORY_ADDED, {}, {"categoryName": "vip"})
    assert matches_trigger_filter(NodeType.MANUAL_TRIGGER, {"anything": 1}, {})


def test_category_filter():
    data = {"categoryName": "vip"}
    assert matches_trigger_filter(NodeType.CATEGORY_ADDED, data, {"categoryName": "vip"})
    assert not matches_trigger_filter(NodeType.CATEGORY_ADDED, data, {"categoryName": "no-show"})


def test_review_rating_range():
    data = {"minRating": 1, "maxRating": 3}
    assert matches_trigger_filter(NodeType.REVIEW_RECEIVED, data, {"rating": 2})
    assert not matches_trigger_filter(NodeType.REVIEW_RECEIVED, data, {"rating": 5})
    assert not matches_trigger_filter(NodeType.REVIEW_RECEIVED, data, {})


def test_stage_source_and_keyword_filters():
    assert matches_trigger_filter(NodeType.STAGE_CHANGED, {"stage": "customer"}, {"newStage": "customer"})
    assert not matches_trigger_filter(NodeType.STAGE_CHANGED, {"stage": "customer"}, {"newStage": "lead"})
    assert not matches_trigger_filter(NodeType.CONTACT_CREATED, {"source": "keyword"}, {"source": "import"})
    assert matches_trigger_filter(NodeType.KEYWORD_JOINED, {"keyword": "SMILE"}, {"keyword": "SMILE"})


# =============================================================================
# Dispatch
# =============================================================================


@pytest.mark.asyncio
async def test_fire_sends_matching_workflows_with_incremented_depth(db, session_factory, workspace):
    vip_flow = add_workflow(db, workspace.id, NodeType.CATEGORY_ADDED, {"categoryName": "vip"})
    add_workflow(db, workspace.id, NodeType.CATEGORY_ADDED, {"categoryName": "no-show"}, name="No-show")
    add_workflow(db, workspace.id, NodeType.STAGE_CHANGED, name="Stage")
    sender = RecordingSender()
    dispatcher = WorkflowTriggerDispatcher(sender, session_factory, max_depth=3)

    sent = await dispatcher.fire(
        NodeType.CATEGORY_ADDED,
        {"workspaceId": workspace.id, "contactId": "c1", "categoryName": "vip"},
        trigger_depth=1,
    )

    assert sent == 1
    workflow_id, initial_data = sender.sent[0]
    assert workflow_id == vip_flow
    assert initial_data["contactId"] == "c1"
    assert initial_data["_trigger"]["type"] == "CATEGORY_ADDED"
    assert initial_data["_trigger"]["depth"] == 2


@pytest.mark.asyncio
async def test_depth_limit_stops_chain(db, session_factory, workspace):
    add_workflow(db, workspace.id, NodeType.STAGE_CHANGED)
    sender = RecordingSender()
    dispatcher = WorkflowTriggerDispatcher(sender, session_factory, max_depth=3)

    assert await dispatcher.fire(NodeType.STAGE_CHANGED, {"workspaceId": workspace.id}, trigger_depth=3) == 0
    assert await dispatcher.fire(NodeType.STAGE_CHANGED, {"workspaceId": workspace.id}, trigger_depth=2) == 1
    assert len(sender.sent) == 1


@pytest.mark.asyncio
async def test_falls_back_to_inactive_workflows(db, session_factory, workspace):
    draft = add_workflow(db, workspace.id, NodeType.CONTACT_CREATED, active=False)
    sender = RecordingSender()

    sent = await WorkflowTriggerDispatcher(sender, session_factory).fire(
        NodeType.CONTACT_CREATED, {"workspaceId": workspace.id}
    )

    assert sent == 1
    assert sender.sent[0][0] == draft


@pytest.mark.asyncio
async def test_active_workflows_take_precedence(db, session_factory, workspace):
    active = add_workflow(db, workspace.id, NodeType.CONTACT_CREATED, active=True)
    add_workflow(db, workspace.id, NodeType.CONTACT_CREATED, active=False, name="Draft")
    sender = RecordingSender()

    await WorkflowTriggerDispatcher(sender, session_factory).fire(NodeType.CONTACT_CREATED, {"workspaceId": workspace.id})

    assert [w for w, _ in sender.sent] == [active]


@pytest.mark.asyncio
async def test_workflow_with_two_trigger_nodes_fires_once(db, session_factory, workspace):
    workflow_id = add_workflow(db, workspace.id, NodeType.STAGE_CHANGED)
    db.add(WorkflowNode(workflow_id=workflow_id, type=NodeType.STAGE_CHANGED.value, data={}))
    db.commit()
    sender = RecordingSender()

    sent = await WorkflowTriggerDispatcher(sender, session_factory).fire(
        NodeType.STAGE_CHANGED, {"workspaceId": workspace.id}
    )

    assert sent == 1


@pytest.mark.asyncio
async def test_send_failures_are_isolated(db, session_factory, workspace):
    broken = add_workflow(db, workspace.id, NodeType.KEYWORD_JOINED, name="Broken")
    working = add_workflow(db, workspace.id, NodeType.KEYWORD_JOINED, name="Working")
    sender = RecordingSender(fail_for={broken})

    sent = await WorkflowTriggerDispatcher(sender, session_factory).fire(
        NodeType.KEYWORD_JOINED, {"workspaceId": workspace.id, "keyword": "SMILE"}
    )

    assert sent == 1
    assert sender.sent[0][0] == working


@pytest.mark.asyncio
async def test_other_workspaces_and_missing_workspace(db, session_factory, workspace, other_workspace):
    add_workflow(db, other_workspace.id, NodeType.REVIEW_RECEIVED)
    sender = RecordingSender()
    dispatcher = WorkflowTriggerDispatcher(sender, session_factory)

    assert await dispatcher.fire(NodeType.REVIEW_RECEIVED, {"workspaceId": workspace.id}) == 0
    assert await dispatcher.fire(NodeType.REVIEW_RECEIVED, {}) == 0
    assert sender.sent == []
