"""
Keeps the workflow tables in line with the predefined workflow models:
creates missing definitions, detects drift and exports rows back into the
model shape.
"""
import logging
import uuid
from typing import Any

from pydantic import BaseModel, Field
from sqlmodel import Session, col, select

from bnrm import crud
from bnrm.models import WorkflowDefinition, WorkflowRole, WorkflowStep, WorkflowTransition
from bnrm.workflows.predefined import PREDEFINED_WORKFLOWS, get_predefined

logger = logging.getLogger(__name__)


class SyncStatus(BaseModel):
    total: int
    synced: int
    missing: int
    missing_names: list[str] = Field(default_factory=list)


class WorkflowChanges(BaseModel):
    name: str
    has_changes: bool = False
    changes: list[str] = Field(default_factory=list)


class AutoSyncResult(BaseModel):
    created: list[str] = Field(default_factory=list)
    updated: list[str] = Field(default_factory=list)


def check_sync_status(
    session: Session, models: list[dict[str, Any]] = PREDEFINED_WORKFLOWS
) -> SyncStatus:
    existing = set(session.exec(select(WorkflowDefinition.name)).all())
    missing = [m["name"] for m in models if m["name"] not in existing]
    return SyncStatus(
        total=len(models),
        synced=len(models) - len(missing),
        missing=len(missing),
        missing_names=missing,
    )


def _ensure_roles(session: Session, model: dict[str, Any]) -> None:
    for role in model["roles"]:
        existing = session.exec(
            select(WorkflowRole).where(
                WorkflowRole.role_name == role["name"], WorkflowRole.module == model["module"]
            )
        ).first()
        if existing is None:
            session.add(
                WorkflowRole(
                    role_name=role["name"],
                    module=model["module"],
                    role_level=role["level"],
                    description=f"Rôle auto-synchronisé pour {model['name']}",
                )
            )
            # Later models of the same module must see this role
            session.flush()


def _create_steps_and_transitions(
    session: Session, workflow: WorkflowDefinition, model: dict[str, Any]
) -> None:
    step_ids: dict[int, uuid.UUID] = {}
    for step in model["steps"]:
        row = WorkflowStep(
            workflow_id=workflow.id,
            step_name=step["name"],
            step_type=step["type"],
            step_number=step["order"],
            required_role=step.get("required_role"),
        )
        session.add(row)
        step_ids[step["order"]] = row.id
    session.flush()

    for transition in model["transitions"]:
        from_step, to_step = transition["from_step"], transition["to_step"]
        session.add(
            WorkflowTransition(
                workflow_id=workflow.id,
                transition_name=transition["name"],
                from_step_id=None if from_step == 0 else step_ids.get(from_step),
                to_step_id=None if to_step is None else step_ids.get(to_step),
                condition=transition.get("condition"),
            )
        )


def _create_workflow(session: Session, model: dict[str, Any]) -> WorkflowDefinition:
    workflow = WorkflowDefinition(
        name=model["name"],
        description=model.get("description"),
        workflow_type=model["workflow_type"],
        module=model["module"],
        version=1,
        is_active=True,
        configuration={
            "predefined": True,
            "code": model["code"],
            "color": model.get("color"),
            "auto_synced": True,
        },
    )
    session.add(workflow)
    session.flush()
    _ensure_roles(session, model)
    _create_steps_and_transitions(session, workflow, model)
    return workflow


def sync_all_workflows(
    session: Session, models: list[dict[str, Any]] = PREDEFINED_WORKFLOWS
) -> list[str]:
    """Create every predefined workflow missing from the database; returns their names."""
    existing = set(session.exec(select(WorkflowDefinition.name)).all())
    synced: list[str] = []
    for model in models:
        if model["name"] in existing:
            continue
        _create_workflow(session, model)
        synced.append(model["name"])
    session.commit()
    if synced:
        logger.info("Synchronized %s workflow(s): %s", len(synced), ", ".join(synced))
    else:
        logger.info("All predefined workflows are already synchronized")
    return synced


def detect_changes(
    session: Session, workflow: WorkflowDefinition, model: dict[str, Any] | None = None
) -> WorkflowChanges:
    """Compare a stored definition to its predefined model."""
    model = model or get_predefined(workflow.name)
    result = WorkflowChanges(name=workflow.name)
    if model is None:
        return result

    step_count = len(
        session.exec(select(WorkflowStep.id).where(WorkflowStep.workflow_id == workflow.id)).all()
    )
    transition_count = len(
        session.exec(
            select(WorkflowTransition.id).where(WorkflowTransition.workflow_id == workflow.id)
        ).all()
    )
    if step_count != len(model["steps"]):
        result.changes.append(f"steps: {step_count} -> {len(model['steps'])}")
    if transition_count != len(model["transitions"]):
        result.changes.append(f"transitions: {transition_count} -> {len(model['transitions'])}")
    if workflow.workflow_type != model["workflow_type"]:
        result.changes.append(f"workflow_type: {workflow.workflow_type} -> {model['workflow_type']}")
    result.has_changes = bool(result.changes)
    return result


def _resync_workflow(session: Session, workflow: WorkflowDefinition, model: dict[str, Any]) -> None:
    for transition in session.exec(
        select(WorkflowTransition).where(WorkflowTransition.workflow_id == workflow.id)
    ).all():
        session.delete(transition)
    session.flush()
    for step in session.exec(select(WorkflowStep).where(WorkflowStep.workflow_id == workflow.id)).all():
        session.delete(step)
    session.flush()

    workflow.workflow_type = model["workflow_type"]
    workflow.description = model.get("description")
    workflow.version += 1
    workflow.configuration = {
        **(workflow.configuration or {}),
        "predefined": True,
        "code": model["code"],
        "color": model.get("color"),
        "auto_synced": True,
    }
    session.add(workflow)
    _ensure_roles(session, model)
    _create_steps_and_transitions(session, workflow, model)


def auto_sync(
    session: Session,
    models: list[dict[str, Any]] = PREDEFINED_WORKFLOWS,
    user_id: uuid.UUID | None = None,
) -> AutoSyncResult:
    result = AutoSyncResult(created=sync_all_workflows(session, models))

    for model in models:
        workflow = session.exec(
            select(WorkflowDefinition).where(WorkflowDefinition.name == model["name"])
        ).first()
        if workflow is None:
            continue
        changes = detect_changes(session, workflow, model)
        if not changes.has_changes:
            continue
        logger.info("Workflow %s drifted (%s), re-syncing", workflow.name, "; ".join(changes.changes))
        _resync_workflow(session, workflow, model)
        crud.insert_activity_log(
            session=session,
            action="workflow_auto_synced",
            resource_type="workflow_definition",
            resource_id=workflow.id,
            details={"changes": changes.changes, "version": workflow.version},
            user_id=user_id,
            commit=False,
        )
        result.updated.append(workflow.name)
    session.commit()
    return result


def export_workflow(session: Session, workflow: WorkflowDefinition) -> dict[str, Any]:
    steps = session.exec(
        select(WorkflowStep)
        .where(WorkflowStep.workflow_id == workflow.id)
        .order_by(col(WorkflowStep.step_number))
    ).all()
    order_by_id = {step.id: step.step_number for step in steps}
    transitions = session.exec(
        select(WorkflowTransition).where(WorkflowTransition.workflow_id == workflow.id)
    ).all()
    roles = session.exec(select(WorkflowRole).where(WorkflowRole.module == workflow.module)).all()

    return {
        "name": workflow.name,
        "description": workflow.description,
        "workflow_type": workflow.workflow_type,
        "module": workflow.module,
        "version": workflow.version,
        "code": (workflow.configuration or {}).get("code"),
        "steps": [
            {
                "order": step.step_number,
                "name": step.step_name,
                "type": step.step_type,
                "required_role": step.required_role,
            }
            for step in steps
        ],
        "transitions": [
            {
                "from_step": order_by_id.get(t.from_step_id, 0) if t.from_step_id else 0,
                "to_step": order_by_id.get(t.to_step_id) if t.to_step_id else None,
                "name": t.transition_name,
                "condition": t.condition,
            }
            for t in transitions
        ],
        "roles": [{"name": role.role_name, "level": role.role_level} for role in roles],
    }
