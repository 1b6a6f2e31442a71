import copy

from fastapi.testclient import TestClient
from sqlmodel import Session, select

from bnrm.core.config import settings
from bnrm.models import ActivityLog, WorkflowDefinition, WorkflowRole, WorkflowStep
from bnrm.tests.utils.utils import random_lower_string
from bnrm.workflows import sync
from bnrm.workflows.predefined import PREDEFINED_WORKFLOWS, get_predefined


def _model(module: str | None = None) -> dict:
    suffix = random_lower_string()[:8]
    return {
        "code": f"TEST_{suffix}",
        "name": f"Circuit de test {suffix}",
        "description": "Circuit de reproduction de documents.",
        "workflow_type": "reproduction",
        "module": module or f"module_{suffix}",
        "color": "#000000",
        "roles": [
            {"name": "Demandeur", "level": "external"},
            {"name": "Atelier", "level": "module"},
        ],
        "steps": [
            {"order": 1, "name": "Demande", "type": "submission", "required_role": "Demandeur"},
            {"order": 2, "name": "Reproduction", "type": "processing", "required_role": "Atelier"},
        ],
        "transitions": [
            {"from_step": 0, "to_step": 1, "name": "Créer", "condition": None},
            {"from_step": 1, "to_step": 2, "name": "Traiter", "condition": None},
            {"from_step": 2, "to_step": None, "name": "Livrer", "condition": None},
        ],
    }


def test_predefined_models_are_consistent():
    names = [m["name"] for m in PREDEFINED_WORKFLOWS]
    assert len(names) == len(set(names))
    for model in PREDEFINED_WORKFLOWS:
        orders = {s["order"] for s in model["steps"]}
        for transition in model["transitions"]:
            assert transition["from_step"] == 0 or transition["from_step"] in orders
            assert transition["to_step"] is None or transition["to_step"] in orders
        assert get_predefined(model["name"]) is model
    assert get_predefined("inconnu") is None


def test_sync_creates_missing_workflows(db: Session):
    models = [_model(), _model()]
    status = sync.check_sync_status(db, models)
    assert status.total == 2
    assert status.missing == 2

    assert sync.sync_all_workflows(db, models) == [m["name"] for m in models]
    assert sync.sync_all_workflows(db, models) == []
    status = sync.check_sync_status(db, models)
    assert status.synced == 2
    assert status.missing_names == []

    workflow = db.exec(select(WorkflowDefinition).where(WorkflowDefinition.name == models[0]["name"])).one()
    assert workflow.configuration["code"] == models[0]["code"]
    assert workflow.configuration["auto_synced"] is True
    assert not sync.detect_changes(db, workflow, models[0]).has_changes


def test_roles_are_deduplicated_per_module(db: Session):
    module = f"shared_{random_lower_string()[:8]}"
    sync.sync_all_workflows(db, [_model(module), _model(module)])
    roles = db.exec(select(WorkflowRole).where(WorkflowRole.module == module)).all()
    assert sorted(r.role_name for r in roles) == ["Atelier", "Demandeur"]


def test_auto_sync_repairs_drift(db: Session):
    model = _model()
    sync.sync_all_workflows(db, [model])
    workflow = db.exec(select(WorkflowDefinition).where(WorkflowDefinition.name == model["name"])).one()

    changed = copy.deepcopy(model)
    changed["workflow_type"] = "reproduction_numerique"
    changed["steps"].append({"order": 3, "name": "Contrôle", "type": "validation", "required_role": "Atelier"})
    changed["transitions"][-1]["to_step"] = 3
    changed["transitions"].append({"from_step": 3, "to_step": None, "name": "Livrer", "condition": None})

    changes = sync.detect_changes(db, workflow, changed)
    assert changes.has_changes
    assert changes.changes == [
        "steps: 2 -> 3",
        "transitions: 3 -> 4",
        "workflow_type: reproduction -> reproduction_numerique",
    ]

    result = sync.auto_sync(db, [changed])
    assert result.created == []
    assert result.updated == [model["name"]]

    db.refresh(workflow)
    assert workflow.version == 2
    assert workflow.workflow_type == "reproduction_numerique"
    steps = db.exec(select(WorkflowStep).where(WorkflowStep.workflow_id == workflow.id)).all()
    assert len(steps) == 3
    log = db.exec(
        select(ActivityLog).where(
            ActivityLog.action == "workflow_auto_synced", ActivityLog.resource_id == str(workflow.id)
        )
    ).first()
    assert log is not None

    assert sync.auto_sync(db, [changed]).updated == []


def test_export_matches_model_shape(db: Session):
    model = _model()
    sync.sync_all_workflows(db, [model])
    workflow = db.exec(select(WorkflowDefinition).where(WorkflowDefinition.name == model["name"])).one()

    exported = sync.export_workflow(db, workflow)
    assert exported["name"] == model["name"]
    assert exported["code"] == model["code"]
    assert exported["steps"] == [
        {"order": s["order"], "name": s["name"], "type": s["type"], "required_role": s["required_role"]}
        for s in model["steps"]
    ]
    assert sorted((t["from_step"], t["to_step"] or 0) for t in exported["transitions"]) == [(0, 1), (1, 2), (2, 0)]
    assert {r["name"] for r in exported["roles"]} == {"Demandeur", "Atelier"}


def test_workflow_routes(client: TestClient, superuser_token_headers: dict[str, str]):
    url = f"{settings.API_V1_STR}/workflows"
    r = client.post(f"{url}/sync", headers=superuser_token_headers)
    assert r.status_code == 200
    r = client.get(f"{url}/sync-status", headers=superuser_token_headers)
    assert r.json()["missing"] == 0
    assert r.json()["total"] == len(PREDEFINED_WORKFLOWS)

    workflows = client.get(f"{url}/", headers=superuser_token_headers).json()
    predefined = next(w for w in workflows if w["name"] == PREDEFINED_WORKFLOWS[0]["name"])
    r = client.get(f"{url}/{predefined['id']}/changes", headers=superuser_token_headers)
    assert r.json()["has_changes"] is False
    r = client.get(f"{url}/{predefined['id']}/export", headers=superuser_token_headers)
    assert len(r.json()["steps"]) == len(PREDEFINED_WORKFLOWS[0]["steps"])
