"""
FastAPI Server for the Lifecycle Workflow Engine.

Provides REST API endpoints for template administration, workflow
instances and their steps, exception handling, audit retrieval and
maintenance sweeps.
"""

import logging
from contextlib import asynccontextmanager
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

import uvicorn
from fastapi import FastAPI, Header, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from .. import __version__
from ..config import load_settings
from ..engine.factory import Engine, build_engine
from ..errors import (
    InvalidWorkflowDefinition,
    NotFoundError,
    PreconditionViolation,
    TransactionConflict,
    WorkflowEngineError,
)
from ..integrations.dispatcher import summarize_attempt
from ..models import (
    ExceptionKind,
    InstanceRecord,
    InstanceStatus,
    LifecycleType,
    ResolutionStatus,
    Severity,
    StepBlueprint,
    StepStatus,
    TemplateStatus,
)

logger = logging.getLogger(__name__)


# Pydantic models for API requests
class TemplateRequest(BaseModel):
    """New draft template."""
    name: str = Field(..., description="Template name")
    lifecycle_type: LifecycleType = Field(..., description="Lifecycle event the template serves")
    description: Optional[str] = None
    department: Optional[str] = Field(None, description="Department scope")
    role: Optional[str] = Field(None, description="Job role scope")
    steps: List[StepBlueprint] = Field(default_factory=list)
    actor: Optional[str] = None


class TemplateUpdateRequest(BaseModel):
    """Changes to a draft template; omitted fields are left as they are."""
    name: Optional[str] = None
    description: Optional[str] = None
    department: Optional[str] = None
    role: Optional[str] = None
    steps: Optional[List[StepBlueprint]] = None
    actor: Optional[str] = None


class ActorRequest(BaseModel):
    actor: Optional[str] = None
    name: Optional[str] = Field(None, description="New name (duplicate only)")


class WorkflowRequest(BaseModel):
    """
    Workflow instantiation request.

    Give a template_id, an explicit list of steps, or a lifecycle_type to
    pick the most specific published template for the department and role.
    """
    employee_id: str = Field(..., description="Subject employee identifier")
    start_date: date = Field(..., description="Start date the step due dates are offset from")
    template_id: Optional[str] = None
    steps: Optional[List[StepBlueprint]] = None
    lifecycle_type: Optional[LifecycleType] = None
    department: Optional[str] = None
    role: Optional[str] = None
    name: Optional[str] = None
    expected_completion: Optional[date] = None
    assigned_roles: Dict[str, str] = Field(default_factory=dict, description="Role -> person")
    actor: Optional[str] = None


class TransitionRequest(BaseModel):
    status: StepStatus = Field(..., description="Requested step status")
    notes: Optional[str] = None
    actor: Optional[str] = None


class CancelRequest(BaseModel):
    reason: Optional[str] = None
    actor: Optional[str] = None


class ExceptionRequest(BaseModel):
    """Manually raised workflow exception."""
    title: str
    kind: ExceptionKind = ExceptionKind.MANUAL_INTERVENTION
    severity: Severity = Severity.MEDIUM
    description: Optional[str] = None
    step_id: Optional[str] = None
    assignee: Optional[str] = None
    actor: Optional[str] = None


class ResolutionRequest(BaseModel):
    notes: Optional[str] = None
    actor: Optional[str] = None


# Global engine (initialized on startup)
engine: Optional[Engine] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    global engine

    logger.info("Initializing Lifecycle Engine API server components")
    engine = build_engine(load_settings())
    logger.info("Lifecycle Engine API server components initialized")

    yield

    logger.info("Shutting down Lifecycle Engine API server")


app = FastAPI(
    title="Lifecycle Workflow Engine API",
    description="HR lifecycle workflows - templates, instances, integrations and exceptions",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _engine() -> Engine:
    if engine is None:
        raise HTTPException(status_code=503, detail="Workflow engine not available")
    return engine


def _actor(body_actor: Optional[str], header_actor: Optional[str]) -> str:
    actor = body_actor or header_actor
    if not actor:
        raise HTTPException(status_code=400, detail="An actor is required (body field or X-Actor header)")
    return actor


def _http_error(error: WorkflowEngineError) -> HTTPException:
    """Map an engine error to an HTTP error with structured detail."""
    if isinstance(error, TransactionConflict):
        status_code = 503
    elif isinstance(error, NotFoundError):
        status_code = 404
    elif isinstance(error, InvalidWorkflowDefinition):
        status_code = 422
    elif isinstance(error, PreconditionViolation):
        status_code = 409
    else:
        status_code = 400
    return HTTPException(status_code=status_code, detail=error.to_dict())


def _record_view(record: InstanceRecord) -> Dict[str, Any]:
    return {
        "instance": record.instance.model_dump(mode="json"),
        "steps": [s.model_dump(mode="json") for s in record.ordered_steps()],
        "attempts": [summarize_attempt(a) for a in record.attempts],
        "exceptions": [e.model_dump(mode="json") for e in record.exceptions],
    }


@app.get("/")
async def root():
    """Root endpoint."""
    return {"message": "Lifecycle Workflow Engine API", "version": __version__, "status": "running"}


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "components": {
            "repository": engine is not None,
            "template_store": engine is not None,
            "dispatcher": engine is not None,
            "audit_logger": engine is not None,
        },
    }


@app.get("/stats")
def get_system_stats():
    """Counts of instances by status and open exceptions by severity."""
    eng = _engine()

    instances_by_status = {status.value: 0 for status in InstanceStatus}
    for instance in eng.manager.list_instances():
        instances_by_status[instance.status.value] += 1

    open_by_severity = {severity.value: 0 for severity in Severity}
    for exception in eng.exceptions.list_exceptions():
        if exception.is_open:
            open_by_severity[exception.severity.value] += 1

    return {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "instances": instances_by_status,
        "open_exceptions": open_by_severity,
        "templates": {
            status.value: len(eng.templates.list(status=status)) for status in TemplateStatus
        },
        "pending_retries": len(eng.dispatcher.due_attempts()),
    }


# ----------------------------------------------------------------------
# Templates
# ----------------------------------------------------------------------

@app.get("/templates")
def list_templates(
    lifecycle_type: Optional[LifecycleType] = Query(None, description="Filter by lifecycle type"),
    status: Optional[TemplateStatus] = Query(None, description="Filter by status"),
):
    templates = _engine().templates.list(lifecycle_type=lifecycle_type, status=status)
    return [t.model_dump(mode="json") for t in templates]


@app.post("/templates", status_code=201)
def create_template(request: TemplateRequest, x_actor: Optional[str] = Header(None)):
    """Create a draft template."""
    actor = _actor(request.actor, x_actor)
    try:
        template = _engine().templates.create(request.model_dump(exclude={"actor"}), actor)
    except WorkflowEngineError as e:
        raise _http_error(e) from e
    return template.model_dump(mode="json")


@app.get("/templates/{template_id}")
def get_template(template_id: str):
    try:
        return _engine().templates.get(template_id).model_dump(mode="json")
    except WorkflowEngineError as e:
        raise _http_error(e) from e


@app.put("/templates/{template_id}")
def update_template(template_id: str, request: TemplateUpdateRequest, x_actor: Optional[str] = Header(None)):
    """Update a draft template. Published and retired templates are read-only."""
    actor = _actor(request.actor, x_actor)
    changes = request.model_dump(exclude_unset=True, exclude={"actor"})
    try:
        template = _engine().templates.update(template_id, changes, actor)
    except WorkflowEngineError as e:
        raise _http_error(e) from e
    return template.model_dump(mode="json")


@app.post("/templates/{template_id}/{action}")
def template_action(
    template_id: str,
    action: str,
    request: Optional[ActorRequest] = None,
    x_actor: Optional[str] = Header(None),
):
    """Publish, retire or duplicate a template."""
    request = request or ActorRequest()
    actor = _actor(request.actor, x_actor)
    store = _engine().templates
    try:
        if action == "publish":
            template = store.publish(template_id, actor)
        elif action == "retire":
            template = store.retire(template_id, actor)
        elif action == "duplicate":
            template = store.duplicate(template_id, actor, request.name)
        else:
            raise HTTPException(status_code=400, detail="Invalid action. Must be: publish, retire, duplicate")
    except WorkflowEngineError as e:
        raise _http_error(e) from e
    return template.model_dump(mode="json")


# ----------------------------------------------------------------------
# Workflow instances
# ----------------------------------------------------------------------

@app.post("/workflows", status_code=201)
def create_workflow(request: WorkflowRequest, x_actor: Optional[str] = Header(None)):
    """Instantiate a workflow for an employee."""
    actor = _actor(request.actor, x_actor)
    manager = _engine().manager
    options = {
        "expected_completion": request.expected_completion,
        "assigned_roles": request.assigned_roles,
        "name": request.name,
    }
    try:
        if request.template_id or request.steps is not None:
            record = manager.instantiate(
                request.employee_id,
                request.start_date,
                template_id=request.template_id,
                steps=request.steps,
                actor=actor,
                lifecycle_type=request.lifecycle_type,
                **options,
            )
        elif request.lifecycle_type:
            record = manager.instantiate_for_event(
                request.employee_id,
                request.lifecycle_type,
                request.start_date,
                actor=actor,
                department=request.department,
                role=request.role,
                **options,
            )
        else:
            raise HTTPException(status_code=400, detail="Provide template_id, steps or lifecycle_type")
    except WorkflowEngineError as e:
        raise _http_error(e) from e

    logger.info(f"Workflow {record.instance.id} created for {request.employee_id} by {actor}")
    return _record_view(record)


@app.get("/workflows")
def list_workflows(
    employee_id: Optional[str] = Query(None, description="Filter by employee ID"),
    status: Optional[InstanceStatus] = Query(None, description="Filter by status"),
    lifecycle_type: Optional[LifecycleType] = Query(None, description="Filter by lifecycle type"),
    limit: int = Query(100, description="Maximum number of results"),
):
    instances = _engine().manager.list_instances(employee_id, status, lifecycle_type)
    return [i.model_dump(mode="json") for i in instances[:limit]]


@app.get("/workflows/{instance_id}")
def get_workflow(instance_id: str):
    try:
        return _record_view(_engine().manager.get_record(instance_id))
    except WorkflowEngineError as e:
        raise _http_error(e) from e


@app.get("/workflows/{instance_id}/progress")
def get_workflow_progress(instance_id: str):
    try:
        return _engine().manager.get_progress(instance_id)
    except WorkflowEngineError as e:
        raise _http_error(e) from e


@app.post("/workflows/{instance_id}/steps/{step_id}/transition")
def transition_step(
    instance_id: str,
    step_id: str,
    request: TransitionRequest,
    x_actor: Optional[str] = Header(None),
):
    """Move a step to a new status."""
    actor = _actor(request.actor, x_actor)
    manager = _engine().manager
    try:
        step = manager.with_conflict_retry(
            manager.transition_step, instance_id, step_id, request.status, actor, request.notes
        )
    except WorkflowEngineError as e:
        raise _http_error(e) from e
    return step.model_dump(mode="json")


@app.post("/workflows/{instance_id}/steps/{step_id}/retry")
def retry_step(instance_id: str, step_id: str, request: Optional[ActorRequest] = None,
               x_actor: Optional[str] = Header(None)):
    """Retry a failed integration step."""
    actor = _actor(request.actor if request else None, x_actor)
    try:
        step = _engine().manager.retry_step(instance_id, step_id, actor)
    except WorkflowEngineError as e:
        raise _http_error(e) from e
    return step.model_dump(mode="json")


@app.post("/workflows/{instance_id}/steps", status_code=201)
def add_step(instance_id: str, blueprint: StepBlueprint, x_actor: Optional[str] = Header(None)):
    """Append a step to a freeform workflow."""
    actor = _actor(None, x_actor)
    try:
        step = _engine().manager.add_step(instance_id, blueprint, actor)
    except WorkflowEngineError as e:
        raise _http_error(e) from e
    return step.model_dump(mode="json")


@app.post("/workflows/{instance_id}/cancel")
def cancel_workflow(instance_id: str, request: CancelRequest, x_actor: Optional[str] = Header(None)):
    actor = _actor(request.actor, x_actor)
    try:
        instance = _engine().manager.cancel(instance_id, actor, request.reason)
    except WorkflowEngineError as e:
        raise _http_error(e) from e
    return instance.model_dump(mode="json")


# ----------------------------------------------------------------------
# Exceptions
# ----------------------------------------------------------------------

@app.get("/exceptions")
def list_exceptions(
    instance_id: Optional[str] = Query(None, description="Filter by workflow instance"),
    status: Optional[ResolutionStatus] = Query(None, description="Filter by resolution status"),
    severity: Optional[Severity] = Query(None, description="Filter by severity"),
    kind: Optional[ExceptionKind] = Query(None, description="Filter by kind"),
    limit: int = Query(100, description="Maximum number of results"),
):
    try:
        exceptions = _engine().exceptions.list_exceptions(instance_id, status, severity, kind)
    except WorkflowEngineError as e:
        raise _http_error(e) from e
    return [e.model_dump(mode="json") for e in exceptions[:limit]]


@app.post("/workflows/{instance_id}/exceptions", status_code=201)
def open_exception(instance_id: str, request: ExceptionRequest, x_actor: Optional[str] = Header(None)):
    """Raise an exception against a workflow by hand."""
    actor = _actor(request.actor, x_actor)
    try:
        exception = _engine().exceptions.open(
            instance_id,
            request.kind,
            request.severity,
            request.title,
            request.description,
            step_id=request.step_id,
            actor=actor,
            assignee=request.assignee,
        )
    except WorkflowEngineError as e:
        raise _http_error(e) from e
    return exception.model_dump(mode="json")


@app.post("/exceptions/{exception_id}/{action}")
def exception_action(
    exception_id: str,
    action: str,
    request: Optional[ResolutionRequest] = None,
    x_actor: Optional[str] = Header(None),
):
    """Acknowledge, resolve or dismiss an exception."""
    request = request or ResolutionRequest()
    actor = _actor(request.actor, x_actor)
    tracker = _engine().exceptions
    try:
        if action == "acknowledge":
            exception = tracker.acknowledge(exception_id, actor)
        elif action == "resolve":
            exception = tracker.resolve(exception_id, actor, request.notes)
        elif action == "dismiss":
            exception = tracker.dismiss(exception_id, actor, request.notes)
        else:
            raise HTTPException(status_code=400, detail="Invalid action. Must be: acknowledge, resolve, dismiss")
    except WorkflowEngineError as e:
        raise _http_error(e) from e
    return exception.model_dump(mode="json")


# ----------------------------------------------------------------------
# Audit and maintenance
# ----------------------------------------------------------------------

@app.get("/audit")
def get_audit_logs(
    instance_id: Optional[str] = Query(None, description="Filter by workflow instance"),
    actor: Optional[str] = Query(None, description="Filter by actor"),
    limit: int = Query(100, description="Maximum number of results"),
):
    """Get audit records, most recent first."""
    records = _engine().audit.get_events(instance_id=instance_id, actor=actor, limit=limit)
    return [r.model_dump(mode="json") for r in records]


@app.post("/sweep")
def run_sweep():
    """Retry due integration attempts and check deadlines once."""
    return _engine().sweeper.run_once()


def start_server(host: str = "0.0.0.0", port: int = 8000, reload: bool = False):
    """Start the FastAPI server."""
    uvicorn.run(
        "lifecycle_engine.api.server:app",
        host=host,
        port=port,
        reload=reload,
        log_level="info",
    )


if __name__ == "__main__":
    start_server()
