"""FastAPI web application for composer-reconcile."""

from typing import Any, Optional, Union

from fastapi import FastAPI, HTTPException
from fastapi.responses import Response
from pydantic import BaseModel, Field

from reconcile.errors import ParseError, ValidationError
from reconcile.manifest import ManifestReconciler
from reconcile.sources import merge_libraries, register_asset_installers

app = FastAPI(
    title="composer-reconcile",
    description="Merge discovered dependencies into composer manifests",
    version="0.1.0",
)


class RequirementIn(BaseModel):
    """A discovered requirement to merge."""
    name: str
    version: str


class ReconcileRequest(BaseModel):
    """Request model for reconciling a manifest."""
    manifest: dict[str, Any]
    requirements: list[RequirementIn] = Field(default_factory=list)
    repositories: Optional[Union[list[Any], dict[str, Any]]] = None
    libraries: list[dict[str, Any]] = Field(default_factory=list)
    register_assets: bool = False


class ReconcileResponse(BaseModel):
    """Response model for a reconciled manifest."""
    manifest: dict[str, Any]
    updated_content: str
    changes: list[dict]
    diff: dict[str, Any]
    has_changes: bool


@app.get("/")
async def home():
    """Describe the service."""
    return {"name": app.title, "version": app.version, "endpoints": ["/api/reconcile", "/api/download"]}


def _reconcile(request: ReconcileRequest) -> ManifestReconciler:
    """Apply a request to an in-memory manifest."""
    reconciler = ManifestReconciler.from_data(request.manifest)
    if request.repositories is not None:
        reconciler.set_repositories(request.repositories)
    for requirement in request.requirements:
        reconciler.add_requirement(requirement.name, requirement.version)
    if request.libraries:
        merge_libraries(reconciler, request.libraries, request.repositories)
    if request.register_assets:
        register_asset_installers(reconciler)
    return reconciler


@app.post("/api/reconcile", response_model=ReconcileResponse)
async def reconcile_manifest(request: ReconcileRequest):
    """Merge requirements into a manifest and report the changes."""
    try:
        reconciler = _reconcile(request)
        diff = reconciler.get_diff()

        changes = [
            {
                "section": change.section,
                "key": change.key,
                "kind": change.kind.value,
                "old": change.old,
                "new": change.new,
            }
            for change in diff
        ]

        return ReconcileResponse(
            manifest=reconciler.snapshot(),
            updated_content=reconciler.to_json(),
            changes=changes,
            diff=diff.to_dict(),
            has_changes=bool(diff),
        )

    except (ParseError, ValidationError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error reconciling manifest: {str(e)}")


@app.post("/api/download")
async def download_manifest(request: ReconcileRequest):
    """Return the reconciled manifest as a composer.json attachment."""
    try:
        reconciler = _reconcile(request)
        if not reconciler.get_diff():
            raise HTTPException(status_code=400, detail="No changes to download")

        return Response(
            content=reconciler.to_json(),
            media_type="application/json",
            headers={"Content-Disposition": 'attachment; filename="composer.json"'},
        )

    except HTTPException:
        # Re-raise HTTP exceptions
        raise
    except (ParseError, ValidationError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error generating manifest: {str(e)}")
