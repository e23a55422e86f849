"""HTTP surface: review submission, evidence export and policy validation."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from policy_gate import __version__
from policy_gate.errors import EvidenceNotFoundError, UsageLimitExceededError
from policy_gate.models.review import ReviewRequest
from policy_gate.orchestrator.drift import DriftCheckRequest, Endpoint
from policy_gate.policy.source import validate_policy_source
from policy_gate.review import Services

logger = logging.getLogger(__name__)


async def _read_json(request: Request) -> dict[str, Any]:
    try:
        payload = await request.json()
    except ValueError as e:
        raise HTTPException(status_code=400, detail=f"Invalid JSON: {e}") from e
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Request body must be a JSON object")
    return payload


def _endpoint(raw: dict[str, Any]) -> Endpoint:
    return Endpoint(
        method=str(raw["method"]).upper(),
        path=str(raw["path"]),
        file=raw.get("file"),
        line=raw.get("line"),
        params=raw.get("params"),
    )


def create_app(services: Services) -> FastAPI:
    """Create the FastAPI application.

    Args:
        services: Wired pipeline and stores (see policy_gate.review.build_services)

    Returns:
        FastAPI application
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        await services.start()
        try:
            yield
        finally:
            await services.close()

    app = FastAPI(
        title="Policy Gate",
        description="Policy-driven change evaluation with auditable evidence",
        version=__version__,
        lifespan=lifespan,
    )

    @app.exception_handler(UsageLimitExceededError)
    async def usage_limit_handler(request: Request, exc: UsageLimitExceededError):
        """Quota errors keep their own status code and machine-readable body."""
        return JSONResponse(status_code=exc.http_status, content=exc.to_dict())

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy", "service": "policy-gate"}

    @app.get("/")
    async def root():
        """Root endpoint with service info."""
        return {
            "service": "Policy Gate",
            "version": __version__,
            "endpoints": {
                "health": "/health",
                "reviews": "/v1/reviews",
                "evidenceExport": "/v1/evidence/{bundle_id}/export",
                "policyValidation": "/v1/policies/validate",
                "drift": "/v1/drift",
            },
        }

    @app.post("/v1/reviews")
    async def submit_review(request: Request):
        """Evaluate a change. Blocked and failed reviews are still 200 responses."""
        payload = await _read_json(request)
        try:
            review_request = ReviewRequest.from_dict(payload)
        except (KeyError, TypeError, ValueError) as e:
            raise HTTPException(status_code=400, detail=f"Invalid review request: {e}") from e

        result = await services.pipeline.review_change(review_request)
        return result.to_dict()

    @app.get("/v1/evidence/{bundle_id}/export")
    async def export_evidence(bundle_id: str):
        """Export an evidence bundle in the versioned export format."""
        try:
            export = await services.evidence_producer.export_evidence(bundle_id)
        except EvidenceNotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e)) from e
        return export.to_dict()

    @app.post("/v1/policies/validate")
    async def validate_policy(request: Request):
        """Validate a policy source document without storing it."""
        payload = await _read_json(request)
        source = payload.get("source")
        if not isinstance(source, str):
            raise HTTPException(status_code=400, detail="Field 'source' must be a string")
        return validate_policy_source(source).to_dict()

    @app.post("/v1/drift")
    async def check_drift(request: Request):
        """Judge documentation drift for a ref under the effective policy."""
        payload = await _read_json(request)
        try:
            drift_request = DriftCheckRequest(
                organization_id=payload["organizationId"],
                repository_id=payload["repositoryId"],
                ref=payload["ref"],
                branch=payload.get("branch"),
                doc_id=payload.get("docId"),
                current_endpoints=[_endpoint(e) for e in payload.get("currentEndpoints", [])],
                documented_endpoints=[_endpoint(e) for e in payload.get("documentedEndpoints", [])],
            )
        except (KeyError, TypeError, ValueError) as e:
            raise HTTPException(status_code=400, detail=f"Invalid drift request: {e}") from e

        result = await services.drift_checker.check_drift(drift_request)
        return result.to_dict()

    return app
