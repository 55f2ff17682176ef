from fastapi import APIRouter, Depends, HTTPException, Request

from app.api.schemas.generate import (
    BuildResultResponse,
    GenerateOtaResponse,
    InjectOtaRequest,
    InjectOtaResponse,
)
from app.services.app_build_errors import AppBuildPipelineError
from app.services.app_build_pipeline import AppBuildPipeline
from app.services.ota_package_service import AppBundleNotFound, OtaPackageService


router = APIRouter()


def get_app_build_pipeline(request: Request) -> AppBuildPipeline:
    pipeline = getattr(request.app.state, "app_build_pipeline", None)
    if pipeline is None:
        pipeline = AppBuildPipeline.from_env()
        request.app.state.app_build_pipeline = pipeline
    return pipeline


def get_ota_package_service(pipeline: AppBuildPipeline = Depends(get_app_build_pipeline)) -> OtaPackageService:
    return OtaPackageService(pipeline)


def _pipeline_error_to_http(exc: AppBuildPipelineError) -> HTTPException:
    return HTTPException(
        status_code=400,
        detail={"code": exc.code, "stage": exc.stage, "message": str(exc)},
    )


@router.post("/ota/{app_id}", response_model=GenerateOtaResponse, response_model_by_alias=True)
async def create_ota_for_app(app_id: str, service: OtaPackageService = Depends(get_ota_package_service)):
    if not app_id.strip():
        raise HTTPException(status_code=400, detail="Missing appId")
    try:
        ota_path = await service.generate_ota_package(app_id)
    except AppBundleNotFound as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except AppBuildPipelineError as exc:
        raise _pipeline_error_to_http(exc)
    return GenerateOtaResponse(ota_path=ota_path)


@router.post("/inject-ota", response_model=InjectOtaResponse, response_model_by_alias=True)
async def inject_ota_into_template(
    payload: InjectOtaRequest,
    service: OtaPackageService = Depends(get_ota_package_service),
):
    if not (payload.app_id or "").strip() or not (payload.ota_package_path or "").strip():
        raise HTTPException(status_code=400, detail="Missing appId or otaPackagePath")
    try:
        final_app_path = await service.inject_ota_into_template(payload.app_id, payload.ota_package_path)
    except AppBuildPipelineError as exc:
        raise _pipeline_error_to_http(exc)
    return InjectOtaResponse(final_app_path=final_app_path)


@router.post("/app/{app_id}", response_model=BuildResultResponse, response_model_by_alias=True)
async def generate_app(app_id: str, service: OtaPackageService = Depends(get_ota_package_service)):
    """Build (or rebuild) an app from its stored data and return the artifact reference."""
    try:
        bundle = await service.load_bundle(app_id)
        result = await service.pipeline.generate_or_update_app(bundle)
    except AppBundleNotFound as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except AppBuildPipelineError as exc:
        raise _pipeline_error_to_http(exc)
    return BuildResultResponse(**result.model_dump())
