from __future__ import annotations

from typing import Dict

import segno
from pydantic import BaseModel, ConfigDict, Field

from app.services.app_build_errors import EncodingError


class BuildResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool
    message: str
    app_name: str = Field("", alias="appName")
    apk_url: str = Field(..., alias="apkUrl")
    qr_code_data_url: str = Field(..., alias="qrCodeDataUrl")
    pack_files: Dict[str, str] = Field(default_factory=dict, alias="packFiles")


def encode_qr_data_url(url: str) -> str:
    if not url:
        raise EncodingError("Artifact URL is required to build a QR code", stage="finalize")
    try:
        return segno.make(url, error="m", micro=False).png_data_uri(scale=6, border=2)
    except Exception as exc:
        raise EncodingError(f"Failed to encode QR code: {exc}", stage="finalize") from exc


def finalize(
    app_id: str,
    artifact_url: str,
    *,
    app_name: str = "",
    is_new: bool = True,
    pack_files: Dict[str, str] | None = None,
) -> BuildResult:
    action = "generated" if is_new else "updated"
    return BuildResult(
        success=True,
        message=f"App {app_id} {action} and built successfully",
        app_name=app_name,
        apk_url=artifact_url,
        qr_code_data_url=encode_qr_data_url(artifact_url),
        pack_files=dict(pack_files or {}),
    )
