from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class GenerateOtaResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    ota_path: str = Field(..., alias="otaPath")


class InjectOtaRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    app_id: Optional[str] = Field(None, alias="appId")
    ota_package_path: Optional[str] = Field(None, alias="otaPackagePath")


class InjectOtaResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    final_app_path: str = Field(..., alias="finalAppPath")


class BuildResultResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool
    message: str
    app_name: str = Field("", alias="appName")
    apk_url: str = Field(..., alias="apkUrl")
    qr_code_data_url: str = Field(..., alias="qrCodeDataUrl")
    pack_files: Dict[str, str] = Field(default_factory=dict, alias="packFiles")
