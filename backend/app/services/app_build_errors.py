from __future__ import annotations

from typing import Optional


class AppBuildPipelineError(Exception):
    code = "APP_BUILD_FAILED"

    def __init__(self, message: str, *, stage: Optional[str] = None):
        super().__init__(message)
        self.stage = stage


class ConfigurationError(AppBuildPipelineError):
    code = "APP_BUILD_CONFIGURATION_ERROR"


class AuthenticationError(ConfigurationError):
    code = "APP_BUILD_AUTHENTICATION_ERROR"


class PackagingError(AppBuildPipelineError):
    code = "APP_BUILD_PACKAGING_ERROR"


class CIRequestError(AppBuildPipelineError):
    code = "APP_BUILD_CI_REQUEST_FAILED"

    def __init__(self, message: str, *, stage: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message, stage=stage)
        self.status_code = status_code


class DispatchError(AppBuildPipelineError):
    code = "APP_BUILD_DISPATCH_FAILED"


class RunDiscoveryTimeout(AppBuildPipelineError):
    code = "APP_BUILD_RUN_DISCOVERY_TIMEOUT"


class RunTimeout(AppBuildPipelineError):
    code = "APP_BUILD_RUN_TIMEOUT"


class RunFailed(AppBuildPipelineError):
    code = "APP_BUILD_RUN_FAILED"


class ArtifactNotFound(AppBuildPipelineError):
    code = "APP_BUILD_ARTIFACT_NOT_FOUND"


class EncodingError(AppBuildPipelineError):
    code = "APP_BUILD_ENCODING_ERROR"


class OtaPackageError(AppBuildPipelineError):
    code = "APP_BUILD_OTA_PACKAGE_ERROR"
