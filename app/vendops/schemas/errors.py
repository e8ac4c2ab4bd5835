from pydantic import BaseModel


class ApiValidationErrorItem(BaseModel):
    field: str | None = None
    message: str
    type: str
    loc: list[str | int] | None = None
    input: object | None = None
    ctx: dict | None = None


class ApiValidationErrorDetails(BaseModel):
    errors: list[ApiValidationErrorItem]


class ApiRangeErrorDetails(BaseModel):
    message: str
    reason_code: str | None = None
    max_days: int | None = None


class ApiTierErrorDetails(BaseModel):
    location_id: str | None = None
    duplicate_thresholds_cents: list[int]


class ApiErrorResponse(BaseModel):
    code: str
    message: str
    details: dict | None = None
    trace_id: str | None = None


class ApiReportErrorResponse(ApiErrorResponse):
    details: ApiValidationErrorDetails | ApiTierErrorDetails | ApiRangeErrorDetails | dict | None = None
