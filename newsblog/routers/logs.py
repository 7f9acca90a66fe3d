from fastapi import APIRouter, Depends
from newsblog.dependencies import get_logging_service
from newsblog.errors import InvalidInputError
from newsblog.schemas import LogEntryCreate, LogResult
from newsblog.services.logging_service import LoggingService

router = APIRouter(prefix="/logs", tags=["logs"])

@router.post("", status_code=201, response_model=LogResult)
async def create_log(data: LogEntryCreate, service: LoggingService = Depends(get_logging_service)):
    payload = data.payload()
    if not payload:
        raise InvalidInputError("Log data is required")
    return await service.log_message(payload)
