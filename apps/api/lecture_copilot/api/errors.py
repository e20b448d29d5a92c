from fastapi import HTTPException

from lecture_copilot.core.errors import StudyCoreError


def to_http(e: StudyCoreError) -> HTTPException:
    return HTTPException(status_code=e.http_status, detail=e.to_detail())
