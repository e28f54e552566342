"""
Routes/endpoints for the FTP mirror

HTTP   URI                  Action
----   ---                  ------
GET    /api/ftp/check       Report whether the FTP mirror accepts a login
"""

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from api.mirror import services
from core.deps import RemoteStoreDep
from core.logger import logger

router = APIRouter(prefix="/ftp", tags=["FTP Mirror Endpoints"])


@router.get("/check", tags=["FTP Mirror Endpoints"])
def check_ftp(remote_store: RemoteStoreDep):
    """
    Check the FTP mirror connection.
    """
    try:
        return {"connected": services.check_connection(remote_store)}
    except Exception as e:
        logger.error("FTP check error: %s", e)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"connected": False, "message": "FTP check failed"},
        )
