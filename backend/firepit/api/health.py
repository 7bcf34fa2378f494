from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import text
from firepit.db.database import get_db
from firepit.core.logging import api_logger

router = APIRouter()


@router.get('/healthz')
def healthz():
    return {"status": "ok"}


@router.get('/readyz')
async def readyz(db: AsyncSession = Depends(get_db)):
    try:
        await db.execute(text('SELECT 1'))
    except Exception as e:
        api_logger.error("Readiness DB check failed", error=e)
        raise HTTPException(status_code=503, detail='Not ready')

    return {"status": "ready"}
