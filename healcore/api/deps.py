from uuid import UUID

from fastapi import Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from healcore.core.security import get_current_user
from healcore.db.session import get_db


def Authed(db: AsyncSession = Depends(get_db), user=Depends(get_current_user)):
    return {"db": db, "user_id": UUID(str(user["user_id"]))}


def download_response(artifact) -> Response:
    """Hand an export artifact to the client as a file download."""
    return Response(
        content=artifact.data,
        media_type=artifact.mime_type,
        headers={"Content-Disposition": f'attachment; filename="{artifact.filename}"'},
    )
