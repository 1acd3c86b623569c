from __future__ import annotations
from fastapi import APIRouter, Depends, HTTPException, Query
from starlette.responses import Response

from voiceup.api.deps import get_auth_state, get_backend
from voiceup.core.errors import StorageError
from voiceup.db.client import BackendClient
from voiceup.services.auth import AuthState

# buckets are private: the public form still needs a bearer token,
# signed links carry their own
router = APIRouter(prefix="/storage/v1/object", tags=["storage"])

async def _serve(client: BackendClient, bucket: str, path: str) -> Response:
    try:
        data, content_type = await client.storage.download(bucket, path)
    except StorageError:
        raise HTTPException(status_code=404, detail="Object not found")
    return Response(content=data, media_type=content_type)

@router.get("/public/{bucket}/{path:path}")
async def public_object(bucket: str, path: str, client: BackendClient = Depends(get_backend), state: AuthState = Depends(get_auth_state)):
    return await _serve(client, bucket, path)

@router.get("/sign/{bucket}/{path:path}")
async def signed_object(bucket: str, path: str, token: str = Query(...), client: BackendClient = Depends(get_backend)):
    if not client.storage.verify_signed_token(bucket, path, token):
        raise HTTPException(status_code=403, detail="Invalid or expired signature")
    return await _serve(client, bucket, path)
