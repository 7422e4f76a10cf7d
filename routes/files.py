# routes/files.py
# Serves blobs by bucket and path; public URLs handed out by the blob store point here.

import mimetypes

from fastapi import APIRouter, Depends
from fastapi.responses import Response

from deps import get_services
from errors import InvalidRequest, NotFound
from stores import StorageBucket, StoreError, clean_blob_path

router = APIRouter(prefix="/files", tags=["files"])


@router.get("/{bucket}/{path:path}")
def get_file(bucket: str, path: str, services=Depends(get_services)):
    try:
        target = StorageBucket(bucket)
    except ValueError:
        raise NotFound("unknown bucket", detail={"bucket": bucket}) from None
    try:
        clean = clean_blob_path(path)
    except StoreError as exc:
        raise InvalidRequest(str(exc), detail={"path": path}) from exc
    try:
        data = services.blobs.get(target, clean)
    except StoreError as exc:
        raise NotFound("file not found", detail={"bucket": bucket, "path": clean}) from exc
    media_type = mimetypes.guess_type(clean)[0] or "application/octet-stream"
    return Response(content=data, media_type=media_type)
