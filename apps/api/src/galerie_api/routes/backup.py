from dataclasses import asdict
from fastapi import APIRouter, Depends, File, Response, UploadFile
import logging
from galerie_core.auth import get_current_user
from galerie_core.backup import BackupCodec, export_filename
from ..deps import actor, get_codec

router = APIRouter(prefix="/backup", tags=["backup"])
log = logging.getLogger("galerie_api")


@router.get("/export")
def export_backup(user = Depends(get_current_user), codec: BackupCodec = Depends(get_codec)):
    payload = codec.export_backup()
    filename = export_filename()
    log.info("backup.export ok bytes=%d actor=%s", len(payload), actor(user))
    return Response(
        content=payload,
        media_type="application/gzip",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/import")
def import_backup(
    backup: UploadFile = File(...),
    user = Depends(get_current_user),
    codec: BackupCodec = Depends(get_codec),
):
    try:
        # One byte over the limit is enough for the codec to reject it
        data = backup.file.read(codec.max_bytes + 1)
    finally:
        backup.file.close()
    summary = codec.import_backup(data)
    log.info("backup.import ok actor=%s", actor(user))
    return {"message": "La sauvegarde a été restaurée avec succès.", "summary": asdict(summary)}
