from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from sqlalchemy.orm import Session

from ..config import settings
from ..db import get_db
from ..errors import ValidationError
from ..models.models import User
from ..auth.security import require_roles, ADMIN_TIER
from ..services import kml_import

router = APIRouter(prefix="/api/kmz", tags=["kmz"])


@router.post("/upload")
def upload_kmz(
    kmzFile: UploadFile = File(...),
    importAs: str = Form(kml_import.IMPORT_AS_LOCATIONS),
    locationId: Optional[str] = Form(None),
    defaultRadius: Optional[int] = Form(None),
    db: Session = Depends(get_db),
    user: User = Depends(require_roles(*ADMIN_TIER)),
):
    """Import Placemarks from a .kmz/.kml upload as locations or zones."""
    if importAs not in (kml_import.IMPORT_AS_LOCATIONS, kml_import.IMPORT_AS_ZONES):
        raise ValidationError("importAs must be 'locations' or 'zones'")
    data = kmzFile.file.read(settings.kmz_max_upload_bytes + 1)
    if not data:
        raise ValidationError("No file uploaded", "missing_field")
    if len(data) > settings.kmz_max_upload_bytes:
        raise ValidationError("File is too large")

    kml_text = kml_import.extract_kml(data, kmzFile.filename or "")
    features = kml_import.parse_kml(kml_text)
    results = kml_import.import_features(
        db,
        features,
        import_as=importAs,
        location_id=locationId or None,
        default_radius=defaultRadius or settings.kmz_default_radius_m,
    )
    return {
        "success": True,
        "message": f"Successfully imported {len(results['imported'])} feature(s)",
        "data": results,
    }
