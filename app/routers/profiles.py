"""
Profiles Router
Schema checks and dry-run planning for tint profiles.

The API never applies a plan: removal only happens through the
``tint run --apply`` command line on the machine holding the image.
"""
import logging
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel, Field

from app.config import settings
from tint.core.dpkg import PackageNotFoundError
from tint.core.rootfs import RootFS
from tint.io.loader import ProfileError, check_profile, parse_profile
from tint.io.schema import ProfileCheck, TintReport
from tint.runner import AlreadyTintedError, TintProcessor

logger = logging.getLogger(__name__)


# =============================================================================
# Request Models
# =============================================================================

class ProfileCheckRequest(BaseModel):
    """Request to gate a profile document."""
    profile: str = Field(..., description="Profile document as YAML text")
    root: Optional[str] = Field(
        None,
        description="Image root; when set, targets are checked for existence",
    )


class PlanRequest(BaseModel):
    """Request to plan a trim of an image (dry run)."""
    profile: str = Field(..., description="Profile document as YAML text")
    root: str = Field(..., description="Image root directory on the API host")
    autodeps: Optional[str] = Field(
        None,
        description="Package dependency mode: free, clean or tight",
        pattern=r"^(free|clean|tight|undef)$",
    )


# =============================================================================
# Helpers
# =============================================================================

def _image_root(root: str) -> Path:
    path = Path(root)
    if not path.is_dir():
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Image root not found: {root}",
        )
    if settings.ALLOWED_ROOTS and not any(
        path.resolve().is_relative_to(Path(a).resolve()) for a in settings.ALLOWED_ROOTS
    ):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Image root not allowed: {root}",
        )
    return path


# =============================================================================
# Router
# =============================================================================

router = APIRouter()


@router.post(
    "/check",
    response_model=ProfileCheck,
    status_code=status.HTTP_200_OK,
    summary="Gate a profile document (ACCEPT / WARN / REJECT)",
)
async def check_profile_endpoint(request: ProfileCheckRequest):
    """
    Run the profile schema gate.  A REJECT is a normal response, not an
    HTTP error: the caller gets every reason at once.
    """
    rootfs = RootFS(_image_root(request.root)) if request.root else None
    verdict, reasons = check_profile(request.profile, rootfs)
    return ProfileCheck(source="<request>", verdict=verdict.value, reasons=reasons)


@router.post(
    "/plan",
    response_model=TintReport,
    status_code=status.HTTP_200_OK,
    summary="Dry-run a profile against an image root",
)
async def plan_endpoint(request: PlanRequest):
    """
    Compute what would be kept and removed from the image at *root*.

    Nothing on disk is modified.
    """
    root = _image_root(request.root)
    processor = TintProcessor(root).set_dry_run(True)
    if request.autodeps:
        processor.set_autodeps(request.autodeps)

    try:
        profile = parse_profile(request.profile, source="<request>", rootfs=processor.rootfs)
        return processor.set_profile(profile).start()
    except ProfileError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"message": "Invalid profile", "reasons": e.reasons},
        )
    except PackageNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except AlreadyTintedError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
