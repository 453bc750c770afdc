from fastapi import APIRouter, Depends, HTTPException, UploadFile, File, status
from sqlalchemy.orm import Session

from core.db import get_db
from core.permissions import get_current_user
from models.user import User
from schemas.profile import ProfileResponse, ProfileUpdate, ProfilePictureUpload, ProfilePictureDelete
from services.cloudinary import cloudinary_service, MAX_IMAGE_BYTES

router = APIRouter(prefix="/profile", tags=["profile"])


@router.get("/", response_model=ProfileResponse)
def get_profile(current_user: User = Depends(get_current_user)):
    """Get current user's profile"""
    return current_user


@router.patch("/", response_model=ProfileResponse)
def update_profile(
    profile_data: ProfileUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    for field, value in profile_data.model_dump(exclude_unset=True).items():
        if value is not None:
            setattr(current_user, field, value)
    db.commit()
    db.refresh(current_user)
    return current_user


@router.post("/upload-picture", response_model=ProfilePictureUpload)
async def upload_profile_picture(
    file: UploadFile = File(...),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if not file.content_type or not file.content_type.startswith("image/"):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="File must be an image")

    file_data = await file.read()
    if len(file_data) > MAX_IMAGE_BYTES:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="File size must be less than 5MB")

    success, url, error = cloudinary_service.upload_profile_picture(file_data=file_data, user_id=current_user.id)
    if not success:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Failed to upload image: {error}",
        )

    current_user.profile_picture = url
    db.commit()
    return ProfilePictureUpload(success=True, url=url, message="Profile picture uploaded successfully")


@router.delete("/delete-picture", response_model=ProfilePictureDelete)
def delete_profile_picture(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if not current_user.profile_picture:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No profile picture to delete")

    success, error = cloudinary_service.delete_profile_picture(current_user.id)
    if not success:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Failed to delete image: {error}",
        )

    current_user.profile_picture = None
    db.commit()
    return ProfilePictureDelete(success=True, message="Profile picture deleted successfully")
