from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from core.db import get_db
from core.permissions import get_current_user
from models.address import Address
from models.user import User
from schemas.address import AddressCreate, AddressUpdate, AddressOut
from services import addresses as address_service

router = APIRouter(prefix="/addresses", tags=["addresses"])


def _get_own(db: Session, user: User, address_id: int) -> Address:
    address = db.query(Address).filter(Address.id == address_id, Address.user_id == user.id).one_or_none()
    if not address:
        raise HTTPException(status_code=404, detail="Address not found")
    return address


@router.get("/", response_model=List[AddressOut])
def list_addresses(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return (
        db.query(Address)
        .filter(Address.user_id == user.id)
        .order_by(Address.is_default.desc(), Address.created_at.desc(), Address.id.desc())
        .all()
    )


@router.post("/", response_model=AddressOut, status_code=201)
def create_address(data: AddressCreate, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    address = address_service.create_address(db, user.id, data.model_dump())
    db.commit()
    db.refresh(address)
    return address


@router.get("/{address_id}", response_model=AddressOut)
def get_address(address_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return _get_own(db, user, address_id)


@router.patch("/{address_id}", response_model=AddressOut)
def update_address(
    address_id: int, data: AddressUpdate, user: User = Depends(get_current_user), db: Session = Depends(get_db)
):
    address = _get_own(db, user, address_id)
    changes = {k: v for k, v in data.model_dump(exclude_unset=True).items() if v is not None}
    address_service.update_address(db, address, changes)
    db.commit()
    db.refresh(address)
    return address


@router.delete("/{address_id}", status_code=204)
def delete_address(address_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    address = _get_own(db, user, address_id)
    address_service.delete_address(db, address)
    db.commit()
