from typing import Optional

from sqlalchemy.orm import Session

from models.address import Address


def _clear_defaults(db: Session, user_id: int, keep_id: Optional[int] = None) -> None:
    query = db.query(Address).filter(Address.user_id == user_id, Address.is_default.is_(True))
    if keep_id is not None:
        query = query.filter(Address.id != keep_id)
    for other in query.all():
        other.is_default = False


def create_address(db: Session, user_id: int, data: dict) -> Address:
    """The first address a user saves becomes the default."""
    has_any = db.query(Address.id).filter(Address.user_id == user_id).first() is not None
    make_default = bool(data.pop("is_default", False)) or not has_any
    if make_default:
        _clear_defaults(db, user_id)
    address = Address(user_id=user_id, is_default=make_default, **data)
    db.add(address)
    db.flush()
    return address


def update_address(db: Session, address: Address, changes: dict) -> Address:
    # is_default=False is ignored; a default only moves by promoting another address
    make_default = changes.pop("is_default", None)
    for field, value in changes.items():
        setattr(address, field, value)
    if make_default:
        _clear_defaults(db, address.user_id, keep_id=address.id)
        address.is_default = True
    db.flush()
    return address


def delete_address(db: Session, address: Address) -> None:
    user_id = address.user_id
    was_default = address.is_default
    db.delete(address)
    db.flush()
    if was_default:
        replacement = (
            db.query(Address)
            .filter(Address.user_id == user_id)
            .order_by(Address.created_at.desc(), Address.id.desc())
            .first()
        )
        if replacement:
            replacement.is_default = True
            db.flush()
