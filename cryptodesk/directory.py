# cryptodesk/directory.py
from sqlalchemy.orm import Session

from cryptodesk.errors import NotFoundError
from cryptodesk.models import Asset, User


class UserDirectory:
    """Existence checks for users and assets."""

    def __init__(self, db: Session):
        self.db = db

    def get_user(self, user_id: int) -> User:
        user = self.db.get(User, user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found")
        return user

    def get_asset(self, asset_id: str) -> Asset:
        asset = self.db.get(Asset, asset_id)
        if asset is None:
            raise NotFoundError(f"Asset {asset_id} not found")
        return asset

    def get_tradable_asset(self, asset_id: str) -> Asset:
        asset = self.get_asset(asset_id)
        if not asset.is_tradable:
            raise NotFoundError(f"Asset {asset_id} is not tradable")
        return asset
