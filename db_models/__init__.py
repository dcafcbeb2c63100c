from db_models.asset import AssetRow
from db_models.asset_attachment import AttachmentRow
from db_models.user import User, UserRole

__all__ = ["AssetRow", "AttachmentRow", "User", "UserRole"]
