from pydantic import BaseModel, ConfigDict
from typing import Optional


class User(BaseModel):
    """Authenticated actor as supplied by the identity service"""
    model_config = ConfigDict(extra="ignore")
    user_id: str
    name: str = ""
    email: Optional[str] = None
    role: str = "buyer"  # admin, manager, buyer
    business_account_id: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role in ("admin", "manager")
