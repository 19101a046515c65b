from typing import Optional
from pydantic import BaseModel


class CallerIdentity(BaseModel):
    """署名検証済みトークンから解決した呼び出し元"""

    user_id: str
    email: Optional[str] = None
    is_admin: bool = False
