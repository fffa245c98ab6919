from pydantic import BaseModel, Field


class Session(BaseModel):
    """
    Yahoo credentials: session cookie plus the crumb derived from it.
    `expires_at` is measured on the owning SessionCache's clock.
    """
    cookie: str = Field(..., min_length=1, repr=False)
    crumb: str = Field(..., min_length=1, repr=False)
    expires_at: float

    class Config:
        frozen = True
