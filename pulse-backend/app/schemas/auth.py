from pydantic import BaseModel


class IdentityOut(BaseModel):
    id: str
    display_name: str | None = None
    emails: list[str]


class MeOut(BaseModel):
    data: IdentityOut | None = None
