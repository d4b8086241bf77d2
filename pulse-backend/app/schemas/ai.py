from pydantic import BaseModel, ConfigDict, Field


class SuggestMessageIn(BaseModel):
    context: str | None = Field(default=None, max_length=500)
    audience: str | None = Field(default=None, max_length=200)
    tone: str | None = Field(default=None, max_length=60)
    n: int = Field(default=3, ge=1, le=10)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "context": "Promote 20% off weekend sale",
                "audience": "customers who spent over 500",
                "tone": "playful",
                "n": 3,
            }
        }
    )


class SuggestMessageOut(BaseModel):
    model: str
    suggestions: list[str]
