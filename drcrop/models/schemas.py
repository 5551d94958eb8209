from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

Severity = Literal["None", "Mild", "Moderate", "Severe"]


class AnalysisResult(BaseModel):
    """Canonical diagnosis record produced by the response normalizer."""

    model_config = ConfigDict(strict=True, extra="forbid")

    disease: str = Field(min_length=1)
    severity: Severity
    severity_percent: int = Field(ge=0, le=100)
    organic_diagnosis: str = Field(min_length=1)
    chemical_diagnosis: str = Field(min_length=1)


class Credentials(BaseModel):
    username: str = Field(min_length=1, max_length=150, description="Username is required")
    password: str = Field(min_length=1, description="Password is required")
