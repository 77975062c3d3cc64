from typing import Optional

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Data for reporting an error to the frontend."""
    error_code: Optional[str] = Field(None, description="A unique code identifying the type of error.")
    error_message: str = Field(description="A user-friendly error message.")
    technical_details: Optional[str] = Field(None, description="Optional technical details (for logging/debugging on FE).")
