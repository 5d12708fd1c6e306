"""Request body for the usage report endpoint."""

from typing import Literal

from pydantic import BaseModel


class CostReportRequest(BaseModel):
    report_type: Literal["monthly", "quarterly", "yearly"]
    format: Literal["json", "csv"] = "json"
    include_patterns: bool = False
    include_efficiency: bool = False
