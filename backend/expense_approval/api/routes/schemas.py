"""
Expense Schemas

Request models for the expense, workflow and manager endpoints.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Union
from pydantic import BaseModel, Field, field_validator


# =============================================================================
# Expense Schemas
# =============================================================================

class CreateExpenseRequest(BaseModel):
    """Request to submit a new expense"""
    amount: float
    currency: str = Field(..., min_length=3, max_length=3)
    category: str
    description: str = Field(..., max_length=1000)
    date: Union[datetime, str]
    receipt_url: Optional[str] = Field(None, max_length=500)
    ocr_data: Optional[Dict[str, Any]] = None

    @field_validator("currency", "category")
    @classmethod
    def normalize_code(cls, v: str) -> str:
        return v.strip().upper()


class UpdateExpenseRequest(BaseModel):
    """Request to update a pending expense (only given fields change)"""
    amount: Optional[float] = None
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    category: Optional[str] = None
    description: Optional[str] = Field(None, max_length=1000)
    date: Optional[Union[datetime, str]] = None
    receipt_url: Optional[str] = Field(None, max_length=500)

    @field_validator("currency", "category")
    @classmethod
    def normalize_code(cls, v: Optional[str]) -> Optional[str]:
        return v.strip().upper() if v else v


# =============================================================================
# Workflow Schemas
# =============================================================================

class StartApprovalRequest(BaseModel):
    """Chain overrides when starting approval"""
    director_only: bool = False
    manager_only: bool = False


class ApprovalActionRequest(BaseModel):
    """Request for approve/reject"""
    comments: Optional[str] = Field(None, max_length=500)


class ApplyRulesRequest(BaseModel):
    """Catalog rules to attach (all catalog rules when omitted)"""
    rule_ids: Optional[List[str]] = None
