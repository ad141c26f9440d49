"""
============================================================================
RaceFi Backend v1.0.0
Audit Schemas - Smart Contract Audit Records
============================================================================

Reliability Level: STANDARD
Input Constraints: 0x contract address, known network, score 0-100
Side Effects: None (pure validation)

============================================================================
"""

from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.schemas.common import validate_address


class AuditNetwork(str, Enum):
    ETHEREUM = "ethereum"
    POLYGON = "polygon"
    BSC = "bsc"
    AVALANCHE = "avalanche"


class AuditStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class FindingSeverity(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INFO = "info"


class FindingLocation(BaseModel):
    file: Optional[str] = None
    line: Optional[int] = Field(None, ge=0)
    code_snippet: Optional[str] = None


class Finding(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    severity: FindingSeverity
    title: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    location: Optional[FindingLocation] = None
    recommendation: str = Field(..., min_length=1)


class AuditMetadata(BaseModel):
    solc_version: Optional[str] = None
    optimization: Optional[bool] = None
    runs: Optional[int] = Field(None, ge=0)


class AuditCreate(BaseModel):
    """
    Request to audit a deployed contract.

    The audit is created in the pending state.
    """

    model_config = ConfigDict(extra="forbid")

    contract_address: str
    network: AuditNetwork = AuditNetwork.ETHEREUM
    metadata: Optional[AuditMetadata] = None

    @field_validator("contract_address", mode="before")
    @classmethod
    def validate_contract_address(cls, v: Any) -> str:
        return validate_address(v, "contract_address")


class AuditUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    status: Optional[AuditStatus] = None
    findings: Optional[List[Finding]] = None
    score: Optional[int] = Field(None, ge=0, le=100)
    error: Optional[str] = None
    report_url: Optional[str] = None


class AuditOut(BaseModel):
    id: str
    user_id: str
    contract_address: str
    network: AuditNetwork
    status: AuditStatus
    findings: List[Finding]
    metadata: AuditMetadata
    score: Optional[int] = None
    error: Optional[str] = None
    report_url: Optional[str] = None
    created_at: str
    updated_at: str
    completed_at: Optional[str] = None
    duration_seconds: Optional[float] = None
