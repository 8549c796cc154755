"""
Company settings schemas
"""
from typing import List
from pydantic import BaseModel, Field


class CompanyIPs(BaseModel):
    """Company-wide network allowlist"""
    ips: List[str] = Field(default_factory=list, description="IPs, CIDRs or wildcard tokens (*, 0.0.0.0/0, ::/0)")
