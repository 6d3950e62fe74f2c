"""Pydantic models for request/response bodies.

Inbound Bot Framework activities are large; only the fields the relay reads
are modelled and everything else is ignored.
"""
from __future__ import annotations
from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional


class ChannelAccount(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = ""
    name: Optional[str] = None
    aad_object_id: Optional[str] = Field(default=None, alias="aadObjectId")


class ConversationAccount(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str = ""


class Activity(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    type: str = ""
    text: Optional[str] = None
    from_: ChannelAccount = Field(default_factory=ChannelAccount, alias="from")
    recipient: Optional[ChannelAccount] = None
    conversation: ConversationAccount = Field(default_factory=ConversationAccount)
    service_url: Optional[str] = Field(default=None, alias="serviceUrl")
    members_added: List[ChannelAccount] = Field(default_factory=list, alias="membersAdded")

    @property
    def sender_id(self) -> str:
        return self.from_.aad_object_id or self.from_.id

    @property
    def sender_name(self) -> str:
        return self.from_.name or self.sender_id


class CommandResponse(BaseModel):
    status: str = "processed"
    success: Optional[bool] = None
    response: Optional[str] = None
    error: Optional[str] = None


class AuditLogEntry(BaseModel):
    id: int
    timestamp: str
    user_id: str
    user_name: str
    chat_id: str
    command: str
    result: str
    details: Optional[str] = None


class AuditLogResponse(BaseModel):
    success: bool = True
    data: List[AuditLogEntry] = Field(default_factory=list)


class AuditStats(BaseModel):
    total_commands: int = 0
    successful_commands: int = 0
    failed_commands: int = 0
    unique_users: int = 0
    last_command: Optional[AuditLogEntry] = None


class AuditStatsResponse(BaseModel):
    success: bool = True
    data: AuditStats
