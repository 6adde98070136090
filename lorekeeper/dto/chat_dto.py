from pydantic import BaseModel, Field, field_validator
from typing import List, Optional
from lorekeeper.constants import MessageRole

MESSAGE_ROLES = (MessageRole.SYSTEM, MessageRole.USER, MessageRole.ASSISTANT, MessageRole.NONE)

class MessageDTO(BaseModel):
    id: str
    chat_id: str
    position: int
    role: str
    content: str
    creation_time: str

class MessageCreateDTO(BaseModel):
    chat_id: str
    role: str = MessageRole.USER
    content: str

    @field_validator('role')
    @classmethod
    def check_role(cls, v: str) -> str:
        if v not in MESSAGE_ROLES:
            raise ValueError(f"Unknown message role '{v}'")
        return v

class ChatDTO(BaseModel):
    id: str
    name: str
    user_id: Optional[str] = None
    session_id: Optional[str] = None
    creation_time: str
    messages: List[MessageDTO] = Field(default_factory=list)

class ChatCreateDTO(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    user_id: Optional[str] = None
    session_id: Optional[str] = None
